from sqlalchemy import Column, String, Boolean, DateTime, Uuid
from sqlalchemy.orm import relationship
import uuid
from datetime import datetime, timezone
from ..database.core import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRole:
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"
    TEACHER = "teacher"
    PARENT = "parent"
    RECEPTION = "reception"

    ALL = (ADMIN, SUPER_ADMIN, TEACHER, PARENT, RECEPTION)


class User(Base):
    __tablename__ = 'users'

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False, index=True)  # Stored lower-cased
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default=UserRole.PARENT)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    refresh_tokens = relationship("RefreshToken", back_populates="user", passive_deletes=True)

    def __repr__(self):
        return f"<User(email='{self.email}', role='{self.role}', is_active={self.is_active})>"
