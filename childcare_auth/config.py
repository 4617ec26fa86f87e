from typing import Optional
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseModel):
    """Database configuration settings"""
    url: str = Field(..., description="Database connection URL")

    @field_validator('url')
    @classmethod
    def validate_database_url(cls, v):
        if not v:
            raise ValueError("DATABASE_URL is required")
        if not v.startswith(('postgresql', 'sqlite', 'mysql')):
            raise ValueError("DATABASE_URL must be a valid database URL")
        return v


class AuthSettings(BaseModel):
    """Authentication, JWT and refresh token policy"""
    jwt_secret_key: str = Field(..., min_length=32, description="JWT signing secret key")
    algorithm: str = Field(default="HS256", description="JWT algorithm")
    access_token_expire_minutes: int = Field(default=15, gt=0, description="Access token lifetime in minutes")
    refresh_token_expire_days: int = Field(default=30, gt=0, description="Refresh token lifetime in days")
    refresh_token_retention_days: int = Field(default=30, ge=0, description="Days to keep expired refresh tokens before purge")
    refresh_token_pepper: Optional[str] = Field(default=None, description="Optional HMAC key for refresh token hashes")

    @field_validator('jwt_secret_key')
    @classmethod
    def validate_secret_keys(cls, v):
        if len(v) < 32:
            raise ValueError("Secret keys must be at least 32 characters long for security")
        return v

    @field_validator('algorithm')
    @classmethod
    def validate_algorithm(cls, v):
        if v not in ('HS256', 'HS384', 'HS512'):
            raise ValueError("ALGORITHM must be one of: HS256, HS384, HS512")
        return v


class CookieSettings(BaseModel):
    """Refresh cookie attributes"""
    name: str = Field(default="refresh_token")
    path: str = Field(default="/auth")
    samesite: str = Field(default="lax")
    secure: bool = Field(default=False)
    max_age: int = Field(..., description="Cookie lifetime in seconds")

    @field_validator('samesite')
    @classmethod
    def validate_samesite(cls, v):
        v = v.lower().strip()
        if v not in ('lax', 'strict', 'none'):
            raise ValueError("REFRESH_COOKIE_SAMESITE must be one of: lax, strict, none")
        return v


class AppSettings(BaseModel):
    """General application settings"""
    environment: str = Field(default="development", description="Application environment")
    frontend_url: str = Field(..., description="Frontend application URL")
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of: {', '.join(valid_levels)}")
        return v.upper()

    @field_validator('environment')
    @classmethod
    def validate_environment(cls, v):
        valid_envs = ['development', 'staging', 'production']
        if v.lower() not in valid_envs:
            raise ValueError(f"ENVIRONMENT must be one of: {', '.join(valid_envs)}")
        return v.lower()


class Settings(BaseSettings):
    """Main settings class that combines all configuration sections"""

    # Database settings
    database_url: str = Field(..., alias="DATABASE_URL")

    # Auth settings
    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    algorithm: str = Field(default="HS256", alias="ALGORITHM")
    access_token_expire_minutes: int = Field(default=15, alias="ACCESS_TOKEN_EXPIRE_MINUTES")
    refresh_token_expire_days: int = Field(default=30, alias="REFRESH_TOKEN_EXPIRE_DAYS")
    refresh_token_retention_days: int = Field(default=30, alias="REFRESH_TOKEN_RETENTION_DAYS")
    refresh_token_pepper: Optional[str] = Field(default=None, alias="REFRESH_TOKEN_PEPPER")

    # Refresh cookie
    refresh_cookie_name: str = Field(default="refresh_token", alias="REFRESH_COOKIE_NAME")
    refresh_cookie_path: str = Field(default="/auth", alias="REFRESH_COOKIE_PATH")
    refresh_cookie_samesite: str = Field(default="lax", alias="REFRESH_COOKIE_SAMESITE")

    # App settings
    environment: str = Field(default="development", alias="ENVIRONMENT")
    frontend_url: str = Field(..., alias="FRONTEND_URL")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    rate_limit_enabled: bool = Field(default=True, alias="RATE_LIMIT_ENABLED")
    sentry_dsn: Optional[str] = Field(default=None, alias="SENTRY_DSN")

    # Server
    host: str = Field(default="127.0.0.1", alias="HOST")
    port: int = Field(default=8000, alias="PORT")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def database(self) -> DatabaseSettings:
        """Get database settings as a structured object"""
        return DatabaseSettings(url=self.database_url)

    @property
    def auth(self) -> AuthSettings:
        """Get auth settings as a structured object"""
        return AuthSettings(
            jwt_secret_key=self.jwt_secret_key,
            algorithm=self.algorithm,
            access_token_expire_minutes=self.access_token_expire_minutes,
            refresh_token_expire_days=self.refresh_token_expire_days,
            refresh_token_retention_days=self.refresh_token_retention_days,
            refresh_token_pepper=self.refresh_token_pepper or None
        )

    @property
    def cookies(self) -> CookieSettings:
        """Get refresh cookie attributes; Secure is forced on in production"""
        return CookieSettings(
            name=self.refresh_cookie_name,
            path=self.refresh_cookie_path,
            samesite=self.refresh_cookie_samesite,
            secure=self.is_production,
            max_age=self.refresh_token_expire_days * 24 * 60 * 60
        )

    @property
    def app(self) -> AppSettings:
        """Get app settings as a structured object"""
        return AppSettings(
            environment=self.environment,
            frontend_url=self.frontend_url,
            log_level=self.log_level
        )

    @property
    def cors_origins(self) -> list[str]:
        """Get CORS origins based on environment"""
        base_origins = [
            "http://localhost:5173",
            "http://127.0.0.1:5173"
        ]

        if self.environment == "production":
            return [self.frontend_url]

        return base_origins

    @property
    def is_development(self) -> bool:
        """Check if running in development mode"""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode"""
        return self.environment == "production"


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance (singleton pattern)"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
