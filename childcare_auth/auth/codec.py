import hashlib
import hmac
import secrets
from typing import Optional


class TokenCodec:
    """Generates refresh secrets and the digests they are looked up by.

    The digest is deterministic so it can be used for an equality lookup in
    the store. With a pepper configured it becomes an HMAC, so a leaked table
    cannot be checked against candidate secrets without the key.
    """

    SECRET_BYTES = 32  # 256 bits

    def __init__(self, pepper: Optional[str] = None):
        self._pepper = pepper.encode("utf-8") if pepper else None

    @classmethod
    def generate_secret(cls) -> str:
        """Generate a cryptographically secure, cookie-safe refresh secret"""
        return secrets.token_urlsafe(cls.SECRET_BYTES)

    def hash(self, secret: str) -> str:
        """Hex digest of a refresh secret, used only for equality lookup"""
        data = secret.encode("utf-8")
        if self._pepper:
            return hmac.new(self._pepper, data, hashlib.sha256).hexdigest()
        return hashlib.sha256(data).hexdigest()
