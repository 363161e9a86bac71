"""
Security utilities: Fernet encryption for learners' model keys and JWT verification.
"""

from dataclasses import dataclass

from cryptography.fernet import Fernet
from jose import jwt, JWTError

from app.config import get_settings


@dataclass(frozen=True)
class CurrentUser:
    """Identity claims carried by the access token."""
    id: str
    role: str = "student"  # student | faculty | admin
    name: str = "Student"

    @property
    def is_faculty(self) -> bool:
        return self.role == "faculty"


# ── Fernet Encryption (for learner model keys) ──────────
def _get_fernet() -> Fernet:
    """Get Fernet instance from config secret key."""
    settings = get_settings()
    return Fernet(settings.ENCRYPTION_SECRET_KEY.encode())


def encrypt_value(plaintext: str) -> str:
    """Encrypt a string value using Fernet symmetric encryption.

    Returned as text so it can be stored in a plain text column.
    """
    f = _get_fernet()
    return f.encrypt(plaintext.encode()).decode()


def decrypt_value(ciphertext: str) -> str:
    """Decrypt a Fernet-encrypted value back to string.

    Raises:
        InvalidToken: If the secret key is wrong or data is corrupted.
    """
    f = _get_fernet()
    return f.decrypt(ciphertext.encode()).decode()


# ── JWT Token ────────────────────────────────────────────
def decode_access_token(token: str) -> dict | None:
    """Decode and validate a JWT token. Returns payload or None if invalid."""
    settings = get_settings()
    try:
        payload = jwt.decode(
            token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM]
        )
        return payload
    except JWTError:
        return None
