"""
Fernet encryption for connected-account access tokens.
"""

import base64
from cryptography.fernet import Fernet
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from config import settings


def _get_fernet() -> Fernet:
    """Build a Fernet instance from ENCRYPTION_KEY."""
    key = settings.ENCRYPTION_KEY

    # Anything that is not exactly 32 raw bytes is stretched with PBKDF2
    if len(key) != 32:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=b"creator_trends_token_salt",
            iterations=100000,
        )
        key = base64.urlsafe_b64encode(kdf.derive(key.encode()))
    else:
        key = base64.urlsafe_b64encode(key.encode())

    return Fernet(key)


def encrypt_token(token: str) -> str:
    """
    Encrypt a platform access token before it is stored on a connection.

    Args:
        token: Plain text token

    Returns:
        Base64-encoded Fernet ciphertext
    """
    return _get_fernet().encrypt(token.encode()).decode()


def decrypt_token(encrypted_token: str) -> str:
    """Decrypt a stored connection token. Raises InvalidToken on a key mismatch."""
    return _get_fernet().decrypt(encrypted_token.encode()).decode()
