# app/utils/encryption.py
"""Fernet helpers for calendar OAuth tokens at rest"""
from typing import Optional

from cryptography.fernet import Fernet

from app.config.settings import get_settings


def get_cipher() -> Fernet:
    """Fernet cipher keyed by CALENDAR_ENCRYPTION_KEY (generate with Fernet.generate_key())"""
    key = get_settings().CALENDAR_ENCRYPTION_KEY
    return Fernet(key.encode() if isinstance(key, str) else key)


def encrypt_token(token: Optional[str]) -> Optional[bytes]:
    if not token:
        return None
    return get_cipher().encrypt(token.encode())


def decrypt_token(encrypted_token: Optional[bytes]) -> Optional[str]:
    if not encrypted_token:
        return None
    return get_cipher().decrypt(encrypted_token).decode()
