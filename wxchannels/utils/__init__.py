"""Utility functions and helpers."""

from .wecom_crypto import (
    WeComCryptoError,
    compute_signature,
    verify_signature,
    decrypt_message,
    encrypt_message,
    verify_url,
    parse_message,
)

__all__ = [
    "WeComCryptoError",
    "compute_signature",
    "verify_signature",
    "decrypt_message",
    "encrypt_message",
    "verify_url",
    "parse_message",
]
