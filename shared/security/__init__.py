"""Security module for field encryption, hashing and one-time codes."""

from .crypto import (
    encrypt_data,
    decrypt_data,
    encrypt_field,
    decrypt_field,
    generate_hmac,
    verify_hmac,
    generate_numeric_code,
    mask_value,
)

__all__ = [
    "encrypt_data",
    "decrypt_data",
    "encrypt_field",
    "decrypt_field",
    "generate_hmac",
    "verify_hmac",
    "generate_numeric_code",
    "mask_value",
]
