"""Cryptographic utilities for sensitive fields and one-time codes.

Provides Fernet encryption of fields stored at rest, keyed hashing of
verification codes, and masking helpers for display.
"""

import hashlib
import hmac
import secrets
from base64 import b64decode, b64encode
from typing import Union

from cryptography.fernet import Fernet, InvalidToken

ENCRYPTED_PREFIX = "enc:"


def encrypt_data(
    data: Union[str, bytes], key: Union[str, bytes]
) -> str:
    """Encrypt data using Fernet symmetric encryption.

    Args:
        data: Data to encrypt (string or bytes)
        key: Fernet key

    Returns:
        Base64-encoded encrypted data
    """
    if isinstance(data, str):
        data = data.encode()

    if isinstance(key, str):
        key = key.encode()

    fernet = Fernet(key)
    encrypted = fernet.encrypt(data)
    return b64encode(encrypted).decode()


def decrypt_data(
    encrypted_data: Union[str, bytes], key: Union[str, bytes]
) -> str:
    """Decrypt data using Fernet symmetric encryption.

    Args:
        encrypted_data: Encrypted data (base64 string or bytes)
        key: Fernet key

    Returns:
        Decrypted data as string

    Raises:
        cryptography.fernet.InvalidToken: If the key is wrong or data was tampered with
    """
    if isinstance(encrypted_data, str):
        encrypted_data = b64decode(encrypted_data.encode())

    if isinstance(key, str):
        key = key.encode()

    fernet = Fernet(key)
    decrypted = fernet.decrypt(encrypted_data)
    return decrypted.decode()


def encrypt_field(value: str, key: Union[str, bytes]) -> str:
    """Encrypt a document field; empty values and already encrypted values pass through."""
    if not value or value.startswith(ENCRYPTED_PREFIX):
        return value
    return ENCRYPTED_PREFIX + encrypt_data(value, key)


def decrypt_field(value: str, key: Union[str, bytes]) -> str:
    """Decrypt a field produced by :func:`encrypt_field`; plaintext passes through."""
    if not value or not value.startswith(ENCRYPTED_PREFIX):
        return value
    return decrypt_data(value[len(ENCRYPTED_PREFIX):], key)


def generate_hmac(
    data: Union[str, bytes], key: Union[str, bytes], algorithm: str = "sha256"
) -> str:
    """Generate a keyed hash of data.

    Args:
        data: Data to create HMAC for
        key: Secret key
        algorithm: HMAC algorithm (sha256, sha512)

    Returns:
        Hexadecimal HMAC string
    """
    if isinstance(data, str):
        data = data.encode()

    if isinstance(key, str):
        key = key.encode()

    if algorithm == "sha256":
        hasher = hmac.new(key, data, hashlib.sha256)
    elif algorithm == "sha512":
        hasher = hmac.new(key, data, hashlib.sha512)
    else:
        raise ValueError(f"Unsupported HMAC algorithm: {algorithm}")

    return hasher.hexdigest()


def verify_hmac(
    data: Union[str, bytes],
    key: Union[str, bytes],
    expected_hmac: str,
    algorithm: str = "sha256",
) -> bool:
    """Verify an HMAC in constant time.

    Args:
        data: Data to verify
        key: Secret key
        expected_hmac: Expected HMAC value
        algorithm: HMAC algorithm (sha256, sha512)

    Returns:
        True if HMAC matches, False otherwise
    """
    computed_hmac = generate_hmac(data, key, algorithm)
    return hmac.compare_digest(computed_hmac, expected_hmac)


def generate_numeric_code(length: int = 6) -> str:
    """Generate a random numeric code without a leading zero (6 digits -> 100000-999999)."""
    low = 10 ** (length - 1)
    return str(low + secrets.randbelow(9 * low))


def mask_value(value: str, visible: int = 4, mask_char: str = "X") -> str:
    """Mask all but the last ``visible`` characters."""
    if not value:
        return value
    if len(value) <= visible:
        return mask_char * len(value)
    return mask_char * (len(value) - visible) + value[-visible:]


def generate_random_key() -> str:
    """Generate a random Fernet encryption key.

    Returns:
        Base64-encoded encryption key
    """
    return Fernet.generate_key().decode()


__all__ = [
    "InvalidToken",
    "encrypt_data",
    "decrypt_data",
    "encrypt_field",
    "decrypt_field",
    "generate_hmac",
    "verify_hmac",
    "generate_numeric_code",
    "mask_value",
    "generate_random_key",
]
