"""METRICSNAP — Credential Decryption.

Stored store keys are AES-256-CBC ciphertexts in the form
``<iv hex>:<ciphertext hex>`` with PKCS7 padding, keyed by a 32-byte
hex key from settings.
"""

import os

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from metricsnap.config import settings
from metricsnap.core.errors import DecryptionError

BLOCK_SIZE_BITS = 128


def _load_key(key_hex: str | None) -> bytes:
    key_hex = key_hex if key_hex is not None else settings.encryption_key
    try:
        key = bytes.fromhex(key_hex)
    except ValueError as e:
        raise DecryptionError("Encryption key is not valid hex") from e
    if len(key) != 32:
        raise DecryptionError("Encryption key must be 32 bytes (64 hex chars)")
    return key


def encrypt(plaintext: str, key_hex: str | None = None, iv: bytes | None = None) -> str:
    """Encrypt a secret into ``iv:ciphertext`` hex form."""
    key = _load_key(key_hex)
    iv = iv or os.urandom(16)
    padder = padding.PKCS7(BLOCK_SIZE_BITS).padder()
    padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()
    return f"{iv.hex()}:{ciphertext.hex()}"


def decrypt(secret: str, key_hex: str | None = None) -> str:
    """Decrypt an ``iv:ciphertext`` hex secret.

    Raises:
        DecryptionError: on a malformed secret, a bad key, or bad padding.
    """
    key = _load_key(key_hex)
    try:
        iv_hex, ct_hex = secret.split(":", 1)
        iv = bytes.fromhex(iv_hex)
        ciphertext = bytes.fromhex(ct_hex)
        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(BLOCK_SIZE_BITS).unpadder()
        plaintext = unpadder.update(padded) + unpadder.finalize()
        return plaintext.decode("utf-8")
    except (ValueError, AttributeError, UnicodeDecodeError) as e:
        raise DecryptionError(f"Decryption failed: {e}") from e
