"""
Encryption helpers for Plaid access tokens stored at rest.

AES-256-GCM with a per-value PBKDF2-SHA512 derived key. The stored format is
``salt:iv:tag:ciphertext`` with every part base64 encoded.
"""
import base64
import os

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

IV_LENGTH = 16
SALT_LENGTH = 64
TAG_LENGTH = 16
KEY_LENGTH = 32
ITERATIONS = 100000


class EncryptionError(Exception):
    pass


def _derive_key(master_key: str, salt: bytes) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA512(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=ITERATIONS,
    )
    return kdf.derive(master_key.encode("utf-8"))


def encrypt(text: str, master_key: str) -> str:
    if not master_key:
        raise EncryptionError("Encryption key not configured. Set ENCRYPTION_KEY in environment variables.")

    salt = os.urandom(SALT_LENGTH)
    iv = os.urandom(IV_LENGTH)
    key = _derive_key(master_key, salt)

    # AESGCM appends the tag to the ciphertext
    sealed = AESGCM(key).encrypt(iv, text.encode("utf-8"), None)
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]

    return ":".join(
        base64.b64encode(part).decode("ascii") for part in (salt, iv, tag, ciphertext)
    )


def decrypt(encrypted: str, master_key: str) -> str:
    if not master_key:
        raise EncryptionError("Encryption key not configured. Set ENCRYPTION_KEY in environment variables.")

    parts = encrypted.split(":")
    if len(parts) != 4:
        raise EncryptionError("Invalid encrypted data format")

    try:
        salt, iv, tag, ciphertext = (base64.b64decode(part) for part in parts)
        key = _derive_key(master_key, salt)
        plaintext = AESGCM(key).decrypt(iv, ciphertext + tag, None)
    except Exception as e:
        raise EncryptionError(f"Decryption failed: {str(e)}") from e
    return plaintext.decode("utf-8")


def is_encrypted(value: str) -> bool:
    return isinstance(value, str) and value.count(":") == 3
