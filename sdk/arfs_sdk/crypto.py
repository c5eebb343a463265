"""
Key derivation and symmetric encryption for private drives.

Drive keys are derived from a wallet signature over the drive ID and the
drive password; file keys are derived from the drive key and the file ID
with HKDF-SHA256, so a drive key never has to be written anywhere.
Payloads are sealed with AES-256-GCM; the 16-byte tag is appended to the
ciphertext and the 12-byte IV travels in the Cipher-IV tag.
"""

from __future__ import annotations

import base64
import os
import uuid
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from .errors import DecryptionError, ValidationError
from .types import CIPHER_AES256_GCM

KEY_SIZE = 32  # 256 bits for AES-256
IV_SIZE = 12  # 96 bits for AES-GCM
TAG_SIZE = 16


def b64url_encode(data: bytes) -> str:
    """URL-safe base64 without padding."""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def b64url_decode(value: str) -> bytes:
    padding = -len(value) % 4
    return base64.urlsafe_b64decode(value + "=" * padding)


def entity_id_bytes(entity_id: str) -> bytes:
    """Binary form of an entity ID used as key derivation info."""
    try:
        return uuid.UUID(entity_id).bytes
    except ValueError as e:
        raise ValidationError(f"Invalid entity ID: {entity_id}", field_name="entity_id") from e


def derive_drive_key(password: str, drive_signature: bytes) -> bytes:
    """Derive a drive key.

    Args:
        password: Drive password chosen by the user
        drive_signature: Wallet signature over the drive ID bytes

    Returns:
        32-byte drive key
    """
    if not password:
        raise ValidationError("Drive password cannot be empty", field_name="password")
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=None,
        info=password.encode("utf-8"),
    )
    return hkdf.derive(drive_signature)


def derive_file_key(file_id: str, drive_key: bytes) -> bytes:
    """Derive the per-file key from the drive key and the file ID."""
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=None,
        info=entity_id_bytes(file_id),
    )
    return hkdf.derive(drive_key)


@dataclass(frozen=True)
class CipherResult:
    """Encrypted payload plus the values published in its tags."""

    data: bytes
    cipher_iv: str
    cipher: str = CIPHER_AES256_GCM


def encrypt(data: bytes, key: bytes) -> CipherResult:
    """Encrypt with AES-256-GCM under a fresh random IV."""
    if len(key) != KEY_SIZE:
        raise ValidationError(f"Key must be {KEY_SIZE} bytes, got {len(key)}", field_name="key")
    iv = os.urandom(IV_SIZE)
    ciphertext = AESGCM(key).encrypt(iv, data, None)
    return CipherResult(data=ciphertext, cipher_iv=b64url_encode(iv))


def decrypt(data: bytes, cipher_iv: str, key: bytes, entity_id: str | None = None) -> bytes:
    """Decrypt an AES-256-GCM payload.

    Raises:
        DecryptionError: If the key is wrong or the ciphertext is corrupted
    """
    if len(key) != KEY_SIZE:
        raise DecryptionError(f"Key must be {KEY_SIZE} bytes, got {len(key)}", entity_id=entity_id)
    try:
        iv = b64url_decode(cipher_iv)
    except ValueError as e:
        raise DecryptionError(f"Malformed cipher IV: {cipher_iv}", entity_id=entity_id) from e
    if len(iv) != IV_SIZE or len(data) < TAG_SIZE:
        raise DecryptionError("Invalid encrypted data: too short", entity_id=entity_id)
    try:
        return AESGCM(key).decrypt(iv, data, None)
    except InvalidTag as e:
        raise DecryptionError("Wrong key or corrupted ciphertext", entity_id=entity_id) from e
