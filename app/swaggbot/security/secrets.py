"""
At-rest encryption for stored credentials.

AES-256-GCM with a per-secret key derived by scrypt from the configured
master key and a random salt. Every call is self-contained, so the
functions are safe to use from concurrent requests.
"""

import base64
import binascii
import json
import os
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from swaggbot.errors import ConfigurationError, CorruptedSecretError
from swaggbot.utils.logging import get_logger

logger = get_logger(__name__)

IV_LENGTH = 16
SALT_LENGTH = 32
KEY_LENGTH = 32
TAG_LENGTH = 16

ENCRYPTED_FIELDS = frozenset({"ciphertext", "iv", "authTag", "salt"})


@dataclass(frozen=True)
class EncryptedSecret:
    """Base64-encoded components of one encrypted value."""

    ciphertext: str
    iv: str
    auth_tag: str
    salt: str

    def to_dict(self) -> dict[str, str]:
        return {
            "ciphertext": self.ciphertext,
            "iv": self.iv,
            "authTag": self.auth_tag,
            "salt": self.salt,
        }


def _derive_key(master_key: str, salt: bytes) -> bytes:
    kdf = Scrypt(salt=salt, length=KEY_LENGTH, n=2**14, r=8, p=1)
    return kdf.derive(master_key.encode("utf-8"))


class SecretBox:
    """Encrypt and decrypt strings with the configured master key."""

    def __init__(self, master_key: str | None):
        self._master_key = master_key

    def _key(self, salt: bytes) -> bytes:
        if not self._master_key:
            raise ConfigurationError("security.encryption_key is not configured")
        return _derive_key(self._master_key, salt)

    def encrypt(self, plaintext: str) -> EncryptedSecret:
        salt = os.urandom(SALT_LENGTH)
        iv = os.urandom(IV_LENGTH)
        sealed = AESGCM(self._key(salt)).encrypt(iv, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return EncryptedSecret(
            ciphertext=base64.b64encode(ciphertext).decode("ascii"),
            iv=base64.b64encode(iv).decode("ascii"),
            auth_tag=base64.b64encode(tag).decode("ascii"),
            salt=base64.b64encode(salt).decode("ascii"),
        )

    def decrypt(self, secret: EncryptedSecret) -> str:
        """
        Decrypt a secret.

        Raises:
            CorruptedSecretError: If any component fails to decode or the
                authentication tag does not verify.
        """
        try:
            salt = base64.b64decode(secret.salt, validate=True)
            iv = base64.b64decode(secret.iv, validate=True)
            tag = base64.b64decode(secret.auth_tag, validate=True)
            ciphertext = base64.b64decode(secret.ciphertext, validate=True)
        except (binascii.Error, ValueError) as e:
            logger.error("Decryption failed: undecodable component (%s)", e)
            raise CorruptedSecretError() from e

        try:
            plaintext = AESGCM(self._key(salt)).decrypt(iv, ciphertext + tag, None)
            return plaintext.decode("utf-8")
        except (InvalidTag, ValueError) as e:
            logger.error("Decryption failed: %s", type(e).__name__)
            raise CorruptedSecretError() from e

    def seal(self, plaintext: str) -> str:
        """Encrypt and serialize in one step."""
        return serialize_encrypted(self.encrypt(plaintext))

    def open(self, serialized: str) -> str:
        """Deserialize and decrypt in one step."""
        return self.decrypt(deserialize_encrypted(serialized))


def serialize_encrypted(secret: EncryptedSecret) -> str:
    """Serialize an encrypted secret for storage."""
    return json.dumps(secret.to_dict())


def deserialize_encrypted(serialized: str) -> EncryptedSecret:
    """
    Parse a stored secret.

    Raises:
        CorruptedSecretError: If the value is not a record of exactly the
            four expected string fields.
    """
    try:
        data = json.loads(serialized)
    except (TypeError, ValueError) as e:
        logger.error("Failed to deserialize encrypted data")
        raise CorruptedSecretError("Invalid encrypted data format") from e

    if not _has_encrypted_shape(data):
        raise CorruptedSecretError("Invalid encrypted data format")

    return EncryptedSecret(
        ciphertext=data["ciphertext"],
        iv=data["iv"],
        auth_tag=data["authTag"],
        salt=data["salt"],
    )


def _has_encrypted_shape(data: object) -> bool:
    return (
        isinstance(data, dict)
        and set(data) == ENCRYPTED_FIELDS
        and all(isinstance(value, str) for value in data.values())
    )


def is_encrypted(value: str) -> bool:
    """Check whether a string is a serialized encrypted secret."""
    try:
        data = json.loads(value)
    except (TypeError, ValueError):
        return False
    return _has_encrypted_shape(data)
