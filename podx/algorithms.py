"""
Symmetric AEAD ciphers used for password based encryption.

Every ciphertext is laid out as '[nonce (12 bytes)][sealed data + tag]'.
"""

import base64
import binascii
import enum
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305

from .utils import CorruptEnvelope, DecryptionFailed, InvalidKeySize, UnknownAlgorithm

log = logging.getLogger(__name__)

KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16


class Algorithm(enum.Enum):
    AES_GCM = 'aes-gcm'
    CHACHA20 = 'chacha20'

    def __str__(self):
        return self.value

    @property
    def tag(self) -> int:
        """The byte stored in a symmetric envelope header."""
        if self is Algorithm.AES_GCM:
            return 0
        if self is Algorithm.CHACHA20:
            return 1
        raise AssertionError(f"Unhandled algorithm {self!r}")

    @classmethod
    def from_tag(cls, tag: int) -> 'Algorithm':
        for algorithm in cls:
            if algorithm.tag == tag:
                return algorithm
        raise UnknownAlgorithm(f"Unknown algorithm tag {tag}")

    def _aead(self, key: bytes):
        if len(key) != KEY_SIZE:
            raise InvalidKeySize(
                f"Invalid key size: expected {KEY_SIZE} bytes, got {len(key)}")
        if self is Algorithm.AES_GCM:
            return AESGCM(key)
        if self is Algorithm.CHACHA20:
            return ChaCha20Poly1305(key)
        raise AssertionError(f"Unhandled algorithm {self!r}")

    def encrypt(self, plaintext: bytes, key: bytes) -> bytes:
        aead = self._aead(key)
        nonce = os.urandom(NONCE_SIZE)
        return nonce + aead.encrypt(nonce, plaintext, None)

    def decrypt(self, ciphertext: bytes, key: bytes) -> bytes:
        aead = self._aead(key)
        if len(ciphertext) < NONCE_SIZE + TAG_SIZE:
            raise CorruptEnvelope("Ciphertext too short")
        nonce, sealed = ciphertext[:NONCE_SIZE], ciphertext[NONCE_SIZE:]
        try:
            return aead.decrypt(nonce, sealed, None)
        except InvalidTag:
            raise DecryptionFailed() from None


SUPPORTED = tuple(algorithm.value for algorithm in Algorithm)


def encryptor_for(name: str) -> Algorithm:
    """Select an algorithm by its identifier, e.g. 'aes-gcm'."""
    try:
        return Algorithm(name)
    except ValueError:
        raise UnknownAlgorithm(
            f"Unknown algorithm: {name} (supported: {', '.join(SUPPORTED)})") from None


def encrypt_to_base64(algorithm: Algorithm, plaintext: bytes, key: bytes) -> str:
    return base64.b64encode(algorithm.encrypt(plaintext, key)).decode('ascii')


def decrypt_from_base64(algorithm: Algorithm, ciphertext: str, key: bytes) -> bytes:
    try:
        raw = base64.b64decode(ciphertext, validate=True)
    except (binascii.Error, ValueError):
        raise CorruptEnvelope("Failed to decode base64 ciphertext") from None
    return algorithm.decrypt(raw, key)
