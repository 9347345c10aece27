"""
Password based envelopes for single files.

The layout is '[salt (16 bytes)][algorithm (1 byte)][nonce (12 bytes)][sealed data + tag]',
where the algorithm byte is 0 for AES-256-GCM and 1 for ChaCha20-Poly1305.
"""

import logging

from . import kdf
from .algorithms import NONCE_SIZE, TAG_SIZE, Algorithm
from .utils import CorruptEnvelope

log = logging.getLogger(__name__)

HEADER_SIZE = kdf.SALT_SIZE + 1
MIN_SIZE = HEADER_SIZE + NONCE_SIZE + TAG_SIZE


def seal(
        plaintext: bytes,
        password: kdf.Password,
        algorithm: Algorithm = Algorithm.AES_GCM) -> bytes:
    key, salt = kdf.derive(password)
    ciphertext = algorithm.encrypt(plaintext, key)
    log.debug(f"Sealed {len(plaintext)} bytes with {algorithm}")
    return salt + bytes([algorithm.tag]) + ciphertext


def open_envelope(envelope: bytes, password: kdf.Password) -> bytes:
    # Reject malformed input before paying for key derivation.
    if len(envelope) < MIN_SIZE:
        raise CorruptEnvelope("File too small or corrupted")

    salt = envelope[:kdf.SALT_SIZE]
    algorithm = Algorithm.from_tag(envelope[kdf.SALT_SIZE])
    ciphertext = envelope[HEADER_SIZE:]

    key = kdf.derive_with_salt(password, salt)
    log.debug(f"Opening envelope with {algorithm}")
    return algorithm.decrypt(ciphertext, key)
