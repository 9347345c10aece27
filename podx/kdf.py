import logging
import os
import typing

from argon2.low_level import Type, hash_secret_raw

from .utils import CorruptEnvelope

log = logging.getLogger(__name__)

SALT_SIZE = 16

# Fixed so that encrypted files stay portable without storing parameters.
ARGON2_PARAMS = dict(
    time_cost=3,
    memory_cost=64 * 1024,
    parallelism=4,
    hash_len=32,
    type=Type.ID,
)

Password = typing.Union[str, bytes]


def _password_bytes(password: Password) -> bytes:
    if isinstance(password, str):
        return password.encode('utf-8')
    return bytes(password)


def derive_with_salt(password: Password, salt: bytes) -> bytes:
    """Derive a 32-byte key from a password and a known salt using Argon2id."""
    if len(salt) != SALT_SIZE:
        raise CorruptEnvelope(
            f"Invalid salt size: expected {SALT_SIZE} bytes, got {len(salt)}")
    return hash_secret_raw(_password_bytes(password), salt, **ARGON2_PARAMS)


def derive(
        password: Password,
        salt: typing.Optional[bytes] = None) -> typing.Tuple[bytes, bytes]:
    """Derive a key from a password, generating a fresh salt if none is given."""
    if salt is None:
        salt = os.urandom(SALT_SIZE)
    log.debug("Deriving key with Argon2id")
    return derive_with_salt(password, salt), salt
