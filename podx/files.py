"""
Encryption of single files outside of a project.

Password encrypted files use the envelope format from `podx.envelope`, or
the format-preserving codec from `podx.env` for environment files. Files can
also be encrypted to the local user's own age key.
"""

import logging
import pathlib
import typing

from . import envelope
from .algorithms import Algorithm
from .env import decrypt_with_password, encrypt_with_password
from .kdf import Password
from .keystore import KeyStore
from .recipients import open_with_identity, seal_for_recipients
from .utils import PathCollision, PodxException, decode_text, same_path, save_file

log = logging.getLogger(__name__)

OUTPUT_MODE = 0o600
ENC_EXT = '.enc'
ENV_EXT = '.podx'
AGE_EXT = '.age'
DEC_EXT = '.dec'


def encrypt_output(path: pathlib.Path) -> pathlib.Path:
    return path.with_name(path.name + ENC_EXT)


def env_encrypt_output(path: pathlib.Path) -> pathlib.Path:
    return path.with_name(path.name + ENV_EXT)


def age_encrypt_output(path: pathlib.Path) -> pathlib.Path:
    return path.with_name(path.name + AGE_EXT)


def decrypt_output(path: pathlib.Path) -> pathlib.Path:
    for ext in (ENC_EXT, ENV_EXT, AGE_EXT):
        if path.name.endswith(ext) and len(path.name) > len(ext):
            return path.with_name(path.name[:-len(ext)])
    return path.with_name(path.name + DEC_EXT)


def _check_paths(input: pathlib.Path, output: pathlib.Path) -> None:
    if same_path(input, output):
        raise PathCollision("Output must be different from input")


def _read(path: pathlib.Path) -> bytes:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        raise PodxException(f"Input file not found: {path}") from None
    except OSError as error:
        raise PodxException(f"Failed to read {path}: {error.strerror}") from error


def _replace(
        input: pathlib.Path,
        output: pathlib.Path,
        transform: typing.Callable[[bytes], bytes]) -> None:
    """Write the transformed input to output, then delete the input."""
    _check_paths(input, output)
    save_file(output, transform(_read(input)), OUTPUT_MODE)
    log.info(f"Encrypted {input} to {output}")
    try:
        input.unlink()
    except OSError as error:
        raise PodxException(f"Failed to delete original {input}: {error.strerror}") from error
    log.info(f"Deleted original {input}")


def _convert(
        input: pathlib.Path,
        output: pathlib.Path,
        transform: typing.Callable[[bytes], bytes]) -> None:
    _check_paths(input, output)
    save_file(output, transform(_read(input)), OUTPUT_MODE)
    log.info(f"Decrypted {input} to {output}")


def encrypt_file(
        input: pathlib.Path,
        output: pathlib.Path,
        password: Password,
        algorithm: Algorithm = Algorithm.AES_GCM) -> None:
    _replace(input, output, lambda data: envelope.seal(data, password, algorithm))


def decrypt_file(input: pathlib.Path, output: pathlib.Path, password: Password) -> None:
    _convert(input, output, lambda data: envelope.open_envelope(data, password))


def encrypt_env_file(
        input: pathlib.Path,
        output: pathlib.Path,
        password: Password,
        algorithm: Algorithm = Algorithm.AES_GCM) -> None:
    def transform(data: bytes) -> bytes:
        return encrypt_with_password(decode_text(data, input), password, algorithm).encode('utf-8')

    _replace(input, output, transform)


def decrypt_env_file(input: pathlib.Path, output: pathlib.Path, password: Password) -> None:
    def transform(data: bytes) -> bytes:
        return decrypt_with_password(decode_text(data, input), password).encode('utf-8')

    _convert(input, output, transform)


def encrypt_file_for_self(input: pathlib.Path, output: pathlib.Path, keystore: KeyStore) -> None:
    public_key = keystore.load_public_key()
    _replace(input, output, lambda data: seal_for_recipients(data, [public_key]))


def decrypt_file_with_identity(
        input: pathlib.Path,
        output: pathlib.Path,
        keystore: KeyStore) -> None:
    identity = keystore.load_private_identity()
    _convert(input, output, lambda data: open_with_identity(data, identity))
