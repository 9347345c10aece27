"""
Format-preserving encryption of environment files.

Only the value half of each 'KEY=VALUE' line is encrypted, and it is written
back as 'KEY=ENC[<algorithm>:<base64>]'. Comments, blank lines and line order
are kept as they are.

Password encrypted files carry the Argon2id salt in a comment on the first line:

\b
    # IRONVAULT_SALT=<base64>
    API_KEY=ENC[aes-gcm:...]

Files encrypted for project recipients use the 'age' algorithm for every value
and need no salt.
"""

import base64
import binascii
import logging
import pathlib
import re
import typing

import attr

from . import kdf
from .algorithms import Algorithm, decrypt_from_base64, encrypt_to_base64, encryptor_for
from .recipients import open_with_identity, seal_for_recipients
from .utils import CorruptEnvelope, MissingSalt, PodxException, UnknownAlgorithm

log = logging.getLogger(__name__)

ENCRYPTED_VALUE = re.compile(r'^ENC\[([a-zA-Z0-9-]+):(.+)\]$')
SALT_MARKER = '# IRONVAULT_SALT='
AGE = 'age'

# A sealer returns the base64 ciphertext of a value; an opener reverses it
# given the algorithm id recorded on the line.
Sealer = typing.Callable[[bytes], str]
Opener = typing.Callable[[str, str], bytes]


@attr.s(frozen=True, kw_only=True)
class EnvEntry:
    key: str = attr.ib(default='')
    value: str = attr.ib(default='')
    encrypted: bool = attr.ib(default=False)
    algorithm: str = attr.ib(default='')
    is_comment: bool = attr.ib(default=False)

    # Original text of the line, dropped once the entry is modified.
    raw: typing.Optional[str] = attr.ib(default=None)

    def __attrs_post_init__(self):
        if self.encrypted and not self.algorithm:
            raise PodxException(f"Encrypted entry {self.key} has no algorithm")

    @classmethod
    def comment(cls, text: str) -> 'EnvEntry':
        return cls(is_comment=True, raw=text)

    def render(self) -> str:
        if self.raw is not None:
            return self.raw
        if self.encrypted:
            return f'{self.key}=ENC[{self.algorithm}:{self.value}]'
        return f'{self.key}={self.value}'

    def sealed(self, value: str, algorithm: str) -> 'EnvEntry':
        return attr.evolve(self, value=value, encrypted=True, algorithm=algorithm, raw=None)

    def opened(self, value: str) -> 'EnvEntry':
        return attr.evolve(self, value=value, encrypted=False, algorithm='', raw=None)


def parse_line(line: str) -> EnvEntry:
    trimmed = line.strip()
    if not trimmed or trimmed.startswith('#'):
        return EnvEntry.comment(line)

    index = line.find('=')
    if index == -1:
        return EnvEntry.comment(line)

    key = line[:index].strip()
    value = line[index + 1:]

    match = ENCRYPTED_VALUE.match(value)
    if match:
        return EnvEntry(
            key=key,
            value=match.group(2),
            encrypted=True,
            algorithm=match.group(1),
            raw=line)

    return EnvEntry(key=key, value=value, raw=line)


@attr.s(frozen=True)
class EnvFile:
    entries: typing.Tuple[EnvEntry, ...] = attr.ib(converter=tuple)
    trailing_newline: bool = attr.ib(default=True)

    def render(self) -> str:
        text = '\n'.join(entry.render() for entry in self.entries)
        if self.trailing_newline:
            text += '\n'
        return text

    def with_salt(self, salt: bytes) -> 'EnvFile':
        marker = EnvEntry.comment(SALT_MARKER + base64.b64encode(salt).decode('ascii'))
        return attr.evolve(self, entries=(marker, *self.entries))

    @property
    def has_salt(self) -> bool:
        """The salt marker is only ever written as the first line."""
        if not self.entries or not self.entries[0].is_comment:
            return False
        return self.entries[0].render().strip().startswith(SALT_MARKER)

    def without_salt(self) -> typing.Tuple[bytes, 'EnvFile']:
        """Read and remove the salt marker line."""
        if not self.has_salt:
            raise MissingSalt("No salt found in encrypted file")

        marker = self.entries[0].render().strip()
        salt = _decode(marker[len(SALT_MARKER):], "salt")
        return salt, attr.evolve(self, entries=self.entries[1:])


def parse(text: str) -> EnvFile:
    lines = text.split('\n')
    trailing_newline = text.endswith('\n')
    if trailing_newline or not text:
        lines = lines[:-1]
    return EnvFile([parse_line(line) for line in lines], trailing_newline)


def looks_like_env(path: pathlib.Path) -> bool:
    return path.name.startswith('.env') or path.name.endswith('.env')


def _decode(text: str, what: str) -> bytes:
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError):
        raise CorruptEnvelope(f"Invalid base64 {what}") from None


def encrypt_values(env: EnvFile, seal: Sealer, algorithm: str) -> EnvFile:
    """Encrypt every plaintext value, leaving comments and encrypted values alone."""
    entries: typing.List[EnvEntry] = []
    for entry in env.entries:
        if entry.is_comment or entry.encrypted:
            entries.append(entry)
            continue
        try:
            ciphertext = seal(entry.value.encode('utf-8'))
        except PodxException as error:
            raise type(error)(f"Failed to encrypt key '{entry.key}': {error.message}") from error
        entries.append(entry.sealed(ciphertext, algorithm))
    return attr.evolve(env, entries=entries)


def decrypt_values(env: EnvFile, open_: Opener) -> EnvFile:
    """Decrypt every encrypted value using the algorithm recorded on its line."""
    entries: typing.List[EnvEntry] = []
    for entry in env.entries:
        if entry.is_comment or not entry.encrypted:
            entries.append(entry)
            continue
        try:
            plaintext = open_(entry.algorithm, entry.value)
            value = plaintext.decode('utf-8')
        except UnicodeDecodeError:
            raise CorruptEnvelope(f"Decrypted value of key '{entry.key}' is not UTF-8") from None
        except PodxException as error:
            raise type(error)(f"Failed to decrypt key '{entry.key}': {error.message}") from error
        entries.append(entry.opened(value))
    return attr.evolve(env, entries=entries)


def encrypt_with_password(
        text: str,
        password: kdf.Password,
        algorithm: Algorithm = Algorithm.AES_GCM) -> str:
    env = parse(text)
    if env.has_salt:
        # Values already in the file were sealed with the existing salt.
        salt, env = env.without_salt()
        key = kdf.derive_with_salt(password, salt)
    else:
        key, salt = kdf.derive(password)
    encrypted = encrypt_values(
        env, lambda value: encrypt_to_base64(algorithm, value, key), str(algorithm))
    log.debug(f"Encrypted {len(env.entries)} lines with {algorithm}")
    return encrypted.with_salt(salt).render()


def decrypt_with_password(text: str, password: kdf.Password) -> str:
    salt, env = parse(text).without_salt()
    key = kdf.derive_with_salt(password, salt)
    return decrypt_values(
        env, lambda name, value: decrypt_from_base64(encryptor_for(name), value, key)).render()


def encrypt_for_recipients(text: str, keys: typing.Sequence[str]) -> str:
    def seal(value: bytes) -> str:
        return base64.b64encode(seal_for_recipients(value, keys)).decode('ascii')

    return encrypt_values(parse(text), seal, AGE).render()


def decrypt_with_identity(text: str, identity: str) -> str:
    def open_(name: str, value: str) -> bytes:
        if name != AGE:
            raise UnknownAlgorithm(f"Unknown algorithm: {name} (expected {AGE})")
        return open_with_identity(_decode(value, "ciphertext"), identity)

    return decrypt_values(parse(text), open_).render()
