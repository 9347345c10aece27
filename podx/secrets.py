import logging
import pathlib
import typing

import attr

from . import env
from .recipients import open_with_identity, seal_for_recipients
from .utils import PodxException, decode_text, save_file

log = logging.getLogger(__name__)

ENCRYPTED_EXT = '.podx'
ENCRYPTED_MODE = 0o644
DECRYPTED_MODE = 0o600


@attr.s(frozen=True, kw_only=True)
class Secret:
    decrypted: pathlib.Path = attr.ib()
    encrypted: pathlib.Path = attr.ib()

    def __attrs_post_init__(self):
        if self.encrypted.name != self.decrypted.name + ENCRYPTED_EXT:
            raise PodxException(
                f"{self.encrypted.name} is not the encrypted form of {self.decrypted.name}")

    @classmethod
    def from_decrypted(cls, path: pathlib.Path) -> 'Secret':
        return cls(decrypted=path, encrypted=path.with_name(path.name + ENCRYPTED_EXT))

    @classmethod
    def from_encrypted(cls, path: pathlib.Path) -> 'Secret':
        if not path.name.endswith(ENCRYPTED_EXT):
            raise PodxException(f"I don't know how to decrypt {path.name}")
        return cls(decrypted=path.with_name(path.name[:-len(ENCRYPTED_EXT)]), encrypted=path)

    def __str__(self):
        return self.decrypted.name

    @property
    def is_env(self) -> bool:
        return env.looks_like_env(self.decrypted)

    def plaintext(self) -> bytes:
        log.debug(f"Reading contents of {self.decrypted}")
        return self.decrypted.read_bytes()

    def ciphertext(self) -> bytes:
        log.debug(f"Reading contents of {self.encrypted}")
        return self.encrypted.read_bytes()

    def seal(self, plaintext: bytes, recipients: typing.Sequence[str]) -> bytes:
        if not self.is_env:
            return seal_for_recipients(plaintext, recipients)
        return env.encrypt_for_recipients(decode_text(plaintext, self.decrypted), recipients).encode('utf-8')

    def open(self, ciphertext: bytes, identity: str) -> bytes:
        if not self.is_env:
            return open_with_identity(ciphertext, identity)
        return env.decrypt_with_identity(decode_text(ciphertext, self.encrypted), identity).encode('utf-8')

    def write_encrypted(self, data: bytes) -> None:
        save_file(self.encrypted, data, ENCRYPTED_MODE)

    def write_decrypted(self, data: bytes) -> None:
        save_file(self.decrypted, data, DECRYPTED_MODE)
