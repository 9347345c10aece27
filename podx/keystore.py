"""
Storage for the local user's age keys.

The default store lives in '~/.config/podx':

\b
    age-keys.txt                    every identity ever generated, newest last
    age-recipients/default.txt      public key of the newest identity
"""

import datetime
import logging
import os
import pathlib
import typing

import attr

from .recipients import SECRET_PREFIX, generate_identity, parse_identity
from .utils import NoIdentity, PodxException, write_file

log = logging.getLogger(__name__)

KEYS_FILE = 'age-keys.txt'
RECIPIENTS_DIR = 'age-recipients'
DEFAULT_RECIPIENT = 'default.txt'


def default_directory() -> pathlib.Path:
    return pathlib.Path.home() / '.config' / 'podx'


class KeyStore:
    def load_private_identity(self) -> str:
        raise NotImplementedError

    def load_public_key(self) -> str:
        raise NotImplementedError

    def generate_identity(self) -> typing.Tuple[str, str]:
        """Create and remember a new identity, returning (public, private)."""
        raise NotImplementedError


def last_identity(text: str) -> typing.Optional[str]:
    """Return the last valid 'AGE-SECRET-KEY-' line, as newer keys are appended."""
    candidates = [line.strip() for line in text.splitlines()
                  if line.strip().startswith(SECRET_PREFIX)]
    for candidate in reversed(candidates):
        try:
            parse_identity(candidate)
        except NoIdentity:
            log.warning("Ignoring an invalid age identity in the key file")
            continue
        return candidate
    return None


@attr.s(frozen=True)
class FileKeyStore(KeyStore):
    directory: pathlib.Path = attr.ib(factory=default_directory)

    @property
    def keys_file(self) -> pathlib.Path:
        return self.directory / KEYS_FILE

    @property
    def public_key_file(self) -> pathlib.Path:
        return self.directory / RECIPIENTS_DIR / DEFAULT_RECIPIENT

    def load_private_identity(self) -> str:
        try:
            text = self.keys_file.read_text()
        except OSError:
            raise NoIdentity(
                "No age identity found. Generate one with 'podx keygen'") from None

        identity = last_identity(text)
        if identity is None:
            raise NoIdentity(f"No age identity found in {self.keys_file}")
        return identity

    def load_public_key(self) -> str:
        try:
            return self.public_key_file.read_text().strip()
        except OSError:
            raise NoIdentity(
                "No age public key found. Generate one with 'podx keygen'") from None

    def ensure_directories(self) -> None:
        for directory in (self.directory, self.directory / RECIPIENTS_DIR):
            directory.mkdir(mode=0o700, parents=True, exist_ok=True)

    def generate_identity(self) -> typing.Tuple[str, str]:
        private, public = generate_identity()
        created = datetime.datetime.now(datetime.timezone.utc).isoformat(timespec='seconds')

        try:
            self.ensure_directories()
            fd = os.open(self.keys_file, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o600)
            with os.fdopen(fd, 'a') as f:
                f.write(f"# created: {created}\n# public key: {public}\n{private}\n")
            write_file(self.public_key_file, f"{public}\n".encode(), 0o644)
        except OSError as error:
            raise PodxException(f"Failed to save age key: {error}") from error

        log.info(f"Generated age identity {public} in {self.keys_file}")
        return public, private
