import logging
import os
import pathlib
import tempfile
import typing

import click
import git

log = logging.getLogger(__name__)


class PodxException(click.ClickException):
    pass


class UnknownAlgorithm(PodxException):
    pass


class InvalidKeySize(PodxException):
    pass


class CorruptEnvelope(PodxException):
    pass


class DecryptionFailed(PodxException):
    def __init__(self, message: str = "Decryption failed (wrong password or key, or corrupted data)"):
        super().__init__(message)


class InvalidRecipient(PodxException):
    pass


class NoRecipients(PodxException):
    pass


class NoIdentity(PodxException):
    pass


class MissingSalt(PodxException):
    pass


class DuplicateRecipient(PodxException):
    pass


class DuplicateSecretPattern(PodxException):
    pass


class PathCollision(PodxException):
    pass


class ProjectNotFound(PodxException):
    pass


class ProjectExists(PodxException):
    pass


def find_git_directory() -> typing.Optional[pathlib.Path]:
    try:
        repo = git.Repo(search_parent_directories=True)
    except git.exc.InvalidGitRepositoryError:
        return None
    return pathlib.Path(repo.working_dir)


def same_path(a: pathlib.Path, b: pathlib.Path) -> bool:
    """Check if two paths resolve to the same file."""
    return a.resolve() == b.resolve()


def write_file(path: pathlib.Path, data: bytes, mode: int) -> None:
    """
    Durably write a file with the given permission bits.

    The data is written to a temporary file in the same directory, flushed to
    disk and moved into place, so readers never see a partial file.
    """
    fd, tmp_path = tempfile.mkstemp(prefix=f'.{path.name}.', dir=path.parent)
    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    finally:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass
    log.debug(f"Wrote {len(data)} bytes to {path} with mode {mode:o}")


def save_file(path: pathlib.Path, data: bytes, mode: int) -> None:
    try:
        write_file(path, data, mode)
    except OSError as error:
        raise PodxException(f"Failed to write {path}: {error.strerror}") from error


def decode_text(data: bytes, path: pathlib.Path) -> str:
    try:
        return data.decode('utf-8')
    except UnicodeDecodeError:
        raise PodxException(f"{path.name} is not a UTF-8 text file") from None
