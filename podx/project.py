import logging
import os.path
import pathlib
import typing

import attr
import git
import yaml

from .keystore import FileKeyStore, KeyStore
from .recipients import parse_recipient
from .secrets import ENCRYPTED_EXT, Secret
from .utils import (
    DuplicateRecipient,
    DuplicateSecretPattern,
    NoIdentity,
    NoRecipients,
    PodxException,
    ProjectExists,
    ProjectNotFound,
    write_file,
)

log = logging.getLogger(__name__)

CONFIG_FILE = '.podx.yaml'
CONFIG_HEADER = "# PODX Project Configuration\n\n"
CONFIG_MODE = 0o644
GITIGNORE_FILE = '.gitignore'
GITIGNORE_HEADER = "# PODX - Decrypted secrets (DO NOT COMMIT)"
BACKENDS = ('age', 'gpg')
DEFAULT_PATTERN = '.env'
DEFAULT_RECIPIENT = 'Owner'


@attr.s(frozen=True)
class Recipient:
    name: str = attr.ib()
    key: str = attr.ib()


@attr.s(kw_only=True)
class ProjectConfig:
    version: int = attr.ib(default=1)
    backend: str = attr.ib(default='age', validator=attr.validators.in_(BACKENDS))
    recipients: typing.List[Recipient] = attr.ib(factory=list)
    secrets: typing.List[str] = attr.ib(factory=list)

    def dump(self) -> str:
        data = {
            'version': self.version,
            'backend': self.backend,
            'recipients': [{'name': r.name, 'key': r.key} for r in self.recipients],
            'secrets': list(self.secrets),
        }
        return CONFIG_HEADER + yaml.safe_dump(data, sort_keys=False, default_flow_style=False)

    @classmethod
    def parse(cls, text: str) -> 'ProjectConfig':
        try:
            data = yaml.safe_load(text) or {}
            if not isinstance(data, dict):
                raise TypeError("expected a mapping")
            return cls(
                version=int(data.get('version', 1)),
                backend=str(data.get('backend', 'age')),
                recipients=[Recipient(name=str(r['name']), key=str(r['key']))
                            for r in data.get('recipients') or []],
                secrets=[str(s) for s in data.get('secrets') or []])
        except (yaml.YAMLError, TypeError, KeyError, ValueError) as error:
            raise PodxException(f"Invalid {CONFIG_FILE}: {error}") from None


@attr.s(frozen=True, kw_only=True)
class BatchResult:
    """Outcome of encrypting or decrypting all secrets in a project."""

    count: int = attr.ib()
    total: int = attr.ib()
    error: typing.Optional[PodxException] = attr.ib(default=None)

    @property
    def ok(self) -> bool:
        return self.error is None


@attr.s
class Project:
    root: pathlib.Path = attr.ib()
    config: ProjectConfig = attr.ib(factory=ProjectConfig)
    keystore: KeyStore = attr.ib(factory=FileKeyStore)

    @property
    def config_path(self) -> pathlib.Path:
        return self.root / CONFIG_FILE

    @classmethod
    def init(cls, root: pathlib.Path, keystore: KeyStore) -> 'Project':
        project = cls(root=root, keystore=keystore)
        if project.config_path.exists():
            raise ProjectExists(f"Project already initialized ({CONFIG_FILE} exists)")

        project.config.secrets.append(DEFAULT_PATTERN)
        try:
            project.config.recipients.append(
                Recipient(name=DEFAULT_RECIPIENT, key=keystore.load_public_key()))
        except NoIdentity:
            log.info("No local age public key, starting without recipients")

        project.save()

        try:
            project.update_gitignore()
        except OSError as error:
            log.warning(f"Could not update {GITIGNORE_FILE}: {error}")

        return project

    @classmethod
    def load(cls, root: pathlib.Path, keystore: KeyStore) -> 'Project':
        path = root / CONFIG_FILE
        try:
            text = path.read_text()
        except OSError:
            raise ProjectNotFound(f"No {CONFIG_FILE} found. Run 'podx init' first") from None
        return cls(root=root, config=ProjectConfig.parse(text), keystore=keystore)

    def save(self) -> None:
        try:
            write_file(self.config_path, self.config.dump().encode('utf-8'), CONFIG_MODE)
        except OSError as error:
            raise PodxException(f"Failed to write {CONFIG_FILE}: {error.strerror}") from error

    def rel(self, path: pathlib.Path) -> str:
        return os.path.relpath(path.as_posix(), self.root.as_posix())

    def add_recipient(self, name: str, key: str) -> Recipient:
        key = key.strip()
        parse_recipient(key)

        if any(r.key == key for r in self.config.recipients):
            raise DuplicateRecipient("Recipient with this key already exists")

        recipient = Recipient(name=name, key=key)
        self.config.recipients.append(recipient)
        self.save()
        log.info(f"Added recipient {name}")
        return recipient

    def add_secret(self, pattern: str) -> None:
        if pattern in self.config.secrets:
            raise DuplicateSecretPattern(f"Secret pattern {pattern} already exists")

        self.config.secrets.append(pattern)
        self.save()
        log.info(f"Added secret pattern {pattern}")

    def recipient_keys(self) -> typing.List[str]:
        if not self.config.recipients:
            raise NoRecipients("No recipients configured. Add one with 'podx add-recipient'")
        return [r.key for r in self.config.recipients]

    def search(self, pattern: str) -> typing.Sequence[pathlib.Path]:
        """Find files that match a pattern, logging patterns that can't be searched."""
        try:
            return tuple(sorted(p for p in self.root.glob(pattern) if p.is_file()))
        except (ValueError, NotImplementedError, OSError) as error:
            log.warning(f"Skipping pattern {pattern!r}: {error}")
            return ()

    def plaintexts(self) -> typing.List[Secret]:
        """Secrets with a plaintext file that needs encrypting."""
        found: typing.Dict[pathlib.Path, Secret] = {}
        for pattern in self.config.secrets:
            for path in self.search(pattern):
                if path.name.endswith(ENCRYPTED_EXT):
                    continue
                found.setdefault(path, Secret.from_decrypted(path))
        return list(found.values())

    def ciphertexts(self) -> typing.List[Secret]:
        """Secrets with an encrypted file that can be decrypted."""
        found: typing.Dict[pathlib.Path, Secret] = {}
        for pattern in self.config.secrets:
            for path in self.search(pattern + ENCRYPTED_EXT):
                found.setdefault(path, Secret.from_encrypted(path))
        return list(found.values())

    def secrets(self) -> typing.List[Secret]:
        pairs = {s.encrypted: s for s in (*self.ciphertexts(), *self.plaintexts())}
        return sorted(pairs.values(), key=lambda s: s.decrypted)

    def encrypt_all(self) -> BatchResult:
        keys = self.recipient_keys()
        for key in keys:
            parse_recipient(key)

        secrets = self.plaintexts()
        log.info(f"Encrypting {len(secrets)} secrets for {len(keys)} recipients")

        count = 0
        for secret in secrets:
            name = self.rel(secret.decrypted)
            try:
                plaintext = secret.plaintext()
            except OSError as error:
                log.warning(f"Skipping {name}: {error.strerror}")
                continue

            try:
                secret.write_encrypted(secret.seal(plaintext, keys))
            except PodxException as error:
                log.error(f"Failed to encrypt {name}")
                return BatchResult(
                    count=count,
                    total=len(secrets),
                    error=type(error)(f"Failed to encrypt {name}: {error.message}"))

            log.info(f"Encrypted {name} to {self.rel(secret.encrypted)}")
            try:
                secret.decrypted.unlink()
            except OSError as error:
                log.warning(f"Could not delete original {name}: {error.strerror}")
            else:
                log.info(f"Deleted original {name}")

            count += 1

        log.info(f"Encrypted {count} secrets")
        return BatchResult(count=count, total=len(secrets))

    def decrypt_all(self) -> BatchResult:
        identity = self.keystore.load_private_identity()

        secrets = self.ciphertexts()
        log.info(f"Decrypting {len(secrets)} secrets")

        count = 0
        for secret in secrets:
            name = self.rel(secret.encrypted)
            try:
                ciphertext = secret.ciphertext()
            except OSError as error:
                log.warning(f"Skipping {name}: {error.strerror}")
                continue

            try:
                secret.write_decrypted(secret.open(ciphertext, identity))
            except PodxException as error:
                log.error(f"Failed to decrypt {name}")
                return BatchResult(
                    count=count,
                    total=len(secrets),
                    error=type(error)(f"Failed to decrypt {name}: {error.message}"))

            log.info(f"Decrypted {name} to {self.rel(secret.decrypted)}")
            count += 1

        log.info(f"Decrypted {count} secrets")
        return BatchResult(count=count, total=len(secrets))

    def update_gitignore(self) -> typing.List[str]:
        """Append secret patterns missing from .gitignore, returning the added patterns."""
        path = self.root / GITIGNORE_FILE
        try:
            text = path.read_text()
        except FileNotFoundError:
            text = ''

        present = {line.strip() for line in text.splitlines()}
        missing = [p for p in self.config.secrets if p.strip() not in present]
        if not missing:
            return []

        if GITIGNORE_HEADER in present:
            lines = missing
            prefix = '' if not text or text.endswith('\n') else '\n'
        else:
            lines = [GITIGNORE_HEADER, *missing]
            prefix = '' if not text else ('\n' if text.endswith('\n') else '\n\n')

        with path.open('a') as f:
            f.write(prefix + '\n'.join(lines) + '\n')

        log.info(f"Added {len(missing)} patterns to {GITIGNORE_FILE}")
        return missing

    def unignored_plaintexts(self) -> typing.List[pathlib.Path]:
        """Ask git which decrypted paths are not excluded by a .gitignore file."""
        try:
            repo = git.Repo(self.root, search_parent_directories=True)
        except (git.exc.InvalidGitRepositoryError, git.exc.NoSuchPathError):
            return []

        workdir = pathlib.Path(repo.working_dir).resolve()
        paths = {os.path.relpath(s.decrypted.resolve(), workdir): s.decrypted
                 for s in self.secrets()}
        if not paths:
            return []

        log.info("Checking all decrypted files are ignored by git")
        try:
            ignored = set(repo.ignored(*paths))
        except git.exc.GitCommandError as error:
            log.warning(f"Could not check ignored files: {error}")
            return []

        return sorted(path for rel, path in paths.items() if rel not in ignored)

    def status(self) -> str:
        lines = [
            f"Project: {self.root}",
            f"Backend: {self.config.backend}",
            f"Recipients: {len(self.config.recipients)}",
        ]
        for r in self.config.recipients:
            lines.append(f"  - {r.name} ({r.key[:20]}...)")
        lines.append(f"Secrets: {len(self.config.secrets)} patterns")
        for pattern in self.config.secrets:
            lines.append(f"  - {pattern}")
        return '\n'.join(lines)
