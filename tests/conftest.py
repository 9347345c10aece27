import pathlib
import typing

import attr
import click.testing
import pytest

import podx.cli
from podx.keystore import KeyStore
from podx.project import Project
from podx.recipients import generate_identity
from podx.utils import NoIdentity


@attr.s
class MemoryKeyStore(KeyStore):
    # (private, public) pairs, newest last.
    identities: typing.List[typing.Tuple[str, str]] = attr.ib(factory=list)

    def load_private_identity(self) -> str:
        if not self.identities:
            raise NoIdentity("No age identity found")
        return self.identities[-1][0]

    def load_public_key(self) -> str:
        if not self.identities:
            raise NoIdentity("No age public key found")
        return self.identities[-1][1]

    def generate_identity(self) -> typing.Tuple[str, str]:
        private, public = generate_identity()
        self.identities.append((private, public))
        return public, private


@pytest.fixture()
def keystore() -> MemoryKeyStore:
    store = MemoryKeyStore()
    store.generate_identity()
    return store


@pytest.fixture()
def empty_keystore() -> MemoryKeyStore:
    return MemoryKeyStore()


@pytest.fixture()
def project(tmp_path: pathlib.Path, keystore: MemoryKeyStore) -> Project:
    return Project.init(tmp_path, keystore=keystore)


@pytest.fixture()
def workdir(tmp_path: pathlib.Path) -> pathlib.Path:
    path = tmp_path / 'project'
    path.mkdir()
    return path


@pytest.fixture()
def invoke(tmp_path: pathlib.Path, workdir: pathlib.Path):
    config_dir = tmp_path / 'config'

    def invoke_func(
            arguments: typing.Sequence[str],
            exit_code: int = 0,
            input: typing.Optional[str] = None) -> typing.List[str]:
        assert all(isinstance(arg, str) for arg in arguments)
        runner = click.testing.CliRunner()
        result = runner.invoke(
            podx.cli.main,
            ['--path', str(workdir), *arguments],
            env={'PODX_CONFIG_DIR': str(config_dir), 'PODX_PASSWORD': None},
            input=input)
        if result.exit_code != exit_code:
            message = f"Command podx {' '.join(arguments)} exited with {result.exit_code}"
            raise Exception(f"{message}\n{result.output}") from result.exception
        return result.output.splitlines()

    return invoke_func
