import functools
import logging
import os.path
import pathlib
import typing

import attr
import click

from . import __doc__, __version__, files
from .algorithms import SUPPORTED, Algorithm, encryptor_for
from .keystore import FileKeyStore, default_directory
from .project import BatchResult, Project
from .secrets import Secret
from .utils import find_git_directory

log = logging.getLogger(__name__)


@functools.lru_cache()
def rel(path: pathlib.Path) -> str:
    """
    Convert a path to a relative Path.

    Returns a string as these should only be used for presentation.
    """
    return os.path.relpath(path.as_posix(), pathlib.Path.cwd().as_posix())


def enc(secret: Secret) -> str:
    """Style a path to a encrypted file."""
    return click.style(rel(secret.encrypted), fg='green')


def dec(secret: Secret) -> str:
    """Style a path to a decrypted file."""
    return click.style(rel(secret.decrypted), fg='red')


def default_root() -> pathlib.Path:
    return find_git_directory() or pathlib.Path.cwd()


class PathType(click.Path):
    def convert(self, value, param, ctx):
        return pathlib.Path(super().convert(value, param, ctx))


@attr.s(frozen=True)
class Workspace:
    root: pathlib.Path = attr.ib()
    keystore: FileKeyStore = attr.ib()

    def project(self) -> Project:
        return Project.load(self.root, keystore=self.keystore)


password_option = click.option(
    '-p', '--password',
    envvar='PODX_PASSWORD',
    default=None,
    help="Defaults to $PODX_PASSWORD or an interactive prompt.")

age_option = click.option(
    '--age', 'use_age',
    default=False,
    is_flag=True,
    help="Use your own age key instead of a password.")

algorithm_option = click.option(
    '-a', '--algorithm',
    type=click.Choice(SUPPORTED),
    default='aes-gcm',
    show_default=True,
    callback=lambda ctx, param, value: encryptor_for(value))

input_option = click.option(
    '-i', '--input', 'input_path',
    type=PathType(exists=True, dir_okay=False),
    required=True)

output_option = click.option(
    '-o', '--output', 'output_path',
    type=PathType(dir_okay=False),
    default=None,
    help="Derived from the input path when omitted.")


@click.group(help=__doc__)
@click.option(
    '--path',
    type=PathType(
        file_okay=False,
        dir_okay=True,
        exists=True),
    default=default_root,
    required=True,
    help="Defaults to the current git repository.")
@click.option(
    '--config-dir',
    type=PathType(file_okay=False),
    envvar='PODX_CONFIG_DIR',
    default=default_directory,
    help="Directory holding your age keys (default ~/.config/podx).")
@click.option(
    '-d', '--debug', 'debug',
    default=False,
    is_flag=True,
    help="Enable debug logging.")
@click.pass_context
def main(
        ctx,
        path: pathlib.Path,
        config_dir: pathlib.Path,
        debug: bool):
    logging.basicConfig(level=(logging.DEBUG if debug else logging.WARNING))
    ctx.obj = Workspace(root=path, keystore=FileKeyStore(config_dir))


@main.command()
def version():
    """Show the application version."""
    click.echo(f"podx {__version__}")


@main.command()
@click.pass_obj
def keygen(ws: Workspace):
    """Generate a new age key pair."""
    public, _ = ws.keystore.generate_identity()
    click.echo(f"Public key: {public}")
    click.echo(f"Private key saved to {ws.keystore.keys_file}")


@main.command()
@click.pass_obj
def init(ws: Workspace):
    """Create a .podx.yaml project file."""
    project = Project.init(ws.root, keystore=ws.keystore)
    click.echo(f"Initialized {rel(project.config_path)}")
    if not project.config.recipients:
        click.secho(
            "No recipients. Add one with: podx add-recipient -n NAME -k age1...",
            fg='yellow')


@main.command(name='add-recipient')
@click.option('-n', '--name', required=True)
@click.option('-k', '--key', required=True, help="An age public key (age1...).")
@click.pass_obj
def add_recipient(ws: Workspace, name: str, key: str):
    """Add a team member who can decrypt the project's secrets."""
    recipient = ws.project().add_recipient(name, key)
    click.echo(f"Added recipient: {recipient.name} ({recipient.key[:20]}...)")


@main.command(name='add-secret')
@click.argument('pattern')
@click.pass_obj
def add_secret(ws: Workspace, pattern: str):
    """Add a glob pattern of secret files to the project."""
    project = ws.project()
    project.add_secret(pattern)
    click.echo(f"Added secret pattern: {pattern}")
    try:
        added = project.update_gitignore()
    except OSError as error:
        log.warning(f"Could not update .gitignore: {error}")
        return
    for line in added:
        click.echo(f"Added {line} to .gitignore")


@main.command()
@click.pass_obj
def status(ws: Workspace):
    """Show the project's recipients and secret patterns."""
    project = ws.project()
    click.echo(project.status())
    warn_unignored(project)


@main.command()
@click.pass_obj
def ls(ws: Workspace):
    """List all decrypted paths with their encrypted path."""
    for secret in ws.project().secrets():
        click.echo(f"{dec(secret)} -> {enc(secret)}")


def report(result: BatchResult, verb: str, noun: str) -> None:
    """Print the progress of a batch, failing if it stopped early."""
    if result.ok:
        if result.count == 0:
            click.echo(f"No files to {noun}")
        else:
            click.echo(f"{verb} {result.count} file(s)")
        return

    click.echo(f"{verb} {result.count} of {result.total} file(s)")
    raise result.error


def warn_unignored(project: Project) -> None:
    for path in project.unignored_plaintexts():
        click.secho(f"Decrypted file {rel(path)} is not excluded by .gitignore", fg='yellow')


@main.command(name='encrypt-all')
@click.pass_obj
def encrypt_all(ws: Workspace):
    """Encrypt all secrets in the project and delete the plaintext."""
    report(ws.project().encrypt_all(), "Encrypted", "encrypt")


@main.command(name='decrypt-all')
@click.pass_obj
def decrypt_all(ws: Workspace):
    """Decrypt all secrets in the project."""
    project = ws.project()
    report(project.decrypt_all(), "Decrypted", "decrypt")
    warn_unignored(project)


def ask_password(password: typing.Optional[str]) -> str:
    if password is None:
        password = click.prompt("Enter password", hide_input=True)
    return password


@main.command()
@input_option
@output_option
@algorithm_option
@password_option
@age_option
@click.pass_obj
def encrypt(
        ws: Workspace,
        input_path: pathlib.Path,
        output_path: typing.Optional[pathlib.Path],
        algorithm: Algorithm,
        password: typing.Optional[str],
        use_age: bool):
    """
    Encrypt a single file and delete the original.

    The output defaults to '<input>.enc', or '<input>.age' with --age.
    """
    if use_age:
        output_path = output_path or files.age_encrypt_output(input_path)
        files.encrypt_file_for_self(input_path, output_path, ws.keystore)
        click.echo(f"Encrypted {rel(input_path)} -> {rel(output_path)} (age)")
        return

    output_path = output_path or files.encrypt_output(input_path)
    files.encrypt_file(input_path, output_path, ask_password(password), algorithm)
    click.echo(f"Encrypted {rel(input_path)} -> {rel(output_path)} (algorithm: {algorithm})")


@main.command()
@input_option
@output_option
@password_option
@age_option
@click.pass_obj
def decrypt(
        ws: Workspace,
        input_path: pathlib.Path,
        output_path: typing.Optional[pathlib.Path],
        password: typing.Optional[str],
        use_age: bool):
    """
    Decrypt a single file.

    The output defaults to the input without its '.enc', '.podx' or '.age'
    extension.
    """
    output_path = output_path or files.decrypt_output(input_path)
    if use_age:
        files.decrypt_file_with_identity(input_path, output_path, ws.keystore)
        click.echo(f"Decrypted {rel(input_path)} -> {rel(output_path)} (age)")
        return

    files.decrypt_file(input_path, output_path, ask_password(password))
    click.echo(f"Decrypted {rel(input_path)} -> {rel(output_path)}")


@main.group()
def env():
    """Encrypt or decrypt the values of a .env file with a password."""


@env.command(name='encrypt')
@input_option
@output_option
@algorithm_option
@password_option
def env_encrypt(
        input_path: pathlib.Path,
        output_path: typing.Optional[pathlib.Path],
        algorithm: Algorithm,
        password: typing.Optional[str]):
    """Encrypt each value of a .env file, keeping comments and keys."""
    output_path = output_path or files.env_encrypt_output(input_path)
    files.encrypt_env_file(input_path, output_path, ask_password(password), algorithm)
    click.echo(f"Encrypted .env {rel(input_path)} -> {rel(output_path)} (algorithm: {algorithm})")


@env.command(name='decrypt')
@input_option
@output_option
@password_option
def env_decrypt(
        input_path: pathlib.Path,
        output_path: typing.Optional[pathlib.Path],
        password: typing.Optional[str]):
    """Decrypt a .env file encrypted with 'podx env encrypt'."""
    output_path = output_path or files.decrypt_output(input_path)
    files.decrypt_env_file(input_path, output_path, ask_password(password))
    click.echo(f"Decrypted .env {rel(input_path)} -> {rel(output_path)}")
