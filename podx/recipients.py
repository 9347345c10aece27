"""
Multi-recipient envelopes using age X25519 keys.

Public keys are written as 'age1...' and private identities as 'AGE-SECRET-KEY-1...'.
"""

import logging
import typing

import pyrage

from .utils import DecryptionFailed, InvalidRecipient, NoIdentity, NoRecipients

log = logging.getLogger(__name__)

PUBLIC_PREFIX = 'age1'
SECRET_PREFIX = 'AGE-SECRET-KEY-'


def parse_recipient(key: str) -> pyrage.x25519.Recipient:
    key = key.strip()
    if not key.startswith(PUBLIC_PREFIX):
        raise InvalidRecipient(
            f"Invalid age public key '{key}' (should start with '{PUBLIC_PREFIX}')")
    try:
        return pyrage.x25519.Recipient.from_str(key)
    except (pyrage.RecipientError, ValueError):
        raise InvalidRecipient(f"Invalid age public key '{key}'") from None


def parse_identity(identity: str) -> pyrage.x25519.Identity:
    # The identity text is never echoed back in the message.
    try:
        return pyrage.x25519.Identity.from_str(identity.strip())
    except (pyrage.IdentityError, ValueError):
        raise NoIdentity("Invalid age identity") from None


def public_key_of(identity: str) -> str:
    return str(parse_identity(identity).to_public())


def generate_identity() -> typing.Tuple[str, str]:
    """Generate a new X25519 identity, returning (private, public)."""
    identity = pyrage.x25519.Identity.generate()
    return str(identity), str(identity.to_public())


def seal_for_recipients(plaintext: bytes, keys: typing.Sequence[str]) -> bytes:
    if not keys:
        raise NoRecipients("No recipients to encrypt for")

    # Parse everything first, a single bad key must not produce an envelope.
    recipients = [parse_recipient(key) for key in keys]
    log.debug(f"Encrypting {len(plaintext)} bytes for {len(recipients)} recipients")
    try:
        return pyrage.encrypt(plaintext, recipients)
    except pyrage.EncryptError as error:
        raise InvalidRecipient(f"Failed to encrypt for recipients: {error}") from None


def open_with_identity(envelope: bytes, identity: str) -> bytes:
    parsed = parse_identity(identity)
    try:
        return pyrage.decrypt(envelope, [parsed])
    except (pyrage.DecryptError, ValueError):
        raise DecryptionFailed() from None
