import base64
import pathlib

import pytest

from podx import env, kdf
from podx.algorithms import Algorithm
from podx.recipients import generate_identity
from podx.utils import DecryptionFailed, MissingSalt, PodxException, UnknownAlgorithm

SAMPLE = "API_KEY=secret123\n# note\nDEBUG=true\n"

MESSY = (
    "# Database settings\n"
    "\n"
    "DB_HOST = localhost \n"
    "DB_PASSWORD=p@ss=word with spaces\n"
    "   # indented comment\n"
    "not a key value line\n"
    "TOKEN=ENC[aes-gcm:c2VjcmV0]\n"
    "EMPTY=\n"
    "LAST=1"
)


@pytest.mark.parametrize('text', [SAMPLE, MESSY, "", "\n", "A=1\n\n\n", "A=1\r\nB=2\r\n"])
def test_parse_then_render_is_identical(text):
    assert env.parse(text).render() == text


def test_parse_entries():
    entries = env.parse(MESSY).entries
    assert [e.is_comment for e in entries] == [True, True, False, False, True, True, False, False, False]

    host, password = entries[2], entries[3]
    assert host.key == 'DB_HOST'
    assert host.value == ' localhost '
    assert password.key == 'DB_PASSWORD'
    assert password.value == 'p@ss=word with spaces'

    token = entries[6]
    assert token.encrypted
    assert token.algorithm == 'aes-gcm'
    assert token.value == 'c2VjcmV0'


def test_encrypted_entry_requires_algorithm():
    with pytest.raises(PodxException):
        env.EnvEntry(key='A', value='x', encrypted=True)


def test_sample_scenario():
    encrypted = env.encrypt_with_password(SAMPLE, "pass123", Algorithm.AES_GCM)
    lines = encrypted.splitlines()

    assert lines[0].startswith(env.SALT_MARKER)
    assert lines[1].startswith("API_KEY=ENC[aes-gcm:")
    assert lines[2] == "# note"
    assert lines[3].startswith("DEBUG=ENC[aes-gcm:")
    assert "secret123" not in encrypted

    assert env.decrypt_with_password(encrypted, "pass123") == SAMPLE


def test_round_trip_preserves_comments_and_order():
    text = MESSY.replace("TOKEN=ENC[aes-gcm:c2VjcmV0]\n", "TOKEN=plain\n")
    encrypted = env.encrypt_with_password(text, "pass123", Algorithm.CHACHA20)
    assert "# Database settings\n\n" in encrypted
    assert "not a key value line\n" in encrypted
    assert "EMPTY=ENC[chacha20:" in encrypted

    decrypted = env.decrypt_with_password(encrypted, "pass123")
    assert decrypted == text.replace("DB_HOST = localhost ", "DB_HOST= localhost ")


def test_salt_marker_is_removed():
    encrypted = env.encrypt_with_password(SAMPLE, "pass123")
    assert env.SALT_MARKER not in env.decrypt_with_password(encrypted, "pass123")


def test_encrypting_again_reuses_the_salt():
    first = env.encrypt_with_password("A=one\n", "pass123")
    second = env.encrypt_with_password(first + "B=two\n", "pass123", Algorithm.CHACHA20)

    assert second.count(env.SALT_MARKER) == 1
    assert second.splitlines()[0] == first.splitlines()[0]
    assert second.splitlines()[1] == first.splitlines()[1]
    assert second.splitlines()[2].startswith("B=ENC[chacha20:")
    assert env.decrypt_with_password(second, "pass123") == "A=one\nB=two\n"


def test_salt_marker_comments_after_the_first_line_are_kept():
    text = "A=1\n# IRONVAULT_SALT=documented here\n"
    encrypted = env.encrypt_with_password(text, "pass123")
    assert env.decrypt_with_password(encrypted, "pass123") == text


def test_salt_marker_must_be_on_the_first_line():
    _, salt = kdf.derive("pass123")
    text = f"A=ENC[aes-gcm:YWJj]\n{env.SALT_MARKER}{base64.b64encode(salt).decode()}\n"
    with pytest.raises(MissingSalt):
        env.decrypt_with_password(text, "pass123")


def test_wrong_password():
    encrypted = env.encrypt_with_password(SAMPLE, "pass123")
    with pytest.raises(DecryptionFailed) as error:
        env.decrypt_with_password(encrypted, "wrong")
    assert "API_KEY" in error.value.message


def test_missing_salt_aborts_before_kdf(monkeypatch):
    def derive_with_salt(password, salt):
        raise AssertionError("key derivation should not run")

    monkeypatch.setattr(kdf, 'derive_with_salt', derive_with_salt)
    with pytest.raises(MissingSalt):
        env.decrypt_with_password("API_KEY=ENC[aes-gcm:c2VjcmV0]\n", "pass123")


def test_each_entry_uses_its_own_algorithm():
    key, salt = kdf.derive("pass123")
    aes = base64.b64encode(Algorithm.AES_GCM.encrypt(b"one", key)).decode()
    chacha = base64.b64encode(Algorithm.CHACHA20.encrypt(b"two", key)).decode()
    text = (
        f"{env.SALT_MARKER}{base64.b64encode(salt).decode()}\n"
        f"ONE=ENC[aes-gcm:{aes}]\n"
        f"TWO=ENC[chacha20:{chacha}]\n"
        "THREE=plain\n"
    )
    assert env.decrypt_with_password(text, "pass123") == "ONE=one\nTWO=two\nTHREE=plain\n"


def test_unknown_algorithm():
    _, salt = kdf.derive("pass123")
    text = f"{env.SALT_MARKER}{base64.b64encode(salt).decode()}\nA=ENC[rot13:YWJj]\n"
    with pytest.raises(UnknownAlgorithm):
        env.decrypt_with_password(text, "pass123")


def test_encrypted_values_are_left_alone():
    text = "TOKEN=ENC[aes-gcm:c2VjcmV0]\nPLAIN=1\n"
    encrypted = env.encrypt_with_password(text, "pass123")
    assert "TOKEN=ENC[aes-gcm:c2VjcmV0]\n" in encrypted


def test_recipient_round_trip():
    (first_private, first_public), (second_private, second_public) = generate_identity(), generate_identity()
    encrypted = env.encrypt_for_recipients(SAMPLE, [first_public, second_public])

    assert env.SALT_MARKER not in encrypted
    assert encrypted.splitlines()[0].startswith("API_KEY=ENC[age:")
    assert encrypted.splitlines()[1] == "# note"

    assert env.decrypt_with_identity(encrypted, first_private) == SAMPLE
    assert env.decrypt_with_identity(encrypted, second_private) == SAMPLE


def test_identity_decrypt_rejects_password_values():
    private, _ = generate_identity()
    with pytest.raises(UnknownAlgorithm):
        env.decrypt_with_identity("A=ENC[aes-gcm:YWJj]\n", private)


@pytest.mark.parametrize('name, expected', [
    ('.env', True),
    ('.env.production', True),
    ('production.env', True),
    ('environment.txt', False),
    ('secrets.json', False),
])
def test_looks_like_env(name, expected):
    assert env.looks_like_env(pathlib.Path(name)) is expected
