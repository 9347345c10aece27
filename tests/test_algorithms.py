import os

import pytest

from podx.algorithms import (
    NONCE_SIZE,
    Algorithm,
    decrypt_from_base64,
    encrypt_to_base64,
    encryptor_for,
)
from podx.utils import CorruptEnvelope, DecryptionFailed, InvalidKeySize, UnknownAlgorithm

KEY = bytes(range(32))


@pytest.fixture(params=list(Algorithm), ids=str)
def algorithm(request) -> Algorithm:
    return request.param


def test_round_trip(algorithm):
    ciphertext = algorithm.encrypt(b"hello\n", KEY)
    assert algorithm.decrypt(ciphertext, KEY) == b"hello\n"


def test_nonce_is_prepended_and_fresh(algorithm):
    first = algorithm.encrypt(b"same", KEY)
    second = algorithm.encrypt(b"same", KEY)
    assert first[:NONCE_SIZE] != second[:NONCE_SIZE]
    assert len(first) == NONCE_SIZE + len(b"same") + 16


def test_tampering_is_detected(algorithm):
    ciphertext = algorithm.encrypt(b"attack at dawn", KEY)
    for index in range(len(ciphertext)):
        tampered = bytearray(ciphertext)
        tampered[index] ^= 0x01
        with pytest.raises(DecryptionFailed):
            algorithm.decrypt(bytes(tampered), KEY)


def test_wrong_key(algorithm):
    ciphertext = algorithm.encrypt(b"secret", KEY)
    with pytest.raises(DecryptionFailed):
        algorithm.decrypt(ciphertext, os.urandom(32))


@pytest.mark.parametrize('size', [0, 16, 24, 31, 33])
def test_invalid_key_size(algorithm, size):
    with pytest.raises(InvalidKeySize):
        algorithm.encrypt(b"secret", bytes(size))
    with pytest.raises(InvalidKeySize):
        algorithm.decrypt(bytes(40), bytes(size))


def test_short_ciphertext(algorithm):
    with pytest.raises(CorruptEnvelope):
        algorithm.decrypt(bytes(NONCE_SIZE), KEY)


def test_encryptor_for():
    assert encryptor_for('aes-gcm') is Algorithm.AES_GCM
    assert encryptor_for('chacha20') is Algorithm.CHACHA20
    assert str(Algorithm.CHACHA20) == 'chacha20'


def test_encryptor_for_unknown():
    with pytest.raises(UnknownAlgorithm):
        encryptor_for('rot13')


def test_tags():
    assert Algorithm.AES_GCM.tag == 0
    assert Algorithm.CHACHA20.tag == 1
    assert Algorithm.from_tag(1) is Algorithm.CHACHA20
    with pytest.raises(UnknownAlgorithm):
        Algorithm.from_tag(7)


def test_base64_helpers(algorithm):
    text = encrypt_to_base64(algorithm, b"value", KEY)
    assert decrypt_from_base64(algorithm, text, KEY) == b"value"
    with pytest.raises(CorruptEnvelope):
        decrypt_from_base64(algorithm, "not base64!", KEY)
