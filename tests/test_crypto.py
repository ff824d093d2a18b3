import os

import pytest

from notevault.crypto import (
    ContentCipher, FileKeyProvider, StaticKeyProvider, decrypt_text, encrypt_text, generate_key,
)


@pytest.mark.parametrize("text", ["", "hello", "héllo wörld ✓ 日本語", "line\nbreaks\n" * 50])
def test_round_trip(text):
    key = generate_key()
    assert decrypt_text(encrypt_text(text, key), key) == text


def test_ciphertext_differs_between_calls():
    key = generate_key()
    assert encrypt_text("same", key) != encrypt_text("same", key)


def test_no_key_is_passthrough():
    assert encrypt_text("plain", None) == "plain"
    assert decrypt_text("plain", "") == "plain"


def test_wrong_key_returns_ciphertext():
    token = encrypt_text("secret", generate_key())
    assert decrypt_text(token, generate_key()) == token


def test_garbage_input_never_raises():
    key = generate_key()
    assert decrypt_text("not a token", key) == "not a token"
    assert decrypt_text("abc", "zz-not-hex") == "abc"


def test_bad_key_length_on_encrypt():
    with pytest.raises(ValueError):
        encrypt_text("x", "abcd")


def test_file_key_provider_lazily_creates_and_clears(tmp_path):
    provider = FileKeyProvider(tmp_path / "state" / "encryption.key")
    assert not provider.path.exists()
    key = provider.get_key()
    assert len(bytes.fromhex(key)) == 32
    assert provider.get_key() == key
    assert oct(os.stat(provider.path).st_mode & 0o777) == "0o600"
    provider.clear()
    assert not provider.path.exists()
    assert FileKeyProvider(provider.path, create=False).get_key() is None


def test_cipher_uses_provider():
    cipher = ContentCipher(StaticKeyProvider(generate_key()))
    token = cipher.encrypt("note body")
    assert token != "note body"
    assert cipher.decrypt(token) == "note body"


def test_empty_text_is_still_encrypted_with_a_key():
    key = generate_key()
    token = encrypt_text("", key)
    assert token
    assert decrypt_text(token, key) == ""
