import pytest
from jose import JWTError

from core.crypto import CryptoEngine, crypto_engine, digest, hash_password, random_salt


def test_digest_known_vectors():
    assert digest("") == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
    assert digest("abc") == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"


def test_digest_string_is_utf8_of_bytes():
    assert digest("héllo") == digest("héllo".encode("utf-8"))


def test_random_salt_is_hex_of_requested_length():
    salt = random_salt(16)
    assert len(salt) == 32
    int(salt, 16)
    assert random_salt(16) != salt


def test_hash_password_is_salted_digest():
    assert hash_password("secret", "a1b2") == digest("a1b2:secret")
    assert hash_password("secret", "a1b2") != hash_password("secret", "c3d4")


def test_password_hasher_is_swappable():
    engine = CryptoEngine(password_hasher=lambda pw, salt: f"{salt}${pw[::-1]}")
    assert engine.hash_password("abc", "s") == "s$cba"
    assert engine.verify_password("abc", "s", "s$cba")
    assert not engine.verify_password("abd", "s", "s$cba")


def test_blob_encryption_round_trip():
    blob = b"\x00MRI scan bytes\xff"
    sealed = crypto_engine.encrypt_bytes(blob)
    assert sealed != blob
    assert crypto_engine.decrypt_bytes(sealed) == blob


def test_uninitialized_engine_refuses_to_encrypt():
    with pytest.raises(RuntimeError):
        CryptoEngine().encrypt_bytes(b"data")


def test_access_token_round_trip():
    token = crypto_engine.create_access_token("user-1", {"role": "patient"})
    claims = crypto_engine.verify_token(token)
    assert claims["sub"] == "user-1"
    assert claims["role"] == "patient"


def test_tampered_token_is_rejected():
    header, _, signature = crypto_engine.create_access_token("user-1").split(".")
    _, forged_claims, _ = crypto_engine.create_access_token("user-2").split(".")
    with pytest.raises(JWTError):
        crypto_engine.verify_token(f"{header}.{forged_claims}.{signature}")
