"""Unit tests for auth/credentials.py -- CredentialVerifier.

Covers:
- correct username/password pair is accepted
- username comparison is trimmed and case-insensitive
- wrong password / wrong username rejected
- fail-closed on missing, non-bcrypt and malformed hashes
- password is checked even when the username is wrong
"""

import bcrypt
import pytest

from auth.credentials import CredentialVerifier, hash_password, is_bcrypt_hash
from auth.models import AdminIdentity
from tests.conftest import ADMIN_HASH, ADMIN_PASSWORD, ADMIN_USER


def _verifier(password_hash: str = ADMIN_HASH) -> CredentialVerifier:
    return CredentialVerifier(AdminIdentity(username=ADMIN_USER, password_hash=password_hash, secret="s"))


def test_authenticate_accepts_correct_pair():
    assert _verifier().authenticate(ADMIN_USER, ADMIN_PASSWORD)


def test_username_is_trimmed_and_case_insensitive():
    assert _verifier().authenticate("  CopperKoi ", ADMIN_PASSWORD)


def test_wrong_password_rejected():
    assert not _verifier().authenticate(ADMIN_USER, "nope")


def test_wrong_username_rejected():
    assert not _verifier().authenticate("someone", ADMIN_PASSWORD)


@pytest.mark.parametrize("bad_hash", ["", ADMIN_PASSWORD, "$2b$12$tooshort"])
def test_fail_closed_on_unusable_hash(bad_hash):
    assert not _verifier(bad_hash).authenticate(ADMIN_USER, ADMIN_PASSWORD)


def test_password_checked_even_for_wrong_username(monkeypatch):
    calls = []
    real_checkpw = bcrypt.checkpw

    def counting_checkpw(password, hashed):
        calls.append(password)
        return real_checkpw(password, hashed)

    monkeypatch.setattr(bcrypt, "checkpw", counting_checkpw)
    assert not _verifier().authenticate("someone-else", ADMIN_PASSWORD)
    assert len(calls) == 1


def test_hash_password_roundtrip():
    hashed = hash_password("s3cret", rounds=4)
    assert is_bcrypt_hash(hashed)
    assert _verifier(hashed).verify_password("s3cret")
    assert not is_bcrypt_hash("plain")
