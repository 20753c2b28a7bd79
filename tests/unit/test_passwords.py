"""
Tests for bcrypt password hashing.
"""

import pytest
from unittest.mock import patch

from docrepo.auth.passwords import BcryptPasswordHasher
from docrepo.common.errors import CryptoBackendError


@pytest.fixture
def hasher():
    return BcryptPasswordHasher(rounds=4)


class TestBcryptPasswordHasher:

    def test_hash_is_not_plaintext(self, hasher):
        hashed = hasher.hash("correct horse")

        assert hashed != "correct horse"
        assert hashed.startswith("$2b$04$")

    def test_same_password_hashes_differently(self, hasher):
        assert hasher.hash("same") != hasher.hash("same")

    def test_verify(self, hasher):
        hashed = hasher.hash("s3cret")

        assert hasher.verify("s3cret", hashed) is True
        assert hasher.verify("S3cret", hashed) is False

    def test_malformed_hash_does_not_match(self, hasher):
        assert hasher.verify("anything", "not-a-bcrypt-hash") is False

    def test_long_passwords_truncated_consistently(self, hasher):
        base = "x" * 72
        hashed = hasher.hash(base + "tail-one")

        assert hasher.verify(base + "tail-two", hashed) is True

    def test_unicode_password(self, hasher):
        hashed = hasher.hash("pässwörd")

        assert hasher.verify("pässwörd", hashed) is True

    def test_rounds_default_from_settings(self):
        # conftest sets BCRYPT_ROUNDS=4
        assert BcryptPasswordHasher().rounds == 4

    def test_backend_failure_raises_crypto_error(self, hasher):
        with patch("docrepo.auth.passwords.bcrypt.gensalt", side_effect=ValueError("bad rounds")):
            with pytest.raises(CryptoBackendError) as exc_info:
                hasher.hash("pw")

        assert exc_info.value.status_code == 500
