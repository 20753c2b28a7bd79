"""
Tests for JWT session tokens.
"""

import time

import jwt
import pytest
from pydantic import SecretStr
from unittest.mock import patch

from docrepo.auth.tokens import JWTTokenIssuer, TokenSettings
from docrepo.common.config import Settings
from docrepo.common.errors import CryptoBackendError, InvalidToken

SECRET = "token-test-secret-9b27e1-4c0d-a8f3-77e2"


@pytest.fixture
def settings():
    return TokenSettings(secret=SecretStr(SECRET), expiry=3600)


@pytest.fixture
def issuer(settings):
    return JWTTokenIssuer(settings)


class TestTokenSettings:

    def test_from_settings(self):
        token_settings = TokenSettings.from_settings()

        assert token_settings.secret.get_secret_value() == "unit-test-signing-key-4f1c9a-0b6e-d21f"
        assert token_settings.expiry == 60 * 60 * 24 * 7
        assert token_settings.algorithm == "HS256"

    def test_from_settings_requires_secret(self, monkeypatch):
        monkeypatch.delenv("JWT_SECRET")

        with pytest.raises(ValueError, match="JWT_SECRET"):
            TokenSettings.from_settings(Settings())


class TestJWTTokenIssuer:

    def test_sign_binds_subject(self, issuer):
        token = issuer.sign("65f0c0ffee0000000000abcd")

        claims = jwt.decode(token, SECRET, algorithms=["HS256"])
        assert claims["sub"] == "65f0c0ffee0000000000abcd"
        assert claims["exp"] - claims["iat"] == 3600

    def test_verify_round_trip(self, issuer):
        payload = issuer.verify(issuer.sign("user-1"))

        assert payload.sub == "user-1"
        assert payload.exp > payload.iat

    def test_verify_rejects_wrong_secret(self, issuer):
        other = JWTTokenIssuer(TokenSettings(secret=SecretStr("a-different-secret-123-5e8a-c4b0-91dd")))

        with pytest.raises(InvalidToken):
            issuer.verify(other.sign("user-1"))

    def test_verify_rejects_garbage(self, issuer):
        with pytest.raises(InvalidToken) as exc_info:
            issuer.verify("not.a.token")

        assert exc_info.value.status_code == 401

    def test_verify_rejects_expired(self, issuer):
        now = int(time.time())
        token = jwt.encode({"sub": "u", "iat": now - 7200, "exp": now - 3600}, SECRET, algorithm="HS256")

        with pytest.raises(InvalidToken, match="expired"):
            issuer.verify(token)

    def test_verify_requires_subject(self, issuer):
        now = int(time.time())
        token = jwt.encode({"iat": now, "exp": now + 60}, SECRET, algorithm="HS256")

        with pytest.raises(InvalidToken):
            issuer.verify(token)

    def test_sign_failure_raises_crypto_error(self, issuer):
        with patch("docrepo.auth.tokens.jwt.encode", side_effect=jwt.PyJWTError("boom")):
            with pytest.raises(CryptoBackendError):
                issuer.sign("user-1")
