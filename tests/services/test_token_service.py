from __future__ import annotations

from datetime import UTC, datetime, timedelta

import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from fastapi.testclient import TestClient

from campus_core.core.config import SETTINGS
from campus_core.services import token_service


def _claims(**overrides) -> dict:
    now = datetime.now(UTC)
    claims = {
        "sub": "idp|abc",
        "iss": SETTINGS.jwt_issuer,
        "aud": SETTINGS.jwt_audience,
        "iat": now,
        "exp": now + timedelta(minutes=5),
        "email": "abc@example.com",
    }
    claims.update(overrides)
    return claims


def _pem(public_key) -> str:
    return public_key.public_bytes(
        serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo
    ).decode()


def test_dev_token_verifies() -> None:
    token = token_service.create_access_token(sub="idp|abc", email="abc@example.com")
    claims = token_service.decode_access_token(token)
    assert claims["sub"] == "idp|abc"
    assert claims["email"] == "abc@example.com"


def test_expired_token_is_rejected() -> None:
    past = datetime.now(UTC) - timedelta(minutes=10)
    token = jwt.encode(
        _claims(iat=past, exp=past + timedelta(minutes=1)),
        token_service._signing_key,
        algorithm="ES256",
    )
    with pytest.raises(jwt.ExpiredSignatureError):
        token_service.decode_access_token(token)


def test_small_clock_skew_is_tolerated() -> None:
    just_expired = datetime.now(UTC) - timedelta(seconds=5)
    token = jwt.encode(
        _claims(exp=just_expired), token_service._signing_key, algorithm="ES256"
    )
    assert token_service.decode_access_token(token)["sub"] == "idp|abc"


def test_wrong_audience_is_rejected() -> None:
    token = jwt.encode(
        _claims(aud="another-api"), token_service._signing_key, algorithm="ES256"
    )
    with pytest.raises(jwt.InvalidAudienceError):
        token_service.decode_access_token(token)


def test_other_algorithms_are_rejected() -> None:
    unsigned = jwt.encode(_claims(), None, algorithm="none")
    with pytest.raises(jwt.InvalidTokenError):
        token_service.decode_access_token(unsigned)


def test_provider_key_from_pem() -> None:
    provider = ec.generate_private_key(ec.SECP256R1())
    key = token_service.load_verification_key(_pem(provider.public_key()))
    token = jwt.encode(_claims(), provider, algorithm="ES256")

    assert token_service.decode_access_token(token, key=key)["sub"] == "idp|abc"
    with pytest.raises(jwt.InvalidSignatureError):
        token_service.decode_access_token(token)


def test_non_ec_provider_key_is_refused() -> None:
    rsa_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    with pytest.raises(ValueError, match="EC public key"):
        token_service.load_verification_key(_pem(rsa_key.public_key()))


def test_expired_token_is_401_on_the_api(client: TestClient) -> None:
    past = datetime.now(UTC) - timedelta(minutes=10)
    token = jwt.encode(
        _claims(iat=past, exp=past + timedelta(minutes=1)),
        token_service._signing_key,
        algorithm="ES256",
    )

    resp = client.get("/v1/identity/me", headers={"Authorization": f"Bearer {token}"})

    assert resp.status_code == 401
    assert resp.json()["detail"] == "Token expired"
    assert resp.headers["www-authenticate"] == "Bearer"
