"""Access token verification (ES256).

In production tokens are issued by the external identity provider: set
JWT_PUBLIC_KEY to its PEM-encoded EC public key and this service only
verifies.  Without JWT_PUBLIC_KEY (dev, tests) an ephemeral key pair is
generated on import and create_access_token signs with it, so local
clients and the test suite can mint tokens the API accepts.

Claims the API relies on:
  sub    the provider's principal id; linked to Actor.auth_id
  email  what POST /v1/identity/bootstrap links a new principal by
  name   optional display name for freshly provisioned actors
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime, timedelta

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from campus_core.core.config import SETTINGS

logger = logging.getLogger(__name__)

ALGORITHM = "ES256"
ACCESS_TOKEN_TTL_MIN = 15
# Provider and API clocks drift; tolerate a little.
LEEWAY_SECONDS = 30


def load_verification_key(pem: str) -> ec.EllipticCurvePublicKey:
    key = serialization.load_pem_public_key(pem.encode())
    if not isinstance(key, ec.EllipticCurvePublicKey):
        raise ValueError("JWT_PUBLIC_KEY must be an EC public key for ES256")
    return key


_signing_key: ec.EllipticCurvePrivateKey | None
if SETTINGS.jwt_public_key:
    _signing_key = None
    _verification_key = load_verification_key(SETTINGS.jwt_public_key)
else:
    if SETTINGS.is_prod:
        logger.warning("JWT_PUBLIC_KEY not set; no provider token will verify")
    _signing_key = ec.generate_private_key(ec.SECP256R1())
    _verification_key = _signing_key.public_key()


def create_access_token(*, sub: str, email: str = "", name: str = "") -> str:
    """Sign a token with the ephemeral dev key."""
    if _signing_key is None:
        raise RuntimeError("tokens are issued by the identity provider")
    now = datetime.now(UTC)
    payload = {
        "sub": sub,
        "iss": SETTINGS.jwt_issuer,
        "aud": SETTINGS.jwt_audience,
        "exp": now + timedelta(minutes=ACCESS_TOKEN_TTL_MIN),
        "iat": now,
        "jti": str(uuid.uuid4()),
        "email": email,
        "name": name,
    }
    return jwt.encode(payload, _signing_key, algorithm=ALGORITHM)


def decode_access_token(
    token: str, *, key: ec.EllipticCurvePublicKey | None = None
) -> dict:
    """Verify signature, issuer, audience and expiry; return the claims.

    The algorithm is pinned, so alg:none and HS256-with-the-public-key
    tokens are rejected.  Raises jwt.ExpiredSignatureError or
    jwt.InvalidTokenError.
    """
    return jwt.decode(
        token,
        key or _verification_key,
        algorithms=[ALGORITHM],
        issuer=SETTINGS.jwt_issuer,
        audience=SETTINGS.jwt_audience,
        leeway=LEEWAY_SECONDS,
        options={"require": ["sub", "exp", "iat"]},
    )
