import base64
import json
import os
import sys
from datetime import datetime, timedelta

import pytest
from jose import jwt

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef")

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from passgate.clock import utcnow
from passgate.errors import (
    AlgorithmMismatch,
    InvalidClaims,
    InvalidSignature,
    MalformedToken,
    TokenExpired,
)
from passgate.models.user import User
from passgate.security.signing import SigningKey
from passgate.services.token_codec import AccessTokenCodec

SECRET = "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef"
OTHER_SECRET = "fedcba9876543210fedcba9876543210fedcba9876543210fedcba9876543210"


def _key(secret=SECRET, audience="passgate-clients", algorithm="HS256"):
    return SigningKey(secret=secret, issuer="passgate", audience=audience, algorithm=algorithm)


def _user():
    return User(id="user-1", username="alice", email="alice@example.com", full_name="Alice Liddell")


def _b64(data: dict) -> str:
    raw = json.dumps(data).encode("utf-8")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def test_mint_embeds_identity_and_roles():
    codec = AccessTokenCodec(_key())
    token, expires_at = codec.mint(_user(), ["Admin", "User"], issued_at=datetime(2026, 1, 1, 12, 0))

    payload = jwt.get_unverified_claims(token)
    assert payload["sub"] == "user-1"
    assert payload["userId"] == "user-1"
    assert payload["email"] == "alice@example.com"
    assert payload["name"] == "alice"
    assert payload["fullName"] == "Alice Liddell"
    assert payload["role"] == ["Admin", "User"]
    assert payload["iss"] == "passgate"
    assert payload["aud"] == "passgate-clients"
    assert payload["exp"] - payload["iat"] == 15 * 60
    assert expires_at == datetime(2026, 1, 1, 12, 15)
    assert jwt.get_unverified_header(token)["alg"] == "HS256"
    assert SECRET not in token


def test_each_token_gets_a_fresh_jti():
    codec = AccessTokenCodec(_key())
    first, _ = codec.mint(_user(), [])
    second, _ = codec.mint(_user(), [])

    assert jwt.get_unverified_claims(first)["jti"] != jwt.get_unverified_claims(second)["jti"]


def test_decode_expired_accepts_expired_token_but_decode_does_not():
    codec = AccessTokenCodec(_key())
    token, _ = codec.mint(_user(), ["User"], issued_at=utcnow() - timedelta(hours=2))

    claims = codec.decode_expired(token)
    assert claims.user_id == "user-1"
    assert claims.roles == ["User"]
    assert claims.full_name == "Alice Liddell"
    assert claims.expires_at < utcnow()

    with pytest.raises(TokenExpired):
        codec.decode(token)


def test_decode_accepts_fresh_token():
    codec = AccessTokenCodec(_key())
    token, _ = codec.mint(_user(), ["User"])

    assert codec.decode(token).sub == "user-1"


def test_wrong_secret_is_invalid_signature():
    token, _ = AccessTokenCodec(_key(secret=OTHER_SECRET)).mint(_user(), ["User"])

    with pytest.raises(InvalidSignature):
        AccessTokenCodec(_key()).decode_expired(token)


def test_tampered_payload_is_invalid_signature():
    codec = AccessTokenCodec(_key())
    token, _ = codec.mint(_user(), ["User"])
    header, payload, signature = token.split(".")
    claims = jwt.get_unverified_claims(token)
    claims["role"] = ["Admin"]

    forged = ".".join([header, _b64(claims), signature])

    with pytest.raises(InvalidSignature):
        codec.decode_expired(forged)


@pytest.mark.parametrize("garbage", ["", "not-a-token", "a.b.c", "....."])
def test_unparseable_token_is_malformed(garbage):
    with pytest.raises(MalformedToken):
        AccessTokenCodec(_key()).decode_expired(garbage)


def test_other_hmac_algorithm_is_rejected():
    token, _ = AccessTokenCodec(_key(algorithm="HS512")).mint(_user(), ["User"])

    with pytest.raises(AlgorithmMismatch):
        AccessTokenCodec(_key()).decode_expired(token)


def test_unsigned_token_is_rejected():
    codec = AccessTokenCodec(_key())
    token, _ = codec.mint(_user(), ["User"])
    claims = jwt.get_unverified_claims(token)

    unsigned = f"{_b64({'alg': 'none', 'typ': 'JWT'})}.{_b64(claims)}."

    with pytest.raises(AlgorithmMismatch):
        codec.decode_expired(unsigned)


def test_wrong_audience_is_invalid_claims():
    token, _ = AccessTokenCodec(_key(audience="someone-else")).mint(_user(), ["User"])

    with pytest.raises(InvalidClaims):
        AccessTokenCodec(_key()).decode_expired(token)


def test_signed_token_with_unexpected_structure_is_malformed():
    token = jwt.encode(
        {"sub": "user-1", "iss": "passgate", "aud": "passgate-clients"},
        SECRET,
        algorithm="HS256",
    )

    with pytest.raises(MalformedToken):
        AccessTokenCodec(_key()).decode_expired(token)


def test_signing_key_rejects_asymmetric_algorithm():
    with pytest.raises(ValueError):
        _key(algorithm="RS256")


def test_signing_key_hides_secret_from_repr():
    assert SECRET not in repr(_key())
