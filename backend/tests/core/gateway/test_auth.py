"""Unit tests for gateway auth: Cognito authorizer tokens and API keys."""

from unittest.mock import Mock, patch

import pytest
from sqlmodel import Session

from streamgate.core.gateway import auth
from streamgate.core.gateway.auth import (
    create_api_key,
    hash_api_key,
    verify_api_key,
    verify_authorizer_token,
)
from streamgate.core.gateway_config import AuthorizerConfig
from tests.utils.tokens import ISSUER, POOL_ARN, fake_jwk_client, make_token


def _mock_request(
    authorization: str | None = None, x_api_key: str | None = None
) -> Mock:
    m = Mock()
    m.headers = {}
    if authorization is not None:
        m.headers["Authorization"] = authorization
    if x_api_key is not None:
        m.headers["x-api-key"] = x_api_key
    return m


@pytest.fixture
def authorizer() -> AuthorizerConfig:
    return AuthorizerConfig(name="users", provider_arns=[POOL_ARN])


@pytest.fixture(autouse=True)
def _jwks():
    with patch.object(auth, "_get_jwk_client", return_value=fake_jwk_client()) as m:
        yield m


def test_authorizer_issuers(authorizer: AuthorizerConfig) -> None:
    assert authorizer.issuers() == [ISSUER]


def test_bearer_token(authorizer: AuthorizerConfig) -> None:
    request = _mock_request(authorization=f"Bearer {make_token()}")
    claims = verify_authorizer_token(request, authorizer)
    assert claims is not None
    assert claims["sub"] == "user-1"


def test_raw_token(authorizer: AuthorizerConfig) -> None:
    request = _mock_request(authorization=make_token())
    assert verify_authorizer_token(request, authorizer) is not None


def test_missing_or_garbage_token(authorizer: AuthorizerConfig) -> None:
    assert verify_authorizer_token(_mock_request(), authorizer) is None
    assert verify_authorizer_token(_mock_request(authorization="Bearer "), authorizer) is None
    assert verify_authorizer_token(_mock_request(authorization="not-a-jwt"), authorizer) is None


def test_expired_token(authorizer: AuthorizerConfig) -> None:
    request = _mock_request(authorization=make_token(exp=1, iat=0))
    assert verify_authorizer_token(request, authorizer) is None


def test_token_from_other_pool(authorizer: AuthorizerConfig, _jwks) -> None:
    other = "https://cognito-idp.us-east-1.amazonaws.com/us-east-1_Other"
    request = _mock_request(authorization=make_token(iss=other))
    assert verify_authorizer_token(request, authorizer) is None
    _jwks.assert_not_called()


def test_token_use_must_be_id_or_access(authorizer: AuthorizerConfig) -> None:
    request = _mock_request(authorization=make_token(token_use="refresh"))
    assert verify_authorizer_token(request, authorizer) is None


def test_audience_check() -> None:
    authorizer = AuthorizerConfig(provider_arns=[POOL_ARN], audience=["app-client"])
    ok = _mock_request(authorization=make_token())
    assert verify_authorizer_token(ok, authorizer) is not None

    wrong = _mock_request(authorization=make_token(client_id="other"))
    assert verify_authorizer_token(wrong, authorizer) is None

    id_token = _mock_request(authorization=make_token(token_use="id", aud="app-client"))
    assert verify_authorizer_token(id_token, authorizer) is not None


def test_create_and_verify_api_key(db: Session) -> None:
    api_key, plaintext = create_api_key(db, "ingest")
    assert api_key.key_hash == hash_api_key(plaintext)
    assert plaintext not in api_key.key_hash

    out = verify_api_key(_mock_request(x_api_key=plaintext), db)
    assert out is not None
    assert out.id == api_key.id


def test_unknown_or_missing_api_key(db: Session) -> None:
    create_api_key(db, "ingest")
    assert verify_api_key(_mock_request(x_api_key="nope"), db) is None
    assert verify_api_key(_mock_request(), db) is None


def test_inactive_api_key(db: Session) -> None:
    api_key, plaintext = create_api_key(db, "old")
    api_key.is_active = False
    db.add(api_key)
    db.commit()
    auth.clear_auth_caches()
    assert verify_api_key(_mock_request(x_api_key=plaintext), db) is None
