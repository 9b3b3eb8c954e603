"""
Gateway auth: bearer-token authorizer and API keys.

verify_authorizer_token supports Cognito user pool JWTs:
- Authorization: Bearer <token>
- Authorization: <token> (raw token, as sent by most Cognito clients)

Signing keys come from the pool's JWKS endpoint (cached per issuer). The
token's issuer must be one of the authorizer's user pools.

verify_api_key checks the x-api-key header against stored key hashes with a
short-lived in-process cache.
"""

import hashlib
import secrets
import threading
import time

import jwt
from jwt.exceptions import InvalidTokenError, PyJWKClientError
from sqlmodel import Session, select
from starlette.requests import Request

from streamgate.core.gateway_config import AuthorizerConfig
from streamgate.models import ApiKey

API_KEY_HEADER = "x-api-key"
_ALGORITHMS = ["RS256"]
_TOKEN_USES = ("id", "access")

_JWK_CLIENTS: dict[str, jwt.PyJWKClient] = {}
_JWK_CLIENTS_LOCK = threading.Lock()

_KEY_CACHE_TTL_SEC = 30.0
_KEY_CACHE_LOCK = threading.Lock()
_KEY_CACHE: dict[str, tuple[ApiKey | None, float]] = {}
_KEY_CACHE_MAX_SIZE = 10_000


def _get_jwk_client(issuer: str) -> jwt.PyJWKClient:
    with _JWK_CLIENTS_LOCK:
        client = _JWK_CLIENTS.get(issuer)
        if client is None:
            client = jwt.PyJWKClient(f"{issuer}/.well-known/jwks.json", cache_keys=True)
            _JWK_CLIENTS[issuer] = client
        return client


def _extract_token(request: Request) -> str | None:
    auth = (request.headers.get("Authorization") or "").strip()
    if not auth:
        return None
    if auth.startswith("Bearer "):
        auth = auth[7:].strip()
    return auth or None


def verify_authorizer_token(request: Request, authorizer: AuthorizerConfig) -> dict | None:
    """
    Authenticate a request against the authorizer's user pools.

    Returns the token claims, or None when the token is missing, malformed,
    expired, signed by an unknown key, or issued by another pool.
    """
    token = _extract_token(request)
    if not token:
        return None

    try:
        unverified = jwt.decode(token, options={"verify_signature": False})
    except InvalidTokenError:
        return None
    issuer = unverified.get("iss")
    if not isinstance(issuer, str) or issuer not in authorizer.issuers():
        return None

    try:
        signing_key = _get_jwk_client(issuer).get_signing_key_from_jwt(token)
        claims = jwt.decode(
            token,
            signing_key.key,
            algorithms=_ALGORITHMS,
            issuer=issuer,
            options={"verify_exp": True, "verify_aud": False},
        )
    except (InvalidTokenError, PyJWKClientError):
        return None

    token_use = claims.get("token_use")
    if token_use not in _TOKEN_USES:
        return None
    if authorizer.audience:
        # id tokens carry the app client in aud, access tokens in client_id
        audience = claims.get("aud") if token_use == "id" else claims.get("client_id")
        if audience not in authorizer.audience:
            return None
    return claims


# ---------------------------------------------------------------------------
# API keys
# ---------------------------------------------------------------------------


def hash_api_key(key: str) -> str:
    return hashlib.sha256(key.encode()).hexdigest()


def create_api_key(session: Session, name: str) -> tuple[ApiKey, str]:
    """Create and store a new key; the plaintext is returned once and never stored."""
    plaintext = secrets.token_urlsafe(30)
    api_key = ApiKey(name=name, key_hash=hash_api_key(plaintext))
    session.add(api_key)
    session.commit()
    session.refresh(api_key)
    return api_key, plaintext


def _get_api_key_by_hash(session: Session, key_hash: str) -> ApiKey | None:
    """Fetch an active ApiKey by hash, with a short-lived in-process cache."""
    now = time.monotonic()
    with _KEY_CACHE_LOCK:
        entry = _KEY_CACHE.get(key_hash)
        if entry is not None:
            api_key, expires_at = entry
            if now < expires_at:
                return api_key
            _KEY_CACHE.pop(key_hash, None)

    api_key = session.exec(
        select(ApiKey).where(ApiKey.key_hash == key_hash, ApiKey.is_active.is_(True))
    ).first()

    with _KEY_CACHE_LOCK:
        if len(_KEY_CACHE) >= _KEY_CACHE_MAX_SIZE:
            _KEY_CACHE.clear()
        _KEY_CACHE[key_hash] = (api_key, now + _KEY_CACHE_TTL_SEC)
    return api_key


def verify_api_key(request: Request, session: Session) -> ApiKey | None:
    """Return the active ApiKey matching the x-api-key header, or None."""
    key = (request.headers.get(API_KEY_HEADER) or "").strip()
    if not key:
        return None
    return _get_api_key_by_hash(session, hash_api_key(key))


def clear_auth_caches() -> None:
    with _KEY_CACHE_LOCK:
        _KEY_CACHE.clear()
    with _JWK_CLIENTS_LOCK:
        _JWK_CLIENTS.clear()
