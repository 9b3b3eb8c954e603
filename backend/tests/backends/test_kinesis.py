"""Unit tests for the Kinesis backend client (signing, pass-through, failures)."""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import httpx
import pytest
from botocore.credentials import Credentials

from streamgate.backends.kinesis import (
    BackendTimeoutError,
    BackendUnavailableError,
    KinesisBackend,
)
from streamgate.core.config import settings
from streamgate.core.operations import Operation

ENDPOINT = "https://kinesis.us-east-1.amazonaws.com"


def _boto_session() -> Mock:
    session = Mock()
    session.get_credentials.return_value = Credentials("AKIDEXAMPLE", "secret", None)
    return session


def _backend(handler, boto_session: Mock | None = None) -> KinesisBackend:
    return KinesisBackend(
        endpoint=ENDPOINT,
        region="us-east-1",
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
        boto_session=boto_session or _boto_session(),
    )


def test_invoke_signs_and_posts() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=b'{"StreamNames": ["orders"]}')

    resp = _backend(handler).invoke(Operation.LIST_STREAMS, {}, timeout_ms=1000)

    assert resp.status_code == 200
    assert resp.body == b'{"StreamNames": ["orders"]}'
    (request,) = seen
    assert request.method == "POST"
    assert str(request.url) == f"{ENDPOINT}/"
    assert request.headers["x-amz-target"] == "Kinesis_20131202.ListStreams"
    assert request.headers["content-type"] == "application/x-amz-json-1.1"
    assert request.headers["authorization"].startswith("AWS4-HMAC-SHA256 Credential=AKIDEXAMPLE/")
    assert "/us-east-1/kinesis/aws4_request" in request.headers["authorization"]
    assert "x-amz-date" in request.headers


def test_invoke_sends_payload_as_json() -> None:
    seen: list[bytes] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.content)
        return httpx.Response(200, content=b"{}")

    payload = {"StreamName": "orders", "Data": "aGVsbG8=", "PartitionKey": "k"}
    _backend(handler).invoke(Operation.PUT_RECORD, payload, timeout_ms=1000)
    assert json.loads(seen[0]) == payload


def test_backend_error_passthrough() -> None:
    body = b'{"__type": "ResourceNotFoundException", "message": "Stream nope not found"}'

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, content=body)

    resp = _backend(handler).invoke(
        Operation.DESCRIBE_STREAM, {"StreamName": "nope"}, timeout_ms=1000
    )
    assert resp.status_code == 400
    assert resp.body == body


def test_timeout_raises() -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(BackendTimeoutError):
        _backend(handler).invoke(Operation.LIST_STREAMS, {}, timeout_ms=50)
    # never retried
    assert calls == [1]


def test_connection_error_raises_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(BackendUnavailableError):
        _backend(handler).invoke(Operation.LIST_STREAMS, {}, timeout_ms=1000)


def test_missing_credentials() -> None:
    session = Mock()
    session.get_credentials.return_value = None
    backend = _backend(lambda r: httpx.Response(200), boto_session=session)
    with pytest.raises(BackendUnavailableError):
        backend.invoke(Operation.LIST_STREAMS, {}, timeout_ms=1000)


def test_assume_execution_role(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "ASSUME_EXECUTION_ROLE", True)
    monkeypatch.setattr(settings, "AWS_ACCOUNT_ID", "123456789012")
    session = _boto_session()
    sts = session.client.return_value
    sts.assume_role.return_value = {
        "Credentials": {
            "AccessKeyId": "ASIAROLE",
            "SecretAccessKey": "s",
            "SessionToken": "t",
            "Expiration": datetime.now(timezone.utc) + timedelta(hours=1),
        }
    }
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=b"{}")

    backend = _backend(handler, boto_session=session)
    backend.invoke(Operation.LIST_STREAMS, {}, timeout_ms=1000, role_name="proxy-role")
    backend.invoke(Operation.LIST_STREAMS, {}, timeout_ms=1000, role_name="proxy-role")

    sts.assume_role.assert_called_once()
    assert sts.assume_role.call_args.kwargs["RoleArn"] == "arn:aws:iam::123456789012:role/proxy-role"
    assert "Credential=ASIAROLE/" in seen[0].headers["authorization"]
    assert seen[0].headers["x-amz-security-token"] == "t"


def test_assume_role_requires_account(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "ASSUME_EXECUTION_ROLE", True)
    monkeypatch.setattr(settings, "AWS_ACCOUNT_ID", None)
    backend = _backend(lambda r: httpx.Response(200))
    with pytest.raises(BackendUnavailableError):
        backend.invoke(Operation.LIST_STREAMS, {}, timeout_ms=1000, role_name="proxy-role")
