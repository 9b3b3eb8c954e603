"""
Kinesis backend: SigV4-signed calls to the Kinesis JSON API over httpx.

Each call is one POST with ``X-Amz-Target: Kinesis_20131202.<Operation>``
and the argument object as body. The call is bounded by the route timeout
and never retried here. Any HTTP reply (success or Kinesis error) is
returned as-is; only transport failures raise.
"""

import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import boto3
import httpx
from botocore.auth import SigV4Auth
from botocore.awsrequest import AWSRequest
from botocore.credentials import Credentials
from botocore.exceptions import BotoCoreError, ClientError

from streamgate.core.config import settings
from streamgate.core.operations import Operation

logger = logging.getLogger(__name__)

CONTENT_TYPE = "application/x-amz-json-1.1"
SERVICE_NAME = "kinesis"
# Refresh assumed-role credentials this long before they expire.
_CREDENTIAL_REFRESH_MARGIN = timedelta(minutes=5)

class BackendError(RuntimeError):
    """Raised when the backend cannot be reached or called."""

    pass

class BackendTimeoutError(BackendError):
    """Raised when the backend call exceeds the route timeout."""

    pass

class BackendUnavailableError(BackendError):
    """Raised on connection failures or missing credentials."""

    pass

@dataclass
class BackendResponse:
    status_code: int
    body: bytes

class KinesisBackend:
    """
    invoke(operation, payload, *, timeout_ms, role_name=None) -> BackendResponse

    Credentials come from the default boto3 chain, or from STS assume_role on
    the execution role when ASSUME_EXECUTION_ROLE is set.
    """

    def __init__(
        self,
        *,
        endpoint: str | None = None,
        region: str | None = None,
        http_client: httpx.Client | None = None,
        boto_session: boto3.Session | None = None,
    ) -> None:
        self.endpoint = (endpoint or settings.kinesis_endpoint).rstrip("/")
        self.region = region or settings.AWS_REGION
        self._client = http_client or httpx.Client()
        self._boto_session = boto_session
        self._assumed: dict[str, tuple[Credentials, datetime]] = {}
        self._lock = threading.Lock()

    def _session(self) -> boto3.Session:
        if self._boto_session is None:
            self._boto_session = boto3.Session(region_name=self.region)
        return self._boto_session

    def _assume_role(self, role_name: str) -> Credentials:
        now = datetime.now(timezone.utc)
        with self._lock:
            cached = self._assumed.get(role_name)
            if cached is not None and cached[1] - _CREDENTIAL_REFRESH_MARGIN > now:
                return cached[0]
        if not settings.AWS_ACCOUNT_ID:
            raise BackendUnavailableError("AWS_ACCOUNT_ID is required to assume the execution role")
        role_arn = f"arn:aws:iam::{settings.AWS_ACCOUNT_ID}:role/{role_name}"
        try:
            resp = self._session().client("sts").assume_role(
                RoleArn=role_arn, RoleSessionName=settings.ASSUME_ROLE_SESSION_NAME
            )
        except (BotoCoreError, ClientError) as e:
            logger.error("assume_role failed for %s: %s", role_arn, e)
            raise BackendUnavailableError(f"Cannot assume execution role {role_name}") from e
        creds = resp["Credentials"]
        credentials = Credentials(
            creds["AccessKeyId"], creds["SecretAccessKey"], creds["SessionToken"]
        )
        with self._lock:
            self._assumed[role_name] = (credentials, creds["Expiration"])
        logger.info("Assumed execution role %s", role_arn)
        return credentials

    def _credentials(self, role_name: str | None) -> Credentials:
        if settings.ASSUME_EXECUTION_ROLE and role_name:
            return self._assume_role(role_name)
        creds = self._session().get_credentials()
        if creds is None:
            raise BackendUnavailableError("No AWS credentials available")
        frozen = creds.get_frozen_credentials()
        return Credentials(frozen.access_key, frozen.secret_key, frozen.token)

    def _signed_headers(
        self, operation: Operation, body: bytes, role_name: str | None
    ) -> dict[str, str]:
        request = AWSRequest(
            method="POST",
            url=f"{self.endpoint}/",
            data=body,
            headers={"Content-Type": CONTENT_TYPE, "X-Amz-Target": operation.target},
        )
        SigV4Auth(self._credentials(role_name), SERVICE_NAME, self.region).add_auth(request)
        return dict(request.headers.items())

    def invoke(
        self,
        operation: Operation,
        payload: dict[str, Any],
        *,
        timeout_ms: int,
        role_name: str | None = None,
    ) -> BackendResponse:
        body = json.dumps(payload, separators=(",", ":")).encode()
        headers = self._signed_headers(operation, body, role_name)
        try:
            resp = self._client.post(
                f"{self.endpoint}/",
                content=body,
                headers=headers,
                timeout=timeout_ms / 1000.0,
            )
        except httpx.TimeoutException as e:
            logger.warning("Kinesis %s timed out after %d ms", operation.value, timeout_ms)
            raise BackendTimeoutError(f"{operation.value} timed out") from e
        except httpx.TransportError as e:
            logger.error("Kinesis %s transport error: %s", operation.value, e)
            raise BackendUnavailableError(f"{operation.value} failed: {e}") from e
        if resp.status_code >= 400:
            logger.info(
                "Kinesis %s returned %d",
                operation.value,
                resp.status_code,
                extra={"operation": operation.value, "status_code": resp.status_code},
            )
        return BackendResponse(status_code=resp.status_code, body=resp.content)


_backend: KinesisBackend | None = None
_backend_lock = threading.Lock()


def get_backend() -> KinesisBackend:
    """Process-wide backend (one pooled httpx client)."""
    global _backend
    if _backend is None:
        with _backend_lock:
            if _backend is None:
                _backend = KinesisBackend()
    return _backend
