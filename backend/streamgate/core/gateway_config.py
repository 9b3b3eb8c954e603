"""
Operator configuration surface of a gateway.

Loaded from the environment (``GATEWAY_*``) or a JSON file by the CLI, and
validated once at apply time. Every error here is a configuration error: it
never surfaces while serving requests.
"""

import json
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from streamgate.core.operations import Operation
from streamgate.core.templates import TemplateRenderError, compile_template

MIN_TIMEOUT_MS = 50
MAX_TIMEOUT_MS = 29_000


class ConfigurationError(ValueError):
    """Raised when a gateway configuration cannot be applied."""

    pass


class AuthorizationMode(str, Enum):
    """NONE: open routes. COGNITO_USER_POOLS: bearer token from a user pool."""

    NONE = "NONE"
    COGNITO_USER_POOLS = "COGNITO_USER_POOLS"


class AuthorizerConfig(BaseModel):
    name: str = "cognito"
    provider_arns: list[str] = Field(default_factory=list)
    # Accepted client ids (aud / client_id claim); empty accepts any.
    audience: list[str] = Field(default_factory=list)

    @field_validator("provider_arns")
    @classmethod
    def _check_provider_arns(cls, v: list[str]) -> list[str]:
        for arn in v:
            parts = arn.split(":")
            if len(parts) != 6 or parts[2] != "cognito-idp" or not parts[5].startswith("userpool/"):
                raise ValueError(f"Not a Cognito user pool ARN: {arn!r}")
        return v

    def issuers(self) -> list[str]:
        """Token issuer URL for each user pool, in provider order."""
        out: list[str] = []
        for arn in self.provider_arns:
            parts = arn.split(":")
            region, pool_id = parts[3], parts[5].split("/", 1)[1]
            out.append(f"https://cognito-idp.{region}.amazonaws.com/{pool_id}")
        return out


class GatewayConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="GATEWAY_",
        env_nested_delimiter="__",
        env_ignore_empty=True,
        extra="ignore",
    )

    name: str = "kinesis-proxy"
    description: str = "HTTP proxy for Kinesis Data Streams"

    enable_list_streams: bool = False
    enable_describe_stream: bool = False
    enable_list_shards: bool = False
    enable_get_records: bool = False
    enable_get_shard_iterator: bool = False
    enable_put_record: bool = False
    enable_put_records: bool = False

    authorization: AuthorizationMode = AuthorizationMode.NONE
    authorizer: AuthorizerConfig | None = None
    api_key_required: bool = False

    execution_role_name: str = "kinesis-proxy-execution"
    custom_policy: dict[str, Any] | None = None
    custom_policy_name: str | None = None

    put_record_request_template: str | None = None

    stream_arns: list[str] = Field(default_factory=list)
    timeout_ms: int = Field(default=MAX_TIMEOUT_MS, ge=MIN_TIMEOUT_MS, le=MAX_TIMEOUT_MS)
    tags: dict[str, str] = Field(default_factory=dict)

    @field_validator("custom_policy")
    @classmethod
    def _check_custom_policy(cls, v: dict[str, Any] | None) -> dict[str, Any] | None:
        if v is not None and not isinstance(v.get("Statement"), list | dict):
            raise ValueError("custom_policy must be an IAM policy document with a Statement")
        return v

    @field_validator("put_record_request_template")
    @classmethod
    def _check_template(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        try:
            compile_template(v)
        except TemplateRenderError as e:
            raise ValueError(str(e)) from e
        return v

    @model_validator(mode="after")
    def _check_authorizer(self) -> "GatewayConfig":
        if self.authorization == AuthorizationMode.COGNITO_USER_POOLS:
            if self.authorizer is None or not self.authorizer.provider_arns:
                raise ValueError(
                    "authorization COGNITO_USER_POOLS requires authorizer.provider_arns"
                )
        return self

    def is_enabled(self, operation: Operation) -> bool:
        return bool(getattr(self, operation.flag_name))

    def enabled_operations(self) -> list[Operation]:
        return [op for op in Operation if self.is_enabled(op)]

    def effective_policy_name(self) -> str:
        return self.custom_policy_name or f"{self.execution_role_name}-policy"


def _format_validation_error(e: ValidationError) -> str:
    messages = []
    for err in e.errors():
        loc = ".".join(str(part) for part in err.get("loc", []))
        msg = err.get("msg", "Invalid value")
        messages.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(messages)


def load_gateway_config(
    path: Path | str | None = None, overrides: dict[str, Any] | None = None
) -> GatewayConfig:
    """
    Build a validated GatewayConfig.

    Values come from, in priority order: ``overrides``, the JSON file at
    ``path``, ``GATEWAY_*`` environment variables, field defaults.
    Raises ConfigurationError on any invalid or unreadable input.
    """
    data: dict[str, Any] = {}
    if path is not None:
        try:
            raw = json.loads(Path(path).read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read gateway configuration {path}: {e}") from e
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Gateway configuration {path} must be a JSON object")
        data.update(raw)
    if overrides:
        data.update(overrides)
    try:
        return GatewayConfig(**data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid gateway configuration: {_format_validation_error(e)}"
        ) from e
