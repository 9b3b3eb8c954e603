from typing import Annotated, Any, Literal

from pydantic import AnyUrl, BeforeValidator, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_cors(v: Any) -> list[str] | str:
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",") if i.strip()]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    PROJECT_NAME: str = "streamgate"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    SENTRY_DSN: AnyUrl | None = None
    LOG_LEVEL: str = "INFO"

    BACKEND_CORS_ORIGINS: Annotated[
        list[AnyUrl] | str, BeforeValidator(parse_cors)
    ] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def all_cors_origins(self) -> list[str]:
        return [str(origin).rstrip("/") for origin in self.BACKEND_CORS_ORIGINS]

    # Storage for gateways, configuration revisions, deployments and API keys.
    SQLALCHEMY_DATABASE_URI: str = "sqlite:///./streamgate.db"

    # Active-deployment cache (in-process L1 + Redis L2).
    REDIS_URL: str = "redis://localhost:6379/0"
    CACHE_ENABLED: bool = False
    CONFIG_CACHE_TTL_SECONDS: int = 30

    # Gateway and stage served by this process; deployments target a stage by name.
    GATEWAY_NAME: str = "kinesis-proxy"
    STAGE_NAME: str = "prod"
    BASE_URL: str = "http://localhost:8000"

    AWS_REGION: str = "us-east-1"
    AWS_ACCOUNT_ID: str | None = None
    KINESIS_ENDPOINT_URL: str | None = None
    ASSUME_EXECUTION_ROLE: bool = False
    ASSUME_ROLE_SESSION_NAME: str = "streamgate"

    # Evaluate the execution role policy locally before calling Kinesis.
    # Condition blocks are not evaluated: conditional Allows never grant here,
    # conditional Denies always apply.
    ENFORCE_POLICY: bool = True
    ACCESS_LOG_ENABLED: bool = True

    @computed_field  # type: ignore[prop-decorator]
    @property
    def redis_url(self) -> str:
        return self.REDIS_URL

    @computed_field  # type: ignore[prop-decorator]
    @property
    def kinesis_endpoint(self) -> str:
        if self.KINESIS_ENDPOINT_URL:
            return self.KINESIS_ENDPOINT_URL.rstrip("/")
        return f"https://kinesis.{self.AWS_REGION}.amazonaws.com"


settings = Settings()  # type: ignore
