"""
Storage models: gateways, configuration revisions, deployments, API keys.

A ConfigRevision is an immutable snapshot of a resolved GatewayConfig
(created by ``apply``). A Deployment points a stage at a revision (created
only by ``deploy``); the stage serves its most recent deployment.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, Column, Text
from sqlmodel import Field, Relationship, SQLModel


def _utc_now() -> datetime:
    """Timezone-aware UTC now (replaces deprecated datetime.utcnow())."""
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Gateway - one provisioned HTTP surface
# ---------------------------------------------------------------------------


class Gateway(SQLModel, table=True):
    __tablename__ = "gateway"

    # Short public identifiers, e.g. "a1b2c3d4e5"; exposed as outputs.
    id: str = Field(primary_key=True, max_length=32)
    root_resource_id: str = Field(max_length=32)
    name: str = Field(max_length=255, unique=True, index=True)
    description: str | None = Field(default=None, max_length=1024)
    tags: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON, nullable=True))
    created_at: datetime = Field(default_factory=_utc_now)

    revisions: list["ConfigRevision"] = Relationship(
        back_populates="gateway",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )
    deployments: list["Deployment"] = Relationship(
        back_populates="gateway",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )


# ---------------------------------------------------------------------------
# ConfigRevision - resolved configuration snapshot (never live by itself)
# ---------------------------------------------------------------------------


class ConfigRevision(SQLModel, table=True):
    __tablename__ = "config_revision"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    gateway_id: str = Field(foreign_key="gateway.id", index=True, ondelete="CASCADE")
    version: int = Field(default=1)
    snapshot: dict[str, Any] = Field(sa_column=Column(JSON, nullable=False))
    snapshot_hash: str = Field(max_length=64, index=True)
    message: str | None = Field(default=None, max_length=512)
    created_at: datetime = Field(default_factory=_utc_now)

    gateway: Optional["Gateway"] = Relationship(back_populates="revisions")


# ---------------------------------------------------------------------------
# Deployment - explicit publish of a revision to a stage
# ---------------------------------------------------------------------------


class Deployment(SQLModel, table=True):
    __tablename__ = "deployment"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    gateway_id: str = Field(foreign_key="gateway.id", index=True, ondelete="CASCADE")
    revision_id: uuid.UUID = Field(foreign_key="config_revision.id", index=True)
    stage_name: str = Field(max_length=128, index=True)
    description: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    deployed_by: str | None = Field(default=None, max_length=255)
    created_at: datetime = Field(default_factory=_utc_now)

    gateway: Optional["Gateway"] = Relationship(back_populates="deployments")
    revision: Optional["ConfigRevision"] = Relationship()


# ---------------------------------------------------------------------------
# ApiKey - x-api-key credentials (stored as SHA-256 hashes)
# ---------------------------------------------------------------------------


class ApiKey(SQLModel, table=True):
    __tablename__ = "api_key"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(max_length=255, index=True)
    key_hash: str = Field(max_length=64, unique=True, index=True)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=_utc_now)
