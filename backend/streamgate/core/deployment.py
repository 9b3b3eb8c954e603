"""
Applying configurations and deploying them (the activation gate).

apply_configuration stores a new immutable ConfigRevision and never changes
what is live. create_deployment is the separate, explicit step that points a
stage at a revision. Nothing in this module deploys implicitly.
"""

import hashlib
import json
import logging
import secrets
import string
from dataclasses import dataclass, field
from typing import Any

from sqlmodel import Session, col, select

from streamgate.core.config import settings
from streamgate.core.config_cache import invalidate_active_entry
from streamgate.core.gateway_config import GatewayConfig
from streamgate.core.operations import Operation
from streamgate.core.policy import find_inconsistencies, resolve_policy
from streamgate.models import ConfigRevision, Deployment, Gateway

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits


class DeploymentError(RuntimeError):
    """Raised when a deployment cannot be created."""

    pass


@dataclass
class ApplyResult:
    gateway: Gateway
    revision: ConfigRevision
    created: bool
    inconsistencies: list[str] = field(default_factory=list)


def _new_id(length: int = 10) -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


def resolve_snapshot(config: GatewayConfig) -> dict[str, Any]:
    """
    Resolve override-or-default choices once and return a JSON-safe snapshot.

    The snapshot is everything the serving side needs: enabled operations,
    authorization, API key requirement, timeout, effective policy and
    request-template overrides.
    """
    policy_name, policy_document, policy_source = resolve_policy(config)
    templates: dict[str, str] = {}
    if config.put_record_request_template:
        templates[Operation.PUT_RECORD.value] = config.put_record_request_template
    return {
        "name": config.name,
        "description": config.description,
        "operations": [op.value for op in config.enabled_operations()],
        "authorization": config.authorization.value,
        "authorizer": config.authorizer.model_dump() if config.authorizer else None,
        "api_key_required": config.api_key_required,
        "timeout_ms": config.timeout_ms,
        "execution_role_name": config.execution_role_name,
        "stream_arns": list(config.stream_arns),
        "policy": {
            "name": policy_name,
            "source": policy_source,
            "document": policy_document,
        },
        "templates": templates,
        "tags": dict(config.tags),
    }


def snapshot_hash(snapshot: dict[str, Any]) -> str:
    return hashlib.sha256(
        json.dumps(snapshot, sort_keys=True, separators=(",", ":")).encode()
    ).hexdigest()


def get_gateway(session: Session, name: str) -> Gateway | None:
    return session.exec(select(Gateway).where(Gateway.name == name)).first()


def latest_revision(session: Session, gateway_id: str) -> ConfigRevision | None:
    stmt = (
        select(ConfigRevision)
        .where(ConfigRevision.gateway_id == gateway_id)
        .order_by(col(ConfigRevision.version).desc())
    )
    return session.exec(stmt).first()


def apply_configuration(
    session: Session, config: GatewayConfig, *, message: str | None = None
) -> ApplyResult:
    """
    Store *config* as a new revision of its gateway, creating the gateway on
    first use. An unchanged configuration does not create a revision.
    The revision is not deployed.
    """
    gateway = get_gateway(session, config.name)
    if gateway is None:
        gateway = Gateway(
            id=_new_id(),
            root_resource_id=_new_id(),
            name=config.name,
        )
        logger.info("Created gateway %s (%s)", config.name, gateway.id)
    gateway.description = config.description
    gateway.tags = dict(config.tags)
    session.add(gateway)

    snapshot = resolve_snapshot(config)
    issues = find_inconsistencies(config, snapshot["policy"]["document"])
    for issue in issues:
        logger.warning("Gateway %s: %s", config.name, issue)

    digest = snapshot_hash(snapshot)
    latest = latest_revision(session, gateway.id)
    if latest is not None and latest.snapshot_hash == digest:
        session.commit()
        session.refresh(gateway)
        logger.info(
            "Gateway %s unchanged; latest revision is v%d", config.name, latest.version
        )
        return ApplyResult(gateway=gateway, revision=latest, created=False, inconsistencies=issues)

    revision = ConfigRevision(
        gateway_id=gateway.id,
        version=(latest.version + 1) if latest is not None else 1,
        snapshot=snapshot,
        snapshot_hash=digest,
        message=message,
    )
    session.add(revision)
    session.commit()
    session.refresh(gateway)
    session.refresh(revision)
    logger.info(
        "Applied gateway %s revision v%d (not deployed)", config.name, revision.version
    )
    return ApplyResult(gateway=gateway, revision=revision, created=True, inconsistencies=issues)


def create_deployment(
    session: Session,
    gateway_name: str,
    *,
    stage: str | None = None,
    version: int | None = None,
    description: str | None = None,
    deployed_by: str | None = None,
) -> Deployment:
    """Point *stage* at revision *version* (latest when None) of the gateway."""
    stage = stage or settings.STAGE_NAME
    gateway = get_gateway(session, gateway_name)
    if gateway is None:
        raise DeploymentError(f"Gateway {gateway_name!r} not found; run apply first")

    if version is None:
        revision = latest_revision(session, gateway.id)
        if revision is None:
            raise DeploymentError(f"Gateway {gateway_name!r} has no revisions to deploy")
    else:
        revision = session.exec(
            select(ConfigRevision).where(
                ConfigRevision.gateway_id == gateway.id,
                ConfigRevision.version == version,
            )
        ).first()
        if revision is None:
            raise DeploymentError(f"Gateway {gateway_name!r} has no revision v{version}")

    deployment = Deployment(
        gateway_id=gateway.id,
        revision_id=revision.id,
        stage_name=stage,
        description=description,
        deployed_by=deployed_by,
    )
    session.add(deployment)
    session.commit()
    session.refresh(deployment)
    invalidate_active_entry(stage)
    logger.info(
        "Deployed gateway %s revision v%d to stage %s",
        gateway_name,
        revision.version,
        stage,
    )
    return deployment


def get_active_deployment(
    session: Session, gateway_name: str, stage: str
) -> tuple[Deployment, ConfigRevision] | None:
    """Most recent deployment of the gateway to *stage* and its revision."""
    stmt = (
        select(Deployment, ConfigRevision)
        .join(Gateway, Deployment.gateway_id == Gateway.id)
        .join(ConfigRevision, Deployment.revision_id == ConfigRevision.id)
        .where(Gateway.name == gateway_name, Deployment.stage_name == stage)
        .order_by(col(Deployment.created_at).desc())
    )
    row = session.exec(stmt).first()
    if row is None:
        return None
    deployment, revision = row
    return deployment, revision


def get_outputs(session: Session, gateway_name: str, stage: str | None = None) -> dict[str, Any]:
    """Identifiers collaborators need: gateway id, root resource id, invoke URL."""
    stage = stage or settings.STAGE_NAME
    gateway = get_gateway(session, gateway_name)
    if gateway is None:
        raise DeploymentError(f"Gateway {gateway_name!r} not found; run apply first")
    latest = latest_revision(session, gateway.id)
    active = get_active_deployment(session, gateway_name, stage)
    return {
        "gateway_id": gateway.id,
        "root_resource_id": gateway.root_resource_id,
        "stage": stage,
        "latest_revision": latest.version if latest else None,
        "deployed_revision": active[1].version if active else None,
        "invoke_url": f"{settings.BASE_URL.rstrip('/')}/",
    }
