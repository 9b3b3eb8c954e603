"""
Gateway resolver: the active route table for this process's stage.

The table is built once per deployed revision and reused for every request;
flags are never re-evaluated per request. The active revision comes from the
active-deployment cache (in-process + Redis), falling back to the database.
Call ``invalidate_route_cache()`` after a deployment in this process.
"""

import logging
import threading

from sqlmodel import Session

from streamgate.core.config import settings
from streamgate.core.config_cache import (
    get_active_entry,
    invalidate_active_entry,
    set_active_entry,
)
from streamgate.core.deployment import get_active_deployment
from streamgate.core.gateway.routes import RouteTable, build_route_table

_log = logging.getLogger(__name__)

# {stage: RouteTable}; replaced when the stage's deployed revision changes.
_route_tables: dict[str, RouteTable] = {}
_route_tables_lock = threading.Lock()


def _load_active_entry(session: Session, stage: str) -> dict:
    entry = get_active_entry(stage)
    if entry is not None:
        return entry
    active = get_active_deployment(session, settings.GATEWAY_NAME, stage)
    if active is None:
        entry = {"revision_id": None, "version": None, "snapshot": None}
    else:
        _, revision = active
        entry = {
            "revision_id": str(revision.id),
            "version": revision.version,
            "snapshot": revision.snapshot,
        }
    set_active_entry(stage, entry)
    return entry


def get_route_table(session: Session, stage: str | None = None) -> RouteTable:
    """Return the route table of the revision deployed to *stage*."""
    stage = stage or settings.STAGE_NAME
    entry = _load_active_entry(session, stage)
    revision_id = entry.get("revision_id")

    current = _route_tables.get(stage)
    if current is not None and current.revision_id == revision_id:
        return current
    with _route_tables_lock:
        current = _route_tables.get(stage)
        if current is not None and current.revision_id == revision_id:
            return current
        table = build_route_table(
            entry.get("snapshot"),
            revision_id=revision_id,
            version=entry.get("version"),
        )
        _route_tables[stage] = table
        if revision_id is not None:
            _log.info(
                "Loaded route table for stage %s: revision v%s, operations [%s]",
                stage,
                table.version,
                ", ".join(op.value for op in table.operations()),
            )
        return table


def invalidate_route_cache(stage: str | None = None) -> None:
    """Drop cached route tables and active-deployment entries."""
    with _route_tables_lock:
        if stage is None:
            _route_tables.clear()
        else:
            _route_tables.pop(stage, None)
    invalidate_active_entry(stage)
