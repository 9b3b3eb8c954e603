"""
Health-check helpers for liveness and readiness probes.

Liveness: the process answers (no I/O).
Readiness: database, Redis and a deployment for the stage are available.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from streamgate.core.config import settings
from streamgate.core.deployment import get_active_deployment
from streamgate.core.redis_client import ping as redis_ping

logger = logging.getLogger(__name__)


def check_database(session: Session) -> bool:
    """Check the database by running SELECT 1."""
    try:
        session.exec(select(1)).first()
        return True
    except SQLAlchemyError:
        logger.warning("Database check failed", exc_info=True)
        return False


def check_redis() -> bool:
    """True if Redis answers PING or the cache is disabled."""
    return redis_ping()


def check_deployment(session: Session) -> bool:
    """True if the served gateway has a deployment on this process's stage."""
    try:
        return (
            get_active_deployment(session, settings.GATEWAY_NAME, settings.STAGE_NAME)
            is not None
        )
    except SQLAlchemyError:
        return False


def readiness(session: Session) -> dict[str, bool]:
    checks = {
        "database": check_database(session),
        "redis": check_redis(),
    }
    checks["deployment"] = checks["database"] and check_deployment(session)
    return checks
