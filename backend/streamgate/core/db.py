from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from streamgate import models  # noqa: F401  registers tables on SQLModel.metadata
from streamgate.core.config import settings


def _make_engine(url: str):
    if url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url, pool_pre_ping=True)


engine = _make_engine(settings.SQLALCHEMY_DATABASE_URI)


def init_db(session: Session | None = None) -> None:
    """Create tables that do not exist yet."""
    bind = session.get_bind() if session is not None else engine
    SQLModel.metadata.create_all(bind)
