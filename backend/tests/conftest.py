import os

# Test settings must be in place before streamgate modules read them.
os.environ["SQLALCHEMY_DATABASE_URI"] = "sqlite://"
os.environ["CACHE_ENABLED"] = "false"
os.environ["AWS_REGION"] = "us-east-1"
os.environ["STAGE_NAME"] = "prod"
os.environ["GATEWAY_NAME"] = "kinesis-proxy"
os.environ["ENFORCE_POLICY"] = "true"
os.environ.pop("AWS_ACCOUNT_ID", None)

from collections.abc import Generator  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import Session, SQLModel  # noqa: E402

from streamgate.backends.kinesis import get_backend  # noqa: E402
from streamgate.core.db import engine, init_db  # noqa: E402
from streamgate.core.gateway.auth import clear_auth_caches  # noqa: E402
from streamgate.core.gateway.resolver import invalidate_route_cache  # noqa: E402
from streamgate.main import app  # noqa: E402
from tests.utils.backend import FakeBackend  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_state() -> Generator[None, None, None]:
    """Fresh schema and empty caches for every test."""
    SQLModel.metadata.drop_all(engine)
    init_db()
    invalidate_route_cache()
    clear_auth_caches()
    yield
    invalidate_route_cache()
    clear_auth_caches()


@pytest.fixture
def db() -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def client(fake_backend: FakeBackend) -> Generator[TestClient, None, None]:
    app.dependency_overrides[get_backend] = lambda: fake_backend
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.pop(get_backend, None)
