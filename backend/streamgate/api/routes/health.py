from fastapi import APIRouter
from fastapi.responses import JSONResponse

from streamgate.api.deps import SessionDep
from streamgate.core.health import readiness

router = APIRouter(tags=["health"])


@router.get("/healthz")
def liveness() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz")
def ready(session: SessionDep) -> JSONResponse:
    checks = readiness(session)
    ok = all(checks.values())
    return JSONResponse(
        status_code=200 if ok else 503,
        content={"status": "ok" if ok else "unavailable", "checks": checks},
    )
