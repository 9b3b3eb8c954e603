import logging

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from streamgate.api.routes.gateway import router as gateway_router
from streamgate.api.routes.health import router as health_router
from streamgate.core.config import settings

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
_logger = logging.getLogger(__name__)

if settings.SENTRY_DSN and settings.ENVIRONMENT != "local":
    sentry_sdk.init(dsn=str(settings.SENTRY_DSN), enable_tracing=True)

app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url="/_openapi.json",
    docs_url="/_docs",
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Exception handlers: gateway error format { "message": ... }
# ---------------------------------------------------------------------------

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return 400 with a human-readable message instead of raw Pydantic errors."""
    messages = []
    for err in exc.errors():
        loc = ".".join(str(l) for l in err.get("loc", []) if l != "body")
        msg = err.get("msg", "Invalid value")
        messages.append(f"{loc}: {msg}" if loc else msg)
    return JSONResponse(status_code=400, content={"message": "; ".join(messages)})

@app.exception_handler(Exception)
async def unhandled_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Log unhandled exceptions and return 500 with a safe message."""
    _logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    message = "Internal server error"
    if settings.ENVIRONMENT == "local":
        message = f"Internal server error: {exc}"
    return JSONResponse(status_code=500, content={"message": message})

if settings.all_cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.all_cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "PUT"],
        allow_headers=["*"],
    )

# Health probes FIRST (higher priority), gateway catch-all LAST: /{path:path}
app.include_router(health_router)
app.include_router(gateway_router)
