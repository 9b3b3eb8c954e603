"""
Gateway proxy: dynamic /{path:path}.

Flow: resolve route (404/405) -> authorizer (401) -> API key (403) ->
collect + validate params (400) -> build backend request -> local policy
check (403) -> Kinesis call (504 on timeout) -> pass-through response.

Nothing reaches the backend unless every earlier step passed. Token checks
and the backend call are sync/blocking; they run in a thread so the event loop
keeps accepting requests.
"""

import asyncio
import logging
import time

from fastapi import APIRouter, Request
from fastapi.responses import Response

from streamgate.api.deps import BackendDep, SessionDep
from streamgate.backends.kinesis import BackendError, BackendTimeoutError
from streamgate.core.config import settings
from streamgate.core.gateway import (
    RequestValidationError,
    TransformError,
    backend_response,
    build_backend_request,
    collect_params,
    gateway_error,
    get_route_table,
    read_json_body,
    validate_params,
    verify_api_key,
    verify_authorizer_token,
)
from streamgate.core.gateway_config import AuthorizationMode
from streamgate.core.param_type import ParamTypeError
from streamgate.core.policy import policy_allows, stream_resource
from streamgate.core.templates import TemplateRenderError

logger = logging.getLogger(__name__)
access_logger = logging.getLogger("streamgate.access")

router = APIRouter(prefix="", tags=["gateway"], include_in_schema=False)


def _access_log(
    request: Request, path: str, operation: str | None, status_code: int, started: float
) -> None:
    if not settings.ACCESS_LOG_ENABLED:
        return
    latency_ms = (time.monotonic() - started) * 1000.0
    access_logger.info(
        "%s /%s %s %d %.1fms",
        request.method,
        path,
        operation or "-",
        status_code,
        latency_ms,
        extra={
            "http_method": request.method,
            "path": f"/{path}",
            "operation": operation,
            "status_code": status_code,
            "latency_ms": round(latency_ms, 1),
        },
    )


@router.api_route("/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
async def gateway_proxy(
    path: str,
    request: Request,
    session: SessionDep,
    backend: BackendDep,
) -> Response:
    started = time.monotonic()
    response, operation = await _handle(path, request, session, backend)
    _access_log(request, path, operation, response.status_code, started)
    return response


async def _handle(
    path: str, request: Request, session: SessionDep, backend: BackendDep
) -> tuple[Response, str | None]:
    table = get_route_table(session)
    resolved = table.resolve(request.method, path)
    if resolved is None:
        allowed = table.allowed_methods(path)
        if allowed:
            return (
                gateway_error(405, "Method Not Allowed", headers={"Allow": ", ".join(allowed)}),
                None,
            )
        return gateway_error(404, "Not Found"), None

    route, path_params = resolved
    operation = route.operation.value

    if route.authorization == AuthorizationMode.COGNITO_USER_POOLS:
        # JWKS lookups may hit the network; keep them off the event loop.
        claims = (
            await asyncio.to_thread(verify_authorizer_token, request, table.authorizer)
            if table.authorizer is not None
            else None
        )
        if claims is None:
            return gateway_error(401, "Unauthorized"), operation

    if route.api_key_required and verify_api_key(request, session) is None:
        return gateway_error(403, "Forbidden"), operation

    body = await read_json_body(request)
    try:
        params = validate_params(route, collect_params(request, route, path_params, body))
        payload = build_backend_request(route, params, body)
    except (RequestValidationError, ParamTypeError, TransformError) as e:
        return gateway_error(400, str(e)), operation
    except TemplateRenderError:
        logger.exception("Request template failed for %s", operation)
        return gateway_error(500, "Internal server error"), operation

    if settings.ENFORCE_POLICY:
        stream_name = payload.get("StreamName")
        resource = (
            stream_resource(stream_name, settings.AWS_REGION, settings.AWS_ACCOUNT_ID)
            if isinstance(stream_name, str) and stream_name
            else None
        )
        if not policy_allows(table.policy_document, route.operation.action, resource):
            logger.info(
                "Policy denied %s on %s",
                route.operation.action,
                resource or "*",
                extra={"operation": operation},
            )
            return (
                gateway_error(
                    403,
                    f"Execution role is not authorized to perform: {route.operation.action}",
                ),
                operation,
            )

    try:
        result = await asyncio.to_thread(
            backend.invoke,
            route.operation,
            payload,
            timeout_ms=route.timeout_ms,
            role_name=table.execution_role_name,
        )
    except BackendTimeoutError:
        return gateway_error(504, "Endpoint request timed out"), operation
    except BackendError as e:
        logger.error("Backend call %s failed: %s", operation, e)
        return gateway_error(502, "Bad Gateway"), operation

    return backend_response(result.status_code, result.body), operation
