"""
Gateway request/response: collect_params, validate_params, backend_response, gateway_error.

- collect_params: read each declared param from its location (path, query,
  header, body). Undeclared inputs are ignored.
- validate_params: reject missing required params, drop empty optional ones,
  coerce numeric ones. Runs before any request builder or backend call.
- backend_response: pass backend status and body through untouched.
"""

import json
from typing import Any

from fastapi.responses import JSONResponse, Response
from starlette.requests import Request

from streamgate.core.gateway.routes import ParamLocation, Route
from streamgate.core.param_type import validate_and_coerce_params


class RequestValidationError(ValueError):
    """Raised when a request is missing required parameters."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Missing required request parameters: [{', '.join(missing)}]")


async def read_json_body(request: Request) -> dict[str, Any]:
    """Read a JSON object body; {} on no body, invalid JSON or a non-object."""
    raw = await request.body()
    if not raw or not raw.strip():
        return {}
    try:
        body = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return {}
    return body if isinstance(body, dict) else {}


def collect_params(
    request: Request,
    route: Route,
    path_params: dict[str, str],
    body: dict[str, Any],
) -> dict[str, Any]:
    """
    Build the params dict for *route* from declared locations only.

    A param configured as "header" must come from headers (case-insensitive),
    never from query or body, and so on for each location.
    """
    out: dict[str, Any] = {}
    for spec in route.params:
        if spec.location == ParamLocation.PATH:
            if spec.name in path_params:
                out[spec.name] = path_params[spec.name]
        elif spec.location == ParamLocation.HEADER:
            value = request.headers.get(spec.name)
            if value is not None:
                out[spec.name] = value
        elif spec.location == ParamLocation.QUERY:
            value = request.query_params.get(spec.name)
            if value is not None:
                out[spec.name] = value
        elif spec.location == ParamLocation.BODY:
            if spec.name in body:
                out[spec.name] = body[spec.name]
    return out


def validate_params(route: Route, params: dict[str, Any]) -> dict[str, Any]:
    """
    Check required params and coerce declared types.

    Present means not None and not the empty string; an explicitly empty
    value counts as absent. Raises RequestValidationError or ParamTypeError.
    """
    missing = [
        name for name in route.required_params if params.get(name) in (None, "")
    ]
    if missing:
        raise RequestValidationError(missing)
    return validate_and_coerce_params(route.data_types, params)


def backend_response(status_code: int, body: bytes) -> Response:
    """Pass the backend reply through: same status, same body, application/json."""
    return Response(content=body, status_code=status_code, media_type="application/json")


def gateway_error(
    status_code: int, message: str, headers: dict[str, str] | None = None
) -> JSONResponse:
    """Gateway-generated error in the default { "message": ... } shape."""
    return JSONResponse(status_code=status_code, content={"message": message}, headers=headers)
