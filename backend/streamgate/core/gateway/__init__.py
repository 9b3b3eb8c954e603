"""
Gateway: routes, resolver, request/response, request builders, auth.
"""

from streamgate.core.gateway.auth import (
    create_api_key,
    verify_api_key,
    verify_authorizer_token,
)
from streamgate.core.gateway.request_response import (
    RequestValidationError,
    backend_response,
    collect_params,
    gateway_error,
    read_json_body,
    validate_params,
)
from streamgate.core.gateway.resolver import (
    get_route_table,
    invalidate_route_cache,
)
from streamgate.core.gateway.routes import (
    ROUTE_TEMPLATES,
    Route,
    RouteTable,
    build_route_table,
    path_to_regex,
)
from streamgate.core.gateway.transform import TransformError, build_backend_request

__all__ = [
    "ROUTE_TEMPLATES",
    "RequestValidationError",
    "Route",
    "RouteTable",
    "TransformError",
    "backend_response",
    "build_backend_request",
    "build_route_table",
    "collect_params",
    "create_api_key",
    "gateway_error",
    "get_route_table",
    "invalidate_route_cache",
    "path_to_regex",
    "read_json_body",
    "validate_params",
    "verify_api_key",
    "verify_authorizer_token",
]
