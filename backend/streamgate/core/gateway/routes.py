"""
Route templates and the immutable route table built from a deployed snapshot.

Each template binds one (method, path) to exactly one Operation with its
parameter contract. A route table contains the templates whose operation is
enabled in the snapshot and nothing else: a disabled operation has no route,
so requests for it resolve to "not found" rather than to a denial.
"""

import functools
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from streamgate.core.gateway_config import MAX_TIMEOUT_MS, AuthorizationMode, AuthorizerConfig
from streamgate.core.operations import Operation


@functools.lru_cache(maxsize=64)
def path_to_regex(pattern: str) -> re.Pattern[str]:
    """
    Convert path pattern to regex. {name} -> (?P<name>[^/]+); rest escaped.
    E.g. "streams/{name}/record" -> ^streams/(?P<name>[^/]+)/record$; "streams" -> ^streams$
    """
    parts: list[str] = []
    for seg in re.split(r"(\{[^}]+\})", pattern):
        if re.match(r"^\{[^}]+\}$", seg):
            name = seg[1:-1]
            parts.append(
                f"(?P<{name}>[^/]+)" if name.isidentifier() else re.escape(seg)
            )
        else:
            parts.append(re.escape(seg))
    return re.compile("^" + "".join(parts) + "$")


class ParamLocation(str, Enum):
    PATH = "path"
    QUERY = "query"
    HEADER = "header"
    BODY = "body"


@dataclass(frozen=True)
class ParamSpec:
    name: str
    location: ParamLocation
    required: bool = False
    data_type: str = "string"


@dataclass(frozen=True)
class RouteTemplate:
    method: str
    path: str
    operation: Operation
    params: tuple[ParamSpec, ...] = ()


def check_route_templates(templates: tuple[RouteTemplate, ...]) -> tuple[RouteTemplate, ...]:
    """Reject a template set that binds a (method, path) or an operation twice."""
    bindings: set[tuple[str, str]] = set()
    operations: set[Operation] = set()
    for tpl in templates:
        key = (tpl.method, tpl.path)
        if key in bindings:
            raise ValueError(f"Duplicate route binding: {tpl.method} {tpl.path}")
        if tpl.operation in operations:
            raise ValueError(f"Operation bound twice: {tpl.operation.value}")
        bindings.add(key)
        operations.add(tpl.operation)
    return templates


_STREAM_NAME = ParamSpec("name", ParamLocation.PATH, required=True)

ROUTE_TEMPLATES: tuple[RouteTemplate, ...] = check_route_templates((
    RouteTemplate(
        "GET",
        "/records",
        Operation.GET_RECORDS,
        (
            ParamSpec("ShardIterator", ParamLocation.HEADER, required=True),
            ParamSpec("Limit", ParamLocation.HEADER, data_type="integer"),
        ),
    ),
    RouteTemplate(
        "GET",
        "/shards",
        Operation.LIST_SHARDS,
        (
            ParamSpec("StreamName", ParamLocation.QUERY),
            ParamSpec("NextToken", ParamLocation.QUERY),
            ParamSpec("MaxResults", ParamLocation.QUERY, data_type="integer"),
        ),
    ),
    RouteTemplate("GET", "/streams", Operation.LIST_STREAMS),
    RouteTemplate("GET", "/streams/{name}", Operation.DESCRIBE_STREAM, (_STREAM_NAME,)),
    RouteTemplate(
        "PUT",
        "/streams/{name}/record",
        Operation.PUT_RECORD,
        (
            _STREAM_NAME,
            ParamSpec("Data", ParamLocation.BODY, required=True, data_type="any"),
            ParamSpec("PartitionKey", ParamLocation.BODY, required=True, data_type="any"),
        ),
    ),
    RouteTemplate(
        "PUT",
        "/streams/{name}/records",
        Operation.PUT_RECORDS,
        (
            _STREAM_NAME,
            ParamSpec("Records", ParamLocation.BODY, required=True, data_type="array"),
        ),
    ),
    RouteTemplate(
        "GET",
        "/streams/{name}/sharditerator",
        Operation.GET_SHARD_ITERATOR,
        (
            _STREAM_NAME,
            ParamSpec("ShardId", ParamLocation.QUERY, required=True),
            ParamSpec("ShardIteratorType", ParamLocation.QUERY),
            ParamSpec("StartingSequenceNumber", ParamLocation.QUERY),
            ParamSpec("Timestamp", ParamLocation.QUERY, data_type="number"),
        ),
    ),
))


@dataclass(frozen=True)
class Route:
    method: str
    path: str
    operation: Operation
    params: tuple[ParamSpec, ...]
    authorization: AuthorizationMode
    api_key_required: bool
    timeout_ms: int
    request_template: str | None = None
    authorizer_name: str | None = None

    def matches(self, path: str) -> dict[str, str] | None:
        """Path params when *path* (no leading/trailing slash) matches, else None."""
        m = path_to_regex(self.path.strip("/")).match(path)
        return m.groupdict() if m else None

    @property
    def required_params(self) -> list[str]:
        return [p.name for p in self.params if p.required]

    @property
    def data_types(self) -> dict[str, str]:
        return {p.name: p.data_type for p in self.params}


@dataclass(frozen=True)
class RouteTable:
    revision_id: str | None = None
    version: int | None = None
    routes: tuple[Route, ...] = ()
    authorization: AuthorizationMode = AuthorizationMode.NONE
    authorizer: AuthorizerConfig | None = None
    execution_role_name: str | None = None
    policy_document: dict[str, Any] = field(default_factory=dict)

    def resolve(self, method: str, path: str) -> tuple[Route, dict[str, str]] | None:
        """Resolve (method, path) to (Route, path_params)."""
        path = (path or "").strip().strip("/")
        method_upper = (method or "GET").upper()
        for route in self.routes:
            if route.method != method_upper:
                continue
            params = route.matches(path)
            if params is not None:
                return route, params
        return None

    def allowed_methods(self, path: str) -> list[str]:
        """Methods bound to *path*; empty when the path has no route at all."""
        path = (path or "").strip().strip("/")
        return sorted({r.method for r in self.routes if r.matches(path) is not None})

    def operations(self) -> list[Operation]:
        return [r.operation for r in self.routes]


EMPTY_ROUTE_TABLE = RouteTable()


def build_route_table(
    snapshot: dict[str, Any] | None,
    *,
    revision_id: str | None = None,
    version: int | None = None,
) -> RouteTable:
    """
    Build the route table for a resolved snapshot.

    Includes a route for each template whose operation is enabled; a None
    snapshot (nothing deployed) yields an empty table.
    """
    if not snapshot:
        return EMPTY_ROUTE_TABLE

    enabled = {Operation(v) for v in snapshot.get("operations") or []}
    authorization = AuthorizationMode(snapshot.get("authorization") or AuthorizationMode.NONE)
    authorizer_data = snapshot.get("authorizer")
    authorizer = AuthorizerConfig(**authorizer_data) if authorizer_data else None
    templates: dict[str, str] = snapshot.get("templates") or {}

    routes = tuple(
        Route(
            method=tpl.method,
            path=tpl.path,
            operation=tpl.operation,
            params=tpl.params,
            authorization=authorization,
            api_key_required=bool(snapshot.get("api_key_required")),
            timeout_ms=int(snapshot.get("timeout_ms") or MAX_TIMEOUT_MS),
            request_template=templates.get(tpl.operation.value),
            authorizer_name=authorizer.name
            if authorizer and authorization != AuthorizationMode.NONE
            else None,
        )
        for tpl in ROUTE_TEMPLATES
        if tpl.operation in enabled
    )
    return RouteTable(
        revision_id=revision_id,
        version=version,
        routes=routes,
        authorization=authorization,
        authorizer=authorizer,
        execution_role_name=snapshot.get("execution_role_name"),
        policy_document=(snapshot.get("policy") or {}).get("document") or {},
    )
