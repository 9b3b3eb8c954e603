"""
Permission set: the execution role's policy document.

- build_policy_document: one statement per Operation. Allow scoped to the
  configured stream ARNs (or ``*``) when the operation is enabled, explicit
  Deny on ``*`` when it is not, so the document covers every operation.
- resolve_policy: custom document verbatim if supplied, else the generated one.
- policy_allows: local IAM-style evaluation (explicit Deny > Allow > implicit
  deny; NotAction/NotResource honoured, Condition never widens access) used
  by the gateway before calling the backend.
- find_inconsistencies: routes enabled by flags vs. actions the effective
  policy allows. Reported to the operator, never reconciled.
"""

from __future__ import annotations

import logging
from fnmatch import fnmatchcase
from typing import Any

from streamgate.core.gateway_config import GatewayConfig
from streamgate.core.operations import Operation

logger = logging.getLogger(__name__)

POLICY_VERSION = "2012-10-17"
WILDCARD = "*"


def build_policy_document(config: GatewayConfig) -> dict[str, Any]:
    """Generate the policy document from operation flags and stream ARNs."""
    scope: str | list[str] = list(config.stream_arns) if config.stream_arns else WILDCARD
    statements: list[dict[str, Any]] = []
    for op in Operation:
        if config.is_enabled(op):
            statements.append(
                {"Sid": op.value, "Effect": "Allow", "Action": op.action, "Resource": scope}
            )
        else:
            statements.append(
                {"Sid": op.value, "Effect": "Deny", "Action": op.action, "Resource": WILDCARD}
            )
    return {"Version": POLICY_VERSION, "Statement": statements}


def resolve_policy(config: GatewayConfig) -> tuple[str, dict[str, Any], str]:
    """
    Return (policy_name, document, source) where source is "custom" or "generated".

    A custom document replaces the generated one entirely.
    """
    name = config.effective_policy_name()
    if config.custom_policy is not None:
        return name, config.custom_policy, "custom"
    return name, build_policy_document(config), "generated"


def stream_resource(stream_name: str, region: str, account_id: str | None) -> str:
    """Kinesis stream ARN; account is left empty when unknown."""
    return f"arn:aws:kinesis:{region}:{account_id or ''}:stream/{stream_name}"


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _statements(document: dict[str, Any]) -> list[dict[str, Any]]:
    return [s for s in _as_list(document.get("Statement")) if isinstance(s, dict)]


def _action_matches(patterns: list[Any], action: str) -> bool:
    action = action.lower()
    return any(
        isinstance(p, str) and fnmatchcase(action, p.lower()) for p in patterns
    )


def _resource_part(arn: str) -> str:
    parts = arn.split(":", 5)
    return parts[5] if len(parts) == 6 else arn


def _resource_matches(
    patterns: list[Any], resource: str | None, *, strict: bool = False
) -> bool:
    """
    Match a concrete ARN against Resource patterns.

    resource=None means the resource is not known at the edge (e.g. GetRecords
    addresses a stream only through its shard iterator): any pattern matches
    unless ``strict``, in which case only ``*`` does.
    ARNs with an empty account field are compared on their resource part only.
    """
    for p in patterns:
        if not isinstance(p, str):
            continue
        if p == WILDCARD:
            return True
        if resource is None:
            if not strict:
                return True
            continue
        if fnmatchcase(resource, p):
            return True
        parts = resource.split(":")
        if len(parts) == 6 and parts[4] == "":
            if fnmatchcase(_resource_part(resource), _resource_part(p)):
                return True
    return False


def _statement_applies(
    stmt: dict[str, Any], action: str, resource: str | None, deny: bool
) -> bool:
    if "NotAction" in stmt:
        if _action_matches(_as_list(stmt["NotAction"]), action):
            return False
    elif not _action_matches(_as_list(stmt.get("Action")), action):
        return False
    if "NotResource" in stmt:
        # Unknown resource: a NotResource Deny may cover it, a NotResource Allow may not.
        if resource is None:
            return deny
        return not _resource_matches(_as_list(stmt["NotResource"]), resource)
    # An unknown resource is only denied by statements covering every resource.
    return _resource_matches(_as_list(stmt.get("Resource")), resource, strict=deny)


def policy_allows(document: dict[str, Any], action: str, resource: str | None) -> bool:
    """
    Evaluate *document* for (action, resource): explicit Deny wins, then Allow.

    Action/NotAction and Resource/NotResource are honoured. Condition blocks
    are not evaluated here: a conditional Deny always applies and a
    conditional Allow never grants, so the local check is never more
    permissive than IAM.
    """
    allowed = False
    for stmt in _statements(document):
        effect = str(stmt.get("Effect", "")).lower()
        deny = effect == "deny"
        if not _statement_applies(stmt, action, resource, deny):
            continue
        if deny:
            return False
        if effect == "allow" and "Condition" not in stmt:
            allowed = True
    return allowed


def find_inconsistencies(
    config: GatewayConfig, document: dict[str, Any]
) -> list[str]:
    """
    Describe mismatches between operation flags and the effective policy.

    An enabled operation whose action the policy never allows yields a route
    that always fails at the backend; a disabled operation the policy allows
    grants the role a permission no route uses.
    """
    issues: list[str] = []
    for op in Operation:
        allowed = policy_allows(document, op.action, None)
        enabled = config.is_enabled(op)
        if enabled and not allowed:
            issues.append(
                f"{op.value}: route enabled but the execution role policy does not allow {op.action}"
            )
        elif not enabled and allowed:
            issues.append(
                f"{op.value}: route disabled but the execution role policy allows {op.action}"
            )
    return issues
