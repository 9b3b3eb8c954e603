"""
Execution role policy attachment.

Writes the effective policy (custom or generated) as an inline policy of the
execution role and applies the configured tags. Run explicitly by the
operator (``streamgate attach-policy``); nothing calls it implicitly.
"""

import json
import logging
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from streamgate.core.gateway_config import GatewayConfig
from streamgate.core.policy import resolve_policy

logger = logging.getLogger(__name__)


class PolicyAttachError(RuntimeError):
    """Raised when IAM rejects the policy or tag update."""

    pass


def attach_execution_policy(config: GatewayConfig, *, iam_client: Any = None) -> dict[str, Any]:
    """
    Put the resolved policy on the execution role and tag the role.

    Returns {"role_name", "policy_name", "policy_source", "document"}.
    """
    client = iam_client or boto3.client("iam")
    policy_name, document, source = resolve_policy(config)
    role_name = config.execution_role_name
    try:
        client.put_role_policy(
            RoleName=role_name,
            PolicyName=policy_name,
            PolicyDocument=json.dumps(document),
        )
        if config.tags:
            client.tag_role(
                RoleName=role_name,
                Tags=[{"Key": k, "Value": v} for k, v in sorted(config.tags.items())],
            )
    except (BotoCoreError, ClientError) as e:
        logger.error("Failed to attach policy %s to role %s: %s", policy_name, role_name, e)
        raise PolicyAttachError(f"Cannot attach policy to role {role_name}: {e}") from e
    logger.info("Attached %s policy %s to role %s", source, policy_name, role_name)
    return {
        "role_name": role_name,
        "policy_name": policy_name,
        "policy_source": source,
        "document": document,
    }
