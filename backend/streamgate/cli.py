"""
Operator CLI.

  streamgate apply [--config FILE]     store a new configuration revision (not live)
  streamgate deploy [--revision N]     publish a revision to a stage (the only way to go live)
  streamgate outputs                   gateway id, root resource id, deployed revision
  streamgate policy [--config FILE]    print the effective execution role policy
  streamgate attach-policy [...]       put the policy on the execution role (IAM)
  streamgate create-api-key --name N   create an x-api-key credential
  streamgate serve                     run the HTTP gateway
"""

import argparse
import getpass
import json
import logging
import sys
from typing import Any

from sqlmodel import Session

from streamgate.core.config import settings
from streamgate.core.db import engine, init_db
from streamgate.core.deployment import (
    DeploymentError,
    apply_configuration,
    create_deployment,
    get_outputs,
)
from streamgate.core.gateway.auth import create_api_key
from streamgate.core.gateway_config import ConfigurationError, load_gateway_config
from streamgate.core.iam import PolicyAttachError, attach_execution_policy
from streamgate.core.policy import resolve_policy

logger = logging.getLogger(__name__)


def _print(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def cmd_apply(args: argparse.Namespace) -> int:
    config = load_gateway_config(args.config)
    with Session(engine) as session:
        result = apply_configuration(session, config, message=args.message)
        _print(
            {
                "gateway_id": result.gateway.id,
                "root_resource_id": result.gateway.root_resource_id,
                "revision": result.revision.version,
                "created": result.created,
                "inconsistencies": result.inconsistencies,
                "deployed": False,
            }
        )
    if result.created:
        print(
            f"Revision v{result.revision.version} stored. Run 'streamgate deploy' to publish it.",
            file=sys.stderr,
        )
    return 0


def cmd_deploy(args: argparse.Namespace) -> int:
    with Session(engine) as session:
        deployment = create_deployment(
            session,
            args.gateway,
            stage=args.stage,
            version=args.revision,
            description=args.description,
            deployed_by=getpass.getuser(),
        )
        _print(
            {
                "deployment_id": str(deployment.id),
                "stage": deployment.stage_name,
                "revision": deployment.revision.version if deployment.revision else None,
            }
        )
    return 0


def cmd_outputs(args: argparse.Namespace) -> int:
    with Session(engine) as session:
        _print(get_outputs(session, args.gateway, args.stage))
    return 0


def cmd_policy(args: argparse.Namespace) -> int:
    config = load_gateway_config(args.config)
    name, document, source = resolve_policy(config)
    _print({"policy_name": name, "source": source, "document": document})
    return 0


def cmd_attach_policy(args: argparse.Namespace) -> int:
    config = load_gateway_config(args.config)
    _print(attach_execution_policy(config))
    return 0


def cmd_create_api_key(args: argparse.Namespace) -> int:
    with Session(engine) as session:
        api_key, plaintext = create_api_key(session, args.name)
        _print({"id": str(api_key.id), "name": api_key.name, "key": plaintext})
    print("Store the key now; it cannot be shown again.", file=sys.stderr)
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("streamgate.main:app", host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="streamgate", description="Kinesis HTTP proxy gateway")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("apply", help="Store a new configuration revision (does not deploy)")
    p.add_argument("--config", help="JSON configuration file (default: GATEWAY_* env vars)")
    p.add_argument("--message", help="Revision message")
    p.set_defaults(func=cmd_apply)

    p = sub.add_parser("deploy", help="Publish a revision to a stage")
    p.add_argument("--gateway", default=settings.GATEWAY_NAME)
    p.add_argument("--stage", default=settings.STAGE_NAME)
    p.add_argument("--revision", type=int, help="Revision number (default: latest)")
    p.add_argument("--description")
    p.set_defaults(func=cmd_deploy)

    p = sub.add_parser("outputs", help="Show gateway identifiers")
    p.add_argument("--gateway", default=settings.GATEWAY_NAME)
    p.add_argument("--stage", default=settings.STAGE_NAME)
    p.set_defaults(func=cmd_outputs)

    p = sub.add_parser("policy", help="Print the effective execution role policy")
    p.add_argument("--config")
    p.set_defaults(func=cmd_policy)

    p = sub.add_parser("attach-policy", help="Put the policy on the execution role")
    p.add_argument("--config")
    p.set_defaults(func=cmd_attach_policy)

    p = sub.add_parser("create-api-key", help="Create an x-api-key credential")
    p.add_argument("--name", required=True)
    p.set_defaults(func=cmd_create_api_key)

    p = sub.add_parser("serve", help="Run the HTTP gateway")
    p.add_argument("--host", default="0.0.0.0")
    p.add_argument("--port", type=int, default=8000)
    p.set_defaults(func=cmd_serve)

    return parser


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=settings.LOG_LEVEL.upper(), format="%(levelname)s %(name)s: %(message)s")
    args = build_parser().parse_args(argv)
    init_db()
    try:
        return args.func(args)
    except (ConfigurationError, DeploymentError, PolicyAttachError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
