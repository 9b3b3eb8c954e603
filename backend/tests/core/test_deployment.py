"""Unit tests for apply/deploy: a configuration only goes live through deploy."""

import pytest
from sqlmodel import Session, select

from streamgate.core.deployment import (
    DeploymentError,
    apply_configuration,
    create_deployment,
    get_active_deployment,
    get_outputs,
    resolve_snapshot,
)
from streamgate.core.gateway.resolver import get_route_table, invalidate_route_cache
from streamgate.core.operations import Operation
from streamgate.models import ConfigRevision, Deployment
from tests.utils.gateway import make_config


def test_apply_creates_gateway_and_revision(db: Session) -> None:
    result = apply_configuration(db, make_config(enable_list_streams=True), message="first")
    assert result.created is True
    assert result.revision.version == 1
    assert result.revision.message == "first"
    assert len(result.gateway.id) == 10
    assert len(result.gateway.root_resource_id) == 10
    assert result.gateway.id != result.gateway.root_resource_id


def test_apply_does_not_deploy(db: Session) -> None:
    apply_configuration(db, make_config(enable_list_streams=True))
    assert db.exec(select(Deployment)).all() == []
    assert get_active_deployment(db, "kinesis-proxy", "prod") is None
    assert get_route_table(db).routes == ()


def test_apply_unchanged_config_keeps_revision(db: Session) -> None:
    first = apply_configuration(db, make_config(enable_list_streams=True))
    second = apply_configuration(db, make_config(enable_list_streams=True))
    assert second.created is False
    assert second.revision.id == first.revision.id
    assert len(db.exec(select(ConfigRevision)).all()) == 1


def test_apply_changed_config_new_revision(db: Session) -> None:
    first = apply_configuration(db, make_config(enable_list_streams=True))
    second = apply_configuration(db, make_config(enable_list_streams=True, timeout_ms=1000))
    assert second.created is True
    assert second.revision.version == 2
    assert second.gateway.id == first.gateway.id


def test_apply_reports_inconsistencies(db: Session) -> None:
    custom = {"Statement": [{"Effect": "Deny", "Action": "kinesis:*", "Resource": "*"}]}
    result = apply_configuration(db, make_config(enable_put_record=True, custom_policy=custom))
    assert result.inconsistencies == [
        "PutRecord: route enabled but the execution role policy does not allow kinesis:PutRecord"
    ]
    assert result.revision.snapshot["policy"]["document"] == custom
    assert result.revision.snapshot["policy"]["source"] == "custom"


def test_snapshot_contents() -> None:
    snapshot = resolve_snapshot(
        make_config(
            enable_put_record=True,
            enable_get_records=True,
            timeout_ms=750,
            put_record_request_template='{"StreamName": "{{ stream_name }}"}',
            tags={"env": "test"},
        )
    )
    assert snapshot["operations"] == [Operation.GET_RECORDS.value, Operation.PUT_RECORD.value]
    assert snapshot["timeout_ms"] == 750
    assert snapshot["templates"] == {"PutRecord": '{"StreamName": "{{ stream_name }}"}'}
    assert snapshot["policy"]["source"] == "generated"
    assert snapshot["tags"] == {"env": "test"}


def test_deploy_latest_revision(db: Session) -> None:
    apply_configuration(db, make_config(enable_list_streams=True))
    apply_configuration(db, make_config(enable_list_streams=True, enable_put_record=True))
    deployment = create_deployment(db, "kinesis-proxy", deployed_by="ops")
    assert deployment.stage_name == "prod"
    assert deployment.deployed_by == "ops"

    invalidate_route_cache()
    table = get_route_table(db)
    assert table.version == 2
    assert set(table.operations()) == {Operation.LIST_STREAMS, Operation.PUT_RECORD}


def test_deploy_specific_revision(db: Session) -> None:
    apply_configuration(db, make_config(enable_list_streams=True))
    apply_configuration(db, make_config(enable_put_record=True))
    create_deployment(db, "kinesis-proxy", version=1)
    invalidate_route_cache()
    assert get_route_table(db).operations() == [Operation.LIST_STREAMS]


def test_redeploy_switches_route_table(db: Session) -> None:
    apply_configuration(db, make_config(enable_list_streams=True))
    create_deployment(db, "kinesis-proxy")
    assert get_route_table(db).operations() == [Operation.LIST_STREAMS]

    apply_configuration(db, make_config(enable_describe_stream=True))
    # Applied but not deployed: still serving v1.
    assert get_route_table(db).operations() == [Operation.LIST_STREAMS]

    create_deployment(db, "kinesis-proxy")
    assert get_route_table(db).operations() == [Operation.DESCRIBE_STREAM]


def test_deploy_is_per_stage(db: Session) -> None:
    apply_configuration(db, make_config(enable_list_streams=True))
    create_deployment(db, "kinesis-proxy", stage="staging")
    assert get_active_deployment(db, "kinesis-proxy", "prod") is None
    assert get_route_table(db, "prod").routes == ()
    assert get_route_table(db, "staging").operations() == [Operation.LIST_STREAMS]


def test_deploy_errors(db: Session) -> None:
    with pytest.raises(DeploymentError):
        create_deployment(db, "kinesis-proxy")
    apply_configuration(db, make_config())
    with pytest.raises(DeploymentError):
        create_deployment(db, "kinesis-proxy", version=7)
    with pytest.raises(DeploymentError):
        create_deployment(db, "other-gateway")


def test_outputs(db: Session) -> None:
    with pytest.raises(DeploymentError):
        get_outputs(db, "kinesis-proxy")
    result = apply_configuration(db, make_config(enable_list_streams=True))
    out = get_outputs(db, "kinesis-proxy")
    assert out["gateway_id"] == result.gateway.id
    assert out["root_resource_id"] == result.gateway.root_resource_id
    assert out["latest_revision"] == 1
    assert out["deployed_revision"] is None

    create_deployment(db, "kinesis-proxy")
    assert get_outputs(db, "kinesis-proxy")["deployed_revision"] == 1
