"""Tests for the operator CLI."""

import json
from pathlib import Path
from unittest.mock import Mock, patch

import pytest
from sqlmodel import Session

from streamgate import cli
from streamgate.core.deployment import get_active_deployment


def _write_config(tmp_path: Path, **data) -> str:
    path = tmp_path / "gateway.json"
    path.write_text(json.dumps({"name": "kinesis-proxy", **data}))
    return str(path)


def _run(capsys: pytest.CaptureFixture[str], *argv: str) -> tuple[int, dict, str]:
    code = cli.main(list(argv))
    captured = capsys.readouterr()
    out = json.loads(captured.out) if captured.out.strip() else {}
    return code, out, captured.err


@pytest.fixture(autouse=True)
def _user(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli.getpass, "getuser", lambda: "operator")


def test_apply_does_not_deploy(
    tmp_path: Path, capsys: pytest.CaptureFixture[str], db: Session
) -> None:
    config = _write_config(tmp_path, enable_list_streams=True)
    code, out, err = _run(capsys, "apply", "--config", config, "--message", "first")
    assert code == 0
    assert out["revision"] == 1
    assert out["created"] is True
    assert out["deployed"] is False
    assert "streamgate deploy" in err
    assert get_active_deployment(db, "kinesis-proxy", "prod") is None


def test_apply_deploy_outputs(
    tmp_path: Path, capsys: pytest.CaptureFixture[str], db: Session
) -> None:
    config = _write_config(tmp_path, enable_list_streams=True)
    _, applied, _ = _run(capsys, "apply", "--config", config)

    code, deployed, _ = _run(capsys, "deploy", "--description", "initial")
    assert code == 0
    assert deployed["stage"] == "prod"
    assert deployed["revision"] == 1

    active = get_active_deployment(db, "kinesis-proxy", "prod")
    assert active is not None
    assert active[0].deployed_by == "operator"

    code, outputs, _ = _run(capsys, "outputs")
    assert code == 0
    assert outputs["gateway_id"] == applied["gateway_id"]
    assert outputs["root_resource_id"] == applied["root_resource_id"]
    assert outputs["latest_revision"] == 1
    assert outputs["deployed_revision"] == 1


def test_deploy_without_apply_fails(capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["deploy"])
    assert code == 2
    assert capsys.readouterr().err.startswith("error: ")


def test_invalid_config_fails(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    config = _write_config(tmp_path, timeout_ms=10)
    code = cli.main(["apply", "--config", config])
    assert code == 2
    assert "timeout_ms" in capsys.readouterr().err


def test_unreadable_config_fails(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["apply", "--config", str(tmp_path / "missing.json")])
    assert code == 2


def test_policy_command(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    config = _write_config(tmp_path, enable_put_record=True, execution_role_name="proxy-role")
    code, out, _ = _run(capsys, "policy", "--config", config)
    assert code == 0
    assert out["policy_name"] == "proxy-role-policy"
    assert out["source"] == "generated"
    effects = {s["Sid"]: s["Effect"] for s in out["document"]["Statement"]}
    assert effects["PutRecord"] == "Allow"
    assert effects["ListStreams"] == "Deny"


def test_attach_policy_command(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    config = _write_config(
        tmp_path, enable_list_streams=True, execution_role_name="proxy-role", tags={"team": "data"}
    )
    iam = Mock()
    with patch("streamgate.core.iam.boto3.client", return_value=iam):
        code, out, _ = _run(capsys, "attach-policy", "--config", config)
    assert code == 0
    assert out["role_name"] == "proxy-role"
    iam.put_role_policy.assert_called_once()
    kwargs = iam.put_role_policy.call_args.kwargs
    assert kwargs["RoleName"] == "proxy-role"
    assert kwargs["PolicyName"] == "proxy-role-policy"
    assert json.loads(kwargs["PolicyDocument"]) == out["document"]
    iam.tag_role.assert_called_once_with(
        RoleName="proxy-role", Tags=[{"Key": "team", "Value": "data"}]
    )


def test_create_api_key_command(capsys: pytest.CaptureFixture[str]) -> None:
    code, out, err = _run(capsys, "create-api-key", "--name", "ingest")
    assert code == 0
    assert out["name"] == "ingest"
    assert out["key"]
    assert "cannot be shown again" in err
