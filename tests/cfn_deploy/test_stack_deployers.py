import subprocess
from unittest.mock import Mock

import pytest

from cfn_deploy.cfn.application_stack import ApplicationStackDeployer, _build_parameter_overrides
from cfn_deploy.cfn.configuration_stack import ConfigurationStackDeployer
from cfn_deploy.errors import ProviderCallError, ToolNotFoundError
from cfn_deploy.s3.sync import sync_to_bucket


@pytest.fixture
def calls(monkeypatch):
    calls = []

    def fake_run(cmd, check, **kwargs):
        calls.append(cmd)
        return Mock()

    monkeypatch.setattr("subprocess.run", fake_run)
    return calls


def test_build_parameter_overrides_keeps_order():
    toks = _build_parameter_overrides({"S3BucketName": "bucket", "S3BucketSecureURL": "https://bucket/app"})
    assert toks == ["S3BucketName=bucket", "S3BucketSecureURL=https://bucket/app"]


def test_configuration_deploy_writes_template(settings, calls):
    ConfigurationStackDeployer(settings, session=Mock()).deploy("Demo-Configuration")

    template = settings.build_root / "configuration_stack.yaml"
    assert "S3BucketSecureURL" in template.read_text()
    assert (settings.build_root / ".gitignore").exists()

    cmd = calls[0]
    assert cmd[:3] == ["aws", "cloudformation", "deploy"]
    assert "--no-fail-on-empty-changeset" in cmd
    assert cmd[cmd.index("--template-file") + 1] == str(template)
    assert "StackName=Demo-Configuration" in cmd
    assert cmd[-4:] == ["--region", "eu-west-1", "--profile", "dev"]


def test_application_deploy_command(settings, calls, tmp_path):
    ApplicationStackDeployer(settings, session=Mock()).deploy(
        "Demo-Application",
        tmp_path / "main.yaml",
        "arn:aws:iam::1:role/r",
        {"S3BucketName": "bucket", "LastChange": "20240101000000"},
    )
    s = " ".join(calls[0])
    assert "--role-arn arn:aws:iam::1:role/r" in s
    assert "--capabilities CAPABILITY_IAM CAPABILITY_NAMED_IAM CAPABILITY_AUTO_EXPAND" in s
    assert "--parameter-overrides S3BucketName=bucket LastChange=20240101000000" in s


def test_application_delete_passes_role(settings):
    session = Mock()
    ApplicationStackDeployer(settings, session=session).delete("Demo-Application", "arn:role")
    session.client.return_value.delete_stack.assert_called_once_with(StackName="Demo-Application", RoleARN="arn:role")


def test_application_delete_without_role(settings):
    session = Mock()
    ApplicationStackDeployer(settings, session=session).delete("Demo-Application", None)
    session.client.return_value.delete_stack.assert_called_once_with(StackName="Demo-Application")


def test_configuration_delete(settings):
    session = Mock()
    ConfigurationStackDeployer(settings, session=session).delete("Demo-Configuration")
    session.client.return_value.delete_stack.assert_called_once_with(StackName="Demo-Configuration")


def test_sync_to_bucket(settings, calls, tmp_path):
    sync_to_bucket(settings, tmp_path, "bucket")
    assert calls[0][:5] == ["aws", "s3", "sync", str(tmp_path), "s3://bucket/app"]
    assert calls[0][5:7] == ["--exclude", "*.aws-*"]


def test_failed_aws_command_raises(settings, monkeypatch):
    def fake_run(cmd, check, **kwargs):
        raise subprocess.CalledProcessError(255, cmd)

    monkeypatch.setattr("subprocess.run", fake_run)
    with pytest.raises(ProviderCallError):
        ConfigurationStackDeployer(settings, session=Mock()).deploy("Demo-Configuration")


def test_missing_aws_cli(settings, monkeypatch):
    def fake_run(cmd, check, **kwargs):
        raise FileNotFoundError("aws")

    monkeypatch.setattr("subprocess.run", fake_run)
    with pytest.raises(ToolNotFoundError):
        sync_to_bucket(settings, settings.project_root, "bucket")
