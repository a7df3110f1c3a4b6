import shutil
from unittest.mock import MagicMock

import boto3
import pytest
from botocore.exceptions import ClientError, NoCredentialsError

from deployment.aws.infrastructure.cloudformation_stack import StackDeploymentError
from deployment.aws.orchestration.deploy_cmis import CMISDeployment, DeploymentResult, log_operation
from deployment.aws.utils.preflight import CredentialsError, ToolNotFoundError
from tests.consts import (
    MOTO_ACCOUNT_ID,
    TEST_APP_URL,
    TEST_DB_ENDPOINT,
    TEST_KEY_PAIR_NAME,
    TEST_PARAMETER_NAME,
    TEST_PUBLIC_IP,
    TEST_REGION,
    TEST_STACK_NAME,
)


@pytest.fixture
def deployment(mocked_aws, template_file, settings, tmp_path):
    return CMISDeployment(settings, key_dir=tmp_path / "keys")


def test_run_executes_every_step(deployment, monkeypatch):
    monkeypatch.setattr(shutil, "which", lambda tool: f"/usr/bin/{tool}")

    result = deployment.run(create_key_pair=True)

    assert result.stack_action == "create"
    assert result.identity["Account"] == MOTO_ACCOUNT_ID
    assert result.parameter_version == 1
    assert result.key_pair == "created"
    assert result.instance_ip == TEST_PUBLIC_IP
    assert result.database_endpoint == TEST_DB_ENDPOINT
    assert result.application_url == TEST_APP_URL

    ssm = boto3.client("ssm", region_name=TEST_REGION)
    parameter = ssm.get_parameter(Name=TEST_PARAMETER_NAME, WithDecryption=True)["Parameter"]
    assert parameter["Type"] == "SecureString"
    assert len(parameter["Value"]) == 44

    assert deployment.state.status == "deployed"
    assert deployment.state.get_resource("stack", TEST_STACK_NAME)["action"] == "create"
    assert deployment.state.state["outputs"]["PublicIP"] == TEST_PUBLIC_IP


def test_stack_reads_the_configured_password_parameter(deployment):
    deployment.run(check_tools=False)

    assert deployment.stack.get_output("PasswordParameterUsed") == TEST_PARAMETER_NAME


def test_mock_mode_skips_tool_checks(deployment, monkeypatch):
    monkeypatch.setattr(shutil, "which", lambda tool: None)
    monkeypatch.setattr(deployment.settings, "deployment_mode", "aws-mock")

    result = deployment.run()

    assert result.stack_action == "create"
    assert deployment.state.status == "deployed"


def test_second_run_rotates_password_and_updates_stack(deployment):
    deployment.run(check_tools=False)
    first_password = deployment.password_store.get_password()

    result = deployment.run(check_tools=False)

    assert result.parameter_version == 2
    assert result.stack_action in ("update", "no-op")
    assert deployment.password_store.get_password() != first_password


def test_keep_password_leaves_existing_parameter(deployment):
    deployment.password_store.put_password("existing-secret")

    result = deployment.run(keep_password=True, check_tools=False)

    assert result.parameter_version == 1
    assert deployment.password_store.get_password() == "existing-secret"


def test_missing_tool_stops_before_any_aws_change(deployment, monkeypatch):
    monkeypatch.setattr(shutil, "which", lambda tool: None)

    with pytest.raises(ToolNotFoundError):
        deployment.run()

    assert deployment.password_store.parameter_version() is None
    assert deployment.stack.exists() is False
    assert deployment.state.status == "failed"


def test_invalid_credentials_stop_the_run(mocked_aws, template_file, settings):
    sts = MagicMock()
    sts.get_caller_identity.side_effect = NoCredentialsError()
    deployment = CMISDeployment(settings, sts_client=sts)

    with pytest.raises(CredentialsError):
        deployment.run(check_tools=False)

    assert deployment.password_store.parameter_version() is None
    assert deployment.state.status == "failed"
    assert "aws configure" in deployment.state.state["error"]


def test_stack_failure_marks_state_failed(mocked_aws, template_file, settings):
    cf = MagicMock()
    cf.describe_stacks.side_effect = ClientError(
        {"Error": {"Code": "AccessDenied", "Message": "not allowed"}}, "DescribeStacks"
    )
    deployment = CMISDeployment(settings, cf_client=cf)

    with pytest.raises(ClientError):
        deployment.run(check_tools=False)

    assert deployment.state.status == "failed"
    # Password step ran before the stack step
    assert deployment.password_store.parameter_version() == 1


def test_missing_template_fails_the_stack_step(mocked_aws, settings, monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "template_file", str(tmp_path / "missing.yml"))
    deployment = CMISDeployment(settings)

    with pytest.raises(StackDeploymentError, match="Template file not found"):
        deployment.run(check_tools=False)


def test_missing_key_pair_only_warns(deployment, capsys):
    assert deployment.ensure_key_pair(create=False) is None

    assert f"Key pair {TEST_KEY_PAIR_NAME} not found" in capsys.readouterr().out


def test_print_summary_lists_outputs_and_next_steps(deployment, capsys, tmp_path):
    result = DeploymentResult(
        stack_action="create",
        outputs={"PublicIP": TEST_PUBLIC_IP, "ApplicationURL": TEST_APP_URL},
    )

    deployment.print_summary(result)

    out = capsys.readouterr().out
    assert f"Instance IP: {TEST_PUBLIC_IP}" in out
    assert "Database Endpoint: N/A" in out
    key_path = tmp_path / "keys" / f"{TEST_KEY_PAIR_NAME}.pem"
    assert f"ssh -i {key_path} ec2-user@{TEST_PUBLIC_IP}" in out
    assert "docker-compose -f docker-compose.prod.yml ps" in out
    assert f"Access the application at: {TEST_APP_URL}" in out
    assert "Deployment script completed!" in out


def test_destroy_deletes_stack_and_password(deployment):
    deployment.run(check_tools=False)

    assert deployment.destroy(delete_password=True) is True

    assert deployment.stack.exists() is False
    assert deployment.password_store.parameter_version() is None
    assert deployment.state.status == "destroyed"


def test_build_images_records_uris(deployment, tmp_path):
    builder = MagicMock()
    builder.build_all.return_value = {"backend": "cmis/backend:latest"}

    uris = deployment.build_images(tmp_path, names=["backend"], builder=builder)

    assert uris == {"backend": "cmis/backend:latest"}
    specs = builder.build_all.call_args.args[0]
    assert [spec.name for spec in specs] == ["backend"]
    assert deployment.state.get_resource("image", "backend")["uri"] == "cmis/backend:latest"



def test_log_operation_reraises():
    @log_operation("exploding step")
    def explode():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError, match="boom"):
        explode()

    assert explode.__name__ == "explode"
