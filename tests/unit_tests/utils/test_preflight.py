import shutil
from unittest.mock import MagicMock

import boto3
import pytest
from botocore.exceptions import ClientError, NoCredentialsError

from deployment.aws.utils.preflight import (
    CredentialsError,
    PreflightError,
    ToolNotFoundError,
    check_credentials,
    check_tools,
    run_preflight,
)
from tests.consts import MOTO_ACCOUNT_ID, TEST_REGION


def test_check_tools_passes_when_all_present(monkeypatch):
    monkeypatch.setattr(shutil, "which", lambda tool: f"/usr/bin/{tool}")
    check_tools(["aws", "docker"])


def test_check_tools_reports_first_missing_tool(monkeypatch):
    present = {"aws"}
    monkeypatch.setattr(shutil, "which", lambda tool: f"/usr/bin/{tool}" if tool in present else None)

    with pytest.raises(ToolNotFoundError) as exc_info:
        check_tools(["aws", "docker", "docker-compose"])

    assert exc_info.value.tool == "docker"
    assert str(exc_info.value) == "Docker is not installed. Please install it first."
    assert isinstance(exc_info.value, PreflightError)


def test_check_credentials_returns_identity(mocked_aws):
    sts = boto3.client("sts", region_name=TEST_REGION)

    identity = check_credentials(sts)

    assert identity["Account"] == MOTO_ACCOUNT_ID
    assert "Arn" in identity
    assert "ResponseMetadata" not in identity


def test_check_credentials_without_credentials():
    sts = MagicMock()
    sts.get_caller_identity.side_effect = NoCredentialsError()

    with pytest.raises(CredentialsError, match="aws configure"):
        check_credentials(sts)


def test_check_credentials_rejected_by_sts():
    sts = MagicMock()
    sts.get_caller_identity.side_effect = ClientError(
        {"Error": {"Code": "InvalidClientTokenId", "Message": "The security token included in the request is invalid."}},
        "GetCallerIdentity",
    )

    with pytest.raises(CredentialsError):
        check_credentials(sts)


def test_run_preflight_checks_tools_before_credentials(monkeypatch, settings):
    monkeypatch.setattr(shutil, "which", lambda tool: None)
    sts = MagicMock()

    with pytest.raises(ToolNotFoundError):
        run_preflight(settings, sts)

    sts.get_caller_identity.assert_not_called()


def test_run_preflight_can_skip_tool_checks(monkeypatch, settings):
    monkeypatch.setattr(shutil, "which", lambda tool: None)
    sts = MagicMock()
    sts.get_caller_identity.return_value = {"Account": "111122223333", "Arn": "arn:aws:iam::111122223333:user/ci", "UserId": "AIDA"}

    identity = run_preflight(settings, sts, check_tool_presence=False)

    assert identity["Account"] == "111122223333"


def test_run_preflight_skips_tools_in_mock_mode(monkeypatch, settings):
    monkeypatch.setattr(shutil, "which", lambda tool: None)
    monkeypatch.setattr(settings, "deployment_mode", "aws-mock")
    sts = MagicMock()
    sts.get_caller_identity.return_value = {"Account": MOTO_ACCOUNT_ID, "Arn": "arn", "UserId": "AIDA"}

    identity = run_preflight(settings, sts)

    assert identity["Account"] == MOTO_ACCOUNT_ID


def test_run_preflight_builds_sts_client_from_settings(mocked_aws, settings):
    identity = run_preflight(settings, check_tool_presence=False)

    assert identity["Account"] == MOTO_ACCOUNT_ID
