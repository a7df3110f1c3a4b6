import boto3
import pytest
from moto import mock_aws

from cmis_deploy.config.settings import get_settings
from tests.consts import (
    TEST_KEY_PAIR_NAME,
    TEST_PARAMETER_NAME,
    TEST_REGION,
    TEST_STACK_NAME,
    TEST_TEMPLATE,
)


@pytest.fixture(autouse=True)
def aws_environment(monkeypatch, tmp_path):
    """Fake credentials and an isolated working directory for every test."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_REGION", TEST_REGION)
    monkeypatch.setenv("AWS_DEFAULT_REGION", TEST_REGION)
    monkeypatch.setenv("STACK_NAME", TEST_STACK_NAME)
    monkeypatch.setenv("KEY_PAIR_NAME", TEST_KEY_PAIR_NAME)
    monkeypatch.setenv("DB_PASSWORD_PARAMETER", TEST_PARAMETER_NAME)
    monkeypatch.setenv("STACK_WAIT_DELAY", "1")
    monkeypatch.setenv("STACK_WAIT_MAX_ATTEMPTS", "5")
    for name in ("AWS_PROFILE", "AWS_ENDPOINT_URL", "DEPLOYMENT_MODE", "TEMPLATE_FILE"):
        monkeypatch.delenv(name, raising=False)

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def mocked_aws():
    with mock_aws():
        yield


@pytest.fixture
def template_file(tmp_path, monkeypatch):
    path = tmp_path / "aws-deployment.json"
    path.write_text(TEST_TEMPLATE)
    monkeypatch.setenv("TEMPLATE_FILE", str(path))
    get_settings.cache_clear()
    return path


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def cf_client(mocked_aws):
    return boto3.client("cloudformation", region_name=TEST_REGION)


@pytest.fixture
def ssm_client(mocked_aws):
    return boto3.client("ssm", region_name=TEST_REGION)


@pytest.fixture
def ec2_client(mocked_aws):
    return boto3.client("ec2", region_name=TEST_REGION)
