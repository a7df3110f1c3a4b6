# src/cmis_deploy/config/settings.py
from typing import Optional, Dict, List
from pydantic import Field, validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """
    Single source of truth for all deployment settings.

    Configuration precedence:
    1. Environment variables (highest priority)
    2. .env / .env.cmis files (if they exist)
    3. Default values in this class (lowest priority)

    Usage:
        from cmis_deploy.config.settings import get_settings
        settings = get_settings()
        stack_name = settings.stack_name
    """

    # Application Settings
    app_name: str = Field(
        default="cmis",
        description="Application name, used as a prefix for AWS resources"
    )

    # Deployment Mode
    deployment_mode: str = Field(
        default="aws-prod",
        description="Deployment mode: aws-mock or aws-prod"
    )

    # AWS Core Settings
    aws_region: str = Field(
        default="us-east-1",
        alias="AWS_REGION"
    )

    aws_access_key_id: Optional[str] = Field(
        default=None,
        alias="AWS_ACCESS_KEY_ID"
    )

    aws_secret_access_key: Optional[str] = Field(
        default=None,
        alias="AWS_SECRET_ACCESS_KEY"
    )

    aws_endpoint_url: Optional[str] = Field(
        default=None,
        alias="AWS_ENDPOINT_URL"
    )

    aws_account_id: Optional[str] = Field(
        default=None,
        alias="AWS_ACCOUNT_ID",
        description="AWS Account ID (auto-detected if not provided)"
    )

    # CloudFormation Configuration
    stack_name: str = Field(
        default="cmis-stack",
        description="CloudFormation stack name"
    )

    template_file: str = Field(
        default="aws-deployment.yml",
        description="CloudFormation template deployed by the run"
    )

    stack_capabilities: List[str] = Field(
        default=["CAPABILITY_IAM"],
        description="Capabilities acknowledged on stack create/update"
    )

    stack_wait_delay: int = Field(
        default=15,
        description="Seconds between stack status polls"
    )

    stack_wait_max_attempts: int = Field(
        default=120,
        description="Stack status polls before giving up"
    )

    # EC2 Configuration
    key_pair_name: str = Field(
        default="cmis-keypair",
        alias="KEY_PAIR_NAME"
    )

    instance_type: str = Field(
        default="t3.medium",
        alias="INSTANCE_TYPE"
    )

    # SSM Configuration
    db_password_parameter: str = Field(
        default="/cmis/database/password",
        description="SSM SecureString holding the database password"
    )

    db_password_bytes: int = Field(
        default=32,
        description="Random bytes in a generated database password"
    )

    # Local tooling
    required_tools: List[str] = Field(
        default=["docker"],
        description="External tools that must be on PATH before deploying"
    )

    state_file: str = Field(
        default=".cmis_deployment_state.json",
        description="Local deployment state file"
    )

    # Container images
    ecr_repo_prefix: str = Field(
        default="cmis",
        description="Prefix for ECR repositories (cmis/backend, cmis/frontend)"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )

    @validator('deployment_mode', pre=True)
    def normalize_deployment_mode(cls, v):
        """Map legacy mode names onto the supported ones."""
        if v:
            mode_mapping = {
                "mock": "aws-mock",
                "prod": "aws-prod",
                "cloud": "aws-prod",
            }
            return mode_mapping.get(v, v)
        return v

    @validator('deployment_mode')
    def validate_deployment_mode(cls, v):
        """Validate deployment mode is one of the allowed values."""
        valid_modes = ["aws-mock", "aws-prod"]
        if v not in valid_modes:
            raise ValueError(f"Invalid deployment_mode: {v}. Must be one of {valid_modes}")
        return v

    @validator('aws_region')
    def validate_region(cls, v):
        if not v or not v.strip():
            raise ValueError("aws_region must not be empty")
        return v.strip()

    @validator('aws_endpoint_url', always=True)
    def set_endpoint_url_based_on_mode(cls, v, values):
        """Auto-set endpoint URL for aws-mock if not explicitly provided."""
        if v is None and values.get('deployment_mode') == "aws-mock":
            return "http://localhost:5000"
        return v

    @validator('aws_access_key_id', 'aws_secret_access_key', always=True)
    def set_mock_credentials_for_mock_mode(cls, v, values):
        """Auto-set mock credentials for aws-mock if not provided."""
        if v is None and values.get('deployment_mode') == "aws-mock":
            return "mock"
        return v

    @property
    def stack_parameters(self) -> Dict[str, str]:
        """Parameter overrides passed to the CloudFormation template."""
        return {
            "KeyPairName": self.key_pair_name,
            "InstanceType": self.instance_type,
            "DatabasePasswordParameter": self.db_password_parameter,
        }

    @property
    def account_id(self) -> str:
        """Get AWS account ID with auto-detection fallback."""
        if self.aws_account_id:
            return self.aws_account_id

        from deployment.aws.utils.aws_clients import AWSClients
        return AWSClients(self).sts.get_caller_identity()["Account"]

    @property
    def ecr_registry(self) -> str:
        """Get ECR registry URL."""
        return f"{self.account_id}.dkr.ecr.{self.aws_region}.amazonaws.com"

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=(".env", ".env.cmis"),  # .env.cmis takes precedence
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    This ensures we only create one Settings instance per process.
    """
    return Settings()
