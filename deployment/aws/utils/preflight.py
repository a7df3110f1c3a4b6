"""
Preflight checks run before anything is changed in AWS.

Verifies that required command line tools are installed and that the
current AWS credentials resolve to a valid caller identity.
"""

import logging
import shutil
from typing import Dict, Iterable

from botocore.exceptions import ClientError, NoCredentialsError, PartialCredentialsError

logger = logging.getLogger(__name__)

TOOL_DISPLAY_NAMES = {
    "aws": "AWS CLI",
    "docker": "Docker",
    "docker-compose": "Docker Compose",
}


class PreflightError(Exception):
    """Raised when the environment is not ready for a deployment."""


class ToolNotFoundError(PreflightError):
    def __init__(self, tool: str):
        self.tool = tool
        display_name = TOOL_DISPLAY_NAMES.get(tool, tool)
        super().__init__(f"{display_name} is not installed. Please install it first.")


class CredentialsError(PreflightError):
    def __init__(self, detail: str = ""):
        self.detail = detail
        super().__init__("AWS credentials not configured. Please run 'aws configure' first.")


def check_tools(tools: Iterable[str]) -> None:
    """Raise ToolNotFoundError for the first tool not found on PATH."""
    for tool in tools:
        path = shutil.which(tool)
        if path is None:
            logger.error(f"Required tool missing: {tool}")
            raise ToolNotFoundError(tool)
        logger.debug(f"Found {tool} at {path}")


def check_credentials(sts_client) -> Dict[str, str]:
    """
    Confirm the active credentials with STS.

    Returns:
        Dictionary containing Account, Arn, and UserId

    Raises:
        CredentialsError: If the credentials are missing or rejected
    """
    try:
        identity = sts_client.get_caller_identity()
    except (NoCredentialsError, PartialCredentialsError) as e:
        logger.error(f"No usable AWS credentials: {e}")
        raise CredentialsError(str(e)) from e
    except ClientError as e:
        logger.error(f"STS rejected credentials: {e.response['Error'].get('Code')}")
        raise CredentialsError(str(e)) from e

    identity.pop('ResponseMetadata', None)
    logger.info(f"Caller identity: {identity.get('Arn')} (account {identity.get('Account')})")
    return identity


def check_required_tools(settings, enabled: bool = True) -> bool:
    """
    Check settings.required_tools unless disabled. aws-mock runs talk to
    moto / LocalStack and need no local docker. Returns whether it checked.
    """
    if not enabled or settings.deployment_mode == "aws-mock":
        logger.info(f"Skipping tool checks ({settings.deployment_mode})")
        return False
    check_tools(settings.required_tools)
    return True


def run_preflight(settings, sts_client=None, check_tool_presence: bool = True) -> Dict[str, str]:
    """Tool checks first, then the credential check."""
    check_required_tools(settings, enabled=check_tool_presence)

    if sts_client is None:
        from .aws_clients import AWSClients
        sts_client = AWSClients(settings).sts

    return check_credentials(sts_client)
