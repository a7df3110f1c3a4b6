"""
SSM Parameter Store access for the CMIS database password.

The password lives in a SecureString parameter that the stack's instance
reads at boot, so it never appears in the template or in stack parameters.
"""

import base64
import logging
import secrets
from typing import Optional, Tuple

from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


# RDS rejects "/", "@", quotes and spaces in a master password
PASSWORD_ALTCHARS = b"+-"


def generate_password(num_bytes: int = 32) -> str:
    """Base64 of num_bytes random bytes (same shape as `openssl rand -base64 32`),
    with "-" in place of "/"."""
    if num_bytes <= 0:
        raise ValueError("num_bytes must be positive")
    return base64.b64encode(secrets.token_bytes(num_bytes), altchars=PASSWORD_ALTCHARS).decode("ascii")


class DatabasePasswordStore:
    """Create, read and delete the database password parameter."""

    def __init__(self, ssm_client, parameter_name: str, num_bytes: int = 32):
        self.ssm = ssm_client
        self.parameter_name = parameter_name
        self.num_bytes = num_bytes

    def put_password(self, value: Optional[str] = None, overwrite: bool = True) -> int:
        """
        Write the password as a SecureString.

        Args:
            value: Password to store; a fresh random one is generated if omitted
            overwrite: Replace an existing parameter

        Returns:
            The new parameter version
        """
        value = value or generate_password(self.num_bytes)
        try:
            response = self.ssm.put_parameter(
                Name=self.parameter_name,
                Value=value,
                Type="SecureString",
                Overwrite=overwrite,
                Description="CMIS database password",
            )
        except ClientError as e:
            logger.error(f"Failed to write parameter {self.parameter_name}: {e.response['Error']['Code']}")
            raise

        version = response.get("Version", 1)
        logger.info(f"Stored {self.parameter_name} (version {version})")
        return version

    def parameter_version(self) -> Optional[int]:
        """Current version of the parameter, or None when it does not exist."""
        try:
            response = self.ssm.get_parameter(Name=self.parameter_name)
            return response["Parameter"]["Version"]
        except ClientError as e:
            if e.response['Error']['Code'] == 'ParameterNotFound':
                return None
            raise

    def ensure_password(self) -> Tuple[int, bool]:
        """Create the parameter only if absent. Returns (version, created)."""
        version = self.parameter_version()
        if version is not None:
            logger.info(f"Keeping existing parameter {self.parameter_name} (version {version})")
            return version, False
        return self.put_password(overwrite=False), True

    def get_password(self) -> str:
        response = self.ssm.get_parameter(Name=self.parameter_name, WithDecryption=True)
        return response["Parameter"]["Value"]

    def delete_password(self) -> bool:
        """Delete the parameter. Returns False if it was already gone."""
        try:
            self.ssm.delete_parameter(Name=self.parameter_name)
            logger.info(f"Deleted parameter {self.parameter_name}")
            return True
        except ClientError as e:
            if e.response['Error']['Code'] == 'ParameterNotFound':
                logger.info(f"Parameter {self.parameter_name} not found (already deleted)")
                return False
            raise
