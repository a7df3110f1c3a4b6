"""boto3 clients built from the deployment settings."""
import logging
import os
from typing import Any, Dict, Optional

import boto3

from cmis_deploy.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class AWSClients:
    """
    One boto3 session per Settings object, with a client cached per service.

    In aws-prod a named AWS_PROFILE (SSO) is used when set; otherwise explicit
    credentials from the settings, then the default credential chain. The
    endpoint override is only applied in aws-mock (moto / LocalStack).
    """

    def __init__(self, settings: Optional[Settings] = None, session: Optional[boto3.Session] = None):
        self.settings = settings or get_settings()
        self._session = session
        self._clients: Dict[str, Any] = {}

    @property
    def is_mock(self) -> bool:
        return self.settings.deployment_mode == "aws-mock"

    @property
    def session(self) -> boto3.Session:
        if self._session is None:
            self._session = self._create_session()
        return self._session

    def _create_session(self) -> boto3.Session:
        region = self.settings.aws_region
        profile = os.environ.get("AWS_PROFILE")
        if profile and not self.is_mock:
            logger.info(f"Using AWS profile {profile} in {region}")
            return boto3.Session(profile_name=profile, region_name=region)

        logger.info(f"Using {self.settings.deployment_mode} credentials in {region}")
        return boto3.Session(
            aws_access_key_id=self.settings.aws_access_key_id,
            aws_secret_access_key=self.settings.aws_secret_access_key,
            region_name=region,
        )

    def client(self, service_name: str) -> Any:
        """Get or create the client for one service."""
        if service_name not in self._clients:
            kwargs = {}
            if self.is_mock and self.settings.aws_endpoint_url:
                kwargs["endpoint_url"] = self.settings.aws_endpoint_url
            self._clients[service_name] = self.session.client(service_name, **kwargs)
            logger.debug(f"Created {service_name} client {kwargs or ''}")
        return self._clients[service_name]

    @property
    def cloudformation(self):
        return self.client("cloudformation")

    @property
    def ssm(self):
        return self.client("ssm")

    @property
    def sts(self):
        return self.client("sts")

    @property
    def ec2(self):
        return self.client("ec2")

    @property
    def ecr(self):
        return self.client("ecr")
