"""
Configuration management for CMIS deployments.

Contains Pydantic settings shared by the CLI and the deployment package,
covering both aws-mock and aws-prod deployment modes.
"""
from cmis_deploy.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
