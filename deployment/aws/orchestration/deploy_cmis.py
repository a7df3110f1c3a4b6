"""CMIS deployment: parameter store secret, CloudFormation stack, outputs."""
import functools
import logging
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import click

from cmis_deploy.config.settings import Settings, get_settings

from deployment.aws.utils.aws_clients import AWSClients
from deployment.aws.utils.console import print_section, print_status, print_warning
from deployment.aws.utils.preflight import check_credentials, check_required_tools
from deployment.aws.services.parameter_store import DatabasePasswordStore
from deployment.aws.services.docker_images import DEFAULT_IMAGES, DockerImageBuilder
from deployment.aws.infrastructure.cloudformation_stack import (
    CloudFormationStack,
    StackDeployResult,
    load_template,
)
from deployment.aws.infrastructure.ssh_key_manager import SSHKeyManager
from deployment.aws.state.state_manager import StateManager

logger = logging.getLogger(__name__)

OUTPUT_KEYS = ("PublicIP", "DatabaseEndpoint", "ApplicationURL")
COMPOSE_FILE = "docker-compose.prod.yml"


def log_operation(description: str):
    """Decorator for timing and logging deployment steps."""
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            logger.info(f"Starting: {description}")
            start_time = time.time()
            try:
                result = func(*args, **kwargs)
                duration = time.time() - start_time
                logger.info(f"Completed: {description} in {duration:.2f}s")
                return result
            except Exception as e:
                duration = time.time() - start_time
                logger.error(f"Failed: {description} after {duration:.2f}s - {str(e)}")
                raise
        return wrapper
    return decorator


@dataclass
class DeploymentResult:
    stack_action: str
    outputs: Dict[str, str]
    identity: Dict[str, str] = field(default_factory=dict)
    parameter_version: Optional[int] = None
    key_pair: Optional[str] = None

    @property
    def instance_ip(self) -> str:
        return self.outputs.get("PublicIP") or "N/A"

    @property
    def database_endpoint(self) -> str:
        return self.outputs.get("DatabaseEndpoint") or "N/A"

    @property
    def application_url(self) -> str:
        return self.outputs.get("ApplicationURL") or "N/A"


class CMISDeployment:
    """Runs the CMIS deployment steps in a fixed order, stopping at the first failure."""

    def __init__(self, settings: Optional[Settings] = None, cf_client=None, ssm_client=None,
                 sts_client=None, ec2_client=None, state_manager: Optional[StateManager] = None,
                 key_dir: Optional[Path] = None):
        self.settings = settings or get_settings()
        self._cf = cf_client
        self._ssm = ssm_client
        self._sts = sts_client
        self._ec2 = ec2_client
        self.state = state_manager or StateManager(self.settings.state_file)
        self.key_dir = key_dir
        self.aws = AWSClients(self.settings)

        self.identity: Dict[str, str] = {}
        self.outputs: Dict[str, str] = {}

    # Clients are created on first use so preflight failures happen before any AWS setup

    @property
    def cf(self):
        if self._cf is None:
            self._cf = self.aws.cloudformation
        return self._cf

    @property
    def ssm(self):
        if self._ssm is None:
            self._ssm = self.aws.ssm
        return self._ssm

    @property
    def sts(self):
        if self._sts is None:
            self._sts = self.aws.sts
        return self._sts

    @property
    def ec2(self):
        if self._ec2 is None:
            self._ec2 = self.aws.ec2
        return self._ec2

    @property
    def stack(self) -> CloudFormationStack:
        return CloudFormationStack(
            self.cf,
            self.settings.stack_name,
            wait_delay=self.settings.stack_wait_delay,
            wait_max_attempts=self.settings.stack_wait_max_attempts,
        )

    @property
    def password_store(self) -> DatabasePasswordStore:
        return DatabasePasswordStore(
            self.ssm,
            self.settings.db_password_parameter,
            num_bytes=self.settings.db_password_bytes,
        )

    @property
    def key_manager(self) -> SSHKeyManager:
        return SSHKeyManager(self.ec2, self.settings.key_pair_name,
                             key_dir=self.key_dir, project=self.settings.app_name)

    @log_operation("Preflight checks")
    def preflight(self, check_tools: bool = True) -> Dict[str, str]:
        check_required_tools(self.settings, enabled=check_tools)
        print_status("Checking AWS credentials...")
        self.identity = check_credentials(self.sts)
        return self.identity

    @log_operation("EC2 key pair")
    def ensure_key_pair(self, create: bool = False) -> Optional[str]:
        manager = self.key_manager
        if create:
            result = manager.ensure_key_pair()
            if result == "created":
                print_status(f"Created key pair {manager.key_name} ({manager.private_key_path})")
            self.state.record_resource("key_pair", manager.key_name, {"action": result})
            return result

        if not manager.key_pair_exists_on_aws():
            print_warning(f"Key pair {manager.key_name} not found in {self.settings.aws_region}; "
                          f"stack creation will fail without it (use --create-key-pair)")
            return None
        return "existing"

    @log_operation("Database password parameter")
    def create_database_password(self, keep_existing: bool = False) -> int:
        print_status("Creating database password parameter...")
        store = self.password_store
        if keep_existing:
            version, created = store.ensure_password()
            action = "created" if created else "kept"
        else:
            version = store.put_password(overwrite=True)
            action = "overwritten"
        self.state.record_resource("ssm_parameter", store.parameter_name,
                                   {"version": version, "action": action})
        return version

    @log_operation("CloudFormation stack deployment")
    def deploy_stack(self) -> StackDeployResult:
        print_status("Deploying CloudFormation stack...")
        template_body = load_template(self.settings.template_file)
        result = self.stack.deploy(
            template_body,
            self.settings.stack_parameters,
            capabilities=self.settings.stack_capabilities,
        )
        self.state.record_resource("stack", self.settings.stack_name, {
            "stack_id": result.stack_id,
            "action": result.action,
            "status": result.status,
            "region": self.settings.aws_region,
        })
        return result

    @log_operation("Stack outputs")
    def collect_outputs(self) -> Dict[str, str]:
        print_status("Getting deployment information...")
        self.outputs = self.stack.get_outputs()
        missing = [key for key in OUTPUT_KEYS if key not in self.outputs]
        if missing:
            print_warning(f"Stack did not report: {', '.join(missing)}")
        self.state.record_outputs(self.outputs)
        return self.outputs

    def run(self, keep_password: bool = False, create_key_pair: bool = False,
            check_tools: bool = True) -> DeploymentResult:
        """Execute every step in order; mark state failed and re-raise on the first error."""
        deployment_id = f"{self.settings.app_name}-{uuid.uuid4().hex[:8]}"
        print_status("🚀 Starting CMIS Deployment...")
        self.state.start_deployment(deployment_id)

        try:
            identity = self.preflight(check_tools=check_tools)
            key_pair = self.ensure_key_pair(create=create_key_pair)
            version = self.create_database_password(keep_existing=keep_password)
            stack_result = self.deploy_stack()
            outputs = self.collect_outputs()
        except Exception as e:
            self.state.mark_deployment_failed(str(e))
            raise

        self.state.mark_deployment_complete()
        print_status("Deployment completed successfully!")
        return DeploymentResult(
            stack_action=stack_result.action,
            outputs=outputs,
            identity=identity,
            parameter_version=version,
            key_pair=key_pair,
        )

    def print_summary(self, result: DeploymentResult) -> None:
        key_path = self.key_manager.private_key_path
        click.echo("")
        print_section("📋 Deployment Information:", [
            f"Instance IP: {result.instance_ip}",
            f"Database Endpoint: {result.database_endpoint}",
            f"Application URL: {result.application_url}",
        ])
        print_section("🔧 Next Steps:", [
            f"1. SSH into the instance: ssh -i {key_path} ec2-user@{result.instance_ip}",
            f"2. Check application status: docker-compose -f {COMPOSE_FILE} ps",
            f"3. View application logs: docker-compose -f {COMPOSE_FILE} logs",
            f"4. Access the application at: {result.application_url}",
        ])
        print_section("📊 Monitoring:", [
            "- Check CloudWatch logs for application monitoring",
            "- Set up CloudWatch alarms for resource monitoring",
            "- Configure Route 53 for custom domain (optional)",
        ])
        print_status("Deployment script completed! 🎉")

    @log_operation("CMIS teardown")
    def destroy(self, delete_password: bool = False) -> bool:
        """Delete the stack and, optionally, the password parameter."""
        print_status(f"Deleting CloudFormation stack {self.settings.stack_name}...")
        deleted = self.stack.delete()
        if delete_password:
            print_status(f"Deleting parameter {self.settings.db_password_parameter}...")
            self.password_store.delete_password()
        self.state.mark_destroyed()
        return deleted

    @log_operation("Container image build")
    def build_images(self, project_root: Path, names: Optional[List[str]] = None,
                     push: bool = False, tag: str = "latest", builder=None) -> Dict[str, str]:
        """Build the backend/frontend images, pushing to ECR when requested."""
        specs = [DEFAULT_IMAGES[name] for name in (names or list(DEFAULT_IMAGES))]
        ecr_client = self.aws.ecr if push else None
        if builder is None:
            builder = DockerImageBuilder(
                project_root,
                registry=self.settings.ecr_registry if push else None,
                repo_prefix=self.settings.ecr_repo_prefix,
                tag=tag,
            )

        uris = builder.build_all(specs, push=push, ecr_client=ecr_client)
        for name, uri in uris.items():
            self.state.record_resource("image", name, {"uri": uri, "pushed": push})
        return uris
