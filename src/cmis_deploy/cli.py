# cli.py
import functools
import json
import logging
import sys
from pathlib import Path

import click
from botocore.exceptions import BotoCoreError, ClientError

from cmis_deploy.config.settings import Settings, get_settings

from deployment.aws.utils.console import print_error, print_status, print_warning
from deployment.aws.utils.preflight import PreflightError, run_preflight
from deployment.aws.services.docker_images import DEFAULT_IMAGES, ImageBuildError
from deployment.aws.infrastructure.cloudformation_stack import StackDeploymentError
from deployment.aws.orchestration.deploy_cmis import CMISDeployment, OUTPUT_KEYS
from deployment.aws.state.state_manager import StateManager

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

DEPLOYMENT_ERRORS = (PreflightError, StackDeploymentError, ImageBuildError,
                     ClientError, BotoCoreError)


def handle_deployment_errors(func):
    """Print deployment failures as [ERROR] lines and exit with status 1."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except DEPLOYMENT_ERRORS as e:
            print_error(str(e))
            sys.exit(1)
    return wrapper


def build_settings(region=None, stack_name=None, mode=None) -> Settings:
    """Settings with command line overrides applied on top of env and .env files."""
    overrides = {
        "AWS_REGION": region,
        "stack_name": stack_name,
        "deployment_mode": mode,
    }
    overrides = {key: value for key, value in overrides.items() if value}
    if not overrides:
        return get_settings()
    return Settings(**overrides)


@click.group()
@click.option("--log-level",
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
              default=None,
              help="Logging level (defaults to LOG_LEVEL setting)")
@click.option("--region", default=None, help="AWS region (overrides AWS_REGION)")
@click.option("--stack-name", default=None, help="CloudFormation stack name")
@click.option("--mode", type=click.Choice(["aws-mock", "aws-prod"]), default=None,
              help="Deployment mode")
@click.pass_context
def cli(ctx, log_level, region, stack_name, mode):
    """CLI commands for deploying CMIS to AWS"""
    settings = build_settings(region=region, stack_name=stack_name, mode=mode)
    ctx.obj = settings
    logging.basicConfig(
        level=(log_level or settings.log_level).upper(),
        format=LOG_FORMAT
    )


@cli.command()
@click.pass_obj
def show_config(settings):
    """Show current configuration"""
    print("Current Configuration:")
    print(f"  Deployment Mode: {settings.deployment_mode}")
    print(f"  AWS Region: {settings.aws_region}")
    print(f"  AWS Endpoint: {settings.aws_endpoint_url}")
    print(f"  Stack Name: {settings.stack_name}")
    print(f"  Template File: {settings.template_file}")
    print(f"  Key Pair: {settings.key_pair_name}")
    print(f"  Instance Type: {settings.instance_type}")
    print(f"  DB Password Parameter: {settings.db_password_parameter}")
    print(f"  State File: {settings.state_file}")


@cli.command()
@click.option("--skip-tools", is_flag=True, help="Only check credentials")
@click.pass_obj
@handle_deployment_errors
def preflight(settings, skip_tools):
    """Check required tools and AWS credentials"""
    print_status("Checking required tools and AWS credentials...")
    identity = run_preflight(settings, check_tool_presence=not skip_tools)
    print_status(f"Authenticated as {identity.get('Arn')} (account {identity.get('Account')})")


@cli.command()
@click.option("--keep-password", is_flag=True,
              help="Keep an existing database password instead of generating a new one")
@click.option("--create-key-pair", is_flag=True,
              help="Create the EC2 key pair if it does not exist")
@click.option("--skip-preflight-tools", is_flag=True,
              help="Do not check for docker on PATH")
@click.option("--export-env", default=None,
              help="Write stack outputs to this environment file")
@click.pass_obj
@handle_deployment_errors
def deploy(settings, keep_password, create_key_pair, skip_preflight_tools, export_env):
    """Deploy the CMIS CloudFormation stack"""
    deployment = CMISDeployment(settings)
    result = deployment.run(
        keep_password=keep_password,
        create_key_pair=create_key_pair,
        check_tools=not skip_preflight_tools,
    )
    if export_env:
        deployment.state.export_env_file(export_env)
    deployment.print_summary(result)


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print outputs as JSON")
@click.pass_obj
@handle_deployment_errors
def outputs(settings, as_json):
    """Show the deployed stack's outputs"""
    deployment = CMISDeployment(settings)
    stack_outputs = deployment.stack.get_outputs()

    if as_json:
        click.echo(json.dumps(stack_outputs, indent=2))
        return

    for key in OUTPUT_KEYS:
        click.echo(f"{key}: {stack_outputs.get(key, 'N/A')}")
    for key, value in sorted(stack_outputs.items()):
        if key not in OUTPUT_KEYS:
            click.echo(f"{key}: {value}")


@cli.command()
@click.option("--keep-existing", is_flag=True, help="Only create the parameter if it is missing")
@click.pass_obj
@handle_deployment_errors
def put_db_password(settings, keep_existing):
    """Create or rotate the database password parameter"""
    deployment = CMISDeployment(settings)
    version = deployment.create_database_password(keep_existing=keep_existing)
    print_status(f"{deployment.settings.db_password_parameter} is at version {version}")


@cli.command()
@click.option("--push", is_flag=True, help="Push images to ECR after building")
@click.option("--only", type=click.Choice(sorted(DEFAULT_IMAGES)), multiple=True,
              help="Build only these images")
@click.option("--tag", default="latest", help="Image tag")
@click.option("--project-root", default=".", type=click.Path(file_okay=False),
              help="CMIS checkout containing backend/ and frontend/")
@click.pass_obj
@handle_deployment_errors
def build_images(settings, push, only, tag, project_root):
    """Build the backend and frontend container images"""
    deployment = CMISDeployment(settings)
    uris = deployment.build_images(Path(project_root), names=list(only) or None,
                                   push=push, tag=tag)
    for name, uri in uris.items():
        print_status(f"{name}: {uri}")


@cli.command()
@click.pass_obj
def status(settings):
    """Show the recorded deployment state"""
    manager = StateManager(settings.state_file)

    print(f"Deployment Status: {manager.status}")
    print(f"Deployment ID: {manager.state.get('deployment_id') or 'none'}")
    print(f"Created: {manager.state.get('created_at') or 'unknown'}")
    print(f"Last Updated: {manager.state.get('last_updated') or 'unknown'}")
    if manager.state.get("error"):
        print(f"Error: {manager.state['error']}")

    resources = manager.list_resources()
    if resources:
        print("\nRecorded Resources:")
        for resource_type, items in resources.items():
            print(f"  {resource_type}: {', '.join(items)}")

    recorded_outputs = manager.state.get("outputs") or {}
    if recorded_outputs:
        print("\nStack Outputs:")
        for key, value in recorded_outputs.items():
            print(f"  {key}: {value}")


@cli.command()
@click.option("--delete-password", is_flag=True, help="Also delete the database password parameter")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_obj
@handle_deployment_errors
def destroy(settings, delete_password, yes):
    """Delete the CMIS CloudFormation stack"""
    if not yes:
        click.confirm(f"Delete stack {settings.stack_name} in {settings.aws_region}?", abort=True)

    deployment = CMISDeployment(settings)
    if deployment.destroy(delete_password=delete_password):
        print_status(f"Stack {settings.stack_name} deleted")
    else:
        print_warning(f"Stack {settings.stack_name} did not exist")


def main():
    cli()


if __name__ == "__main__":
    main()
