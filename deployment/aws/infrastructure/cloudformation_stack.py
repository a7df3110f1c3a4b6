"""
CloudFormation stack management for the CMIS deployment.

Creates the stack when it does not exist and updates it when it does,
waiting for the stack to settle either way, then exposes its outputs.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, List, Optional

from botocore.exceptions import ClientError, WaiterError

logger = logging.getLogger(__name__)

NO_UPDATES_MESSAGE = "No updates are to be performed"

# Stacks in these states cannot be updated and must be recreated
UNRECOVERABLE_STATUSES = {"ROLLBACK_COMPLETE", "ROLLBACK_FAILED"}


class StackDeploymentError(Exception):
    """Raised when a stack fails to reach a complete state."""

    def __init__(self, message: str, failures: Optional[List[str]] = None):
        self.failures = failures or []
        if self.failures:
            message = f"{message}: " + "; ".join(self.failures)
        super().__init__(message)


@dataclass
class StackDeployResult:
    action: str  # "create", "update" or "no-op"
    stack_id: Optional[str]
    status: Optional[str]


def _is_missing_stack(error: ClientError) -> bool:
    err = error.response.get('Error', {})
    return err.get('Code') == 'ValidationError' and 'does not exist' in err.get('Message', '')


def load_template(template_file: str) -> str:
    """Read a template body from disk."""
    path = Path(template_file)
    if not path.is_file():
        raise StackDeploymentError(f"Template file not found: {template_file}")
    return path.read_text(encoding="utf-8")


class CloudFormationStack:
    """Manage one named CloudFormation stack."""

    def __init__(self, cf_client, stack_name: str, wait_delay: int = 15,
                 wait_max_attempts: int = 120):
        self.cf = cf_client
        self.stack_name = stack_name
        self.waiter_config = {'Delay': wait_delay, 'MaxAttempts': wait_max_attempts}

    def describe(self) -> Optional[Dict[str, Any]]:
        """Return the stack description, or None if the stack does not exist."""
        try:
            response = self.cf.describe_stacks(StackName=self.stack_name)
        except ClientError as e:
            if _is_missing_stack(e):
                return None
            raise

        stacks = response.get('Stacks', [])
        if not stacks or stacks[0].get('StackStatus') == 'DELETE_COMPLETE':
            return None
        return stacks[0]

    def exists(self) -> bool:
        return self.describe() is not None

    def status(self) -> Optional[str]:
        stack = self.describe()
        return stack.get('StackStatus') if stack else None

    def deploy(self, template_body: str, parameters: Dict[str, str],
               capabilities: Optional[List[str]] = None) -> StackDeployResult:
        """
        Create or update the stack and wait for it to complete.

        Args:
            template_body: CloudFormation template text
            parameters: Parameter overrides, e.g. {"KeyPairName": "cmis-keypair"}
            capabilities: Capabilities to acknowledge, e.g. ["CAPABILITY_IAM"]

        Returns:
            StackDeployResult describing what happened
        """
        stack_kwargs = {
            'StackName': self.stack_name,
            'TemplateBody': template_body,
            'Parameters': [
                {'ParameterKey': key, 'ParameterValue': str(value)}
                for key, value in parameters.items()
            ],
            'Capabilities': capabilities or [],
        }

        existing = self.describe()
        if existing and existing.get('StackStatus') in UNRECOVERABLE_STATUSES:
            logger.warning(f"Stack {self.stack_name} is {existing['StackStatus']}; deleting before recreate")
            self.delete()
            existing = None

        if existing is None:
            logger.info(f"Creating stack {self.stack_name}")
            response = self.cf.create_stack(
                OnFailure='ROLLBACK',
                Tags=[{'Key': 'Project', 'Value': 'cmis'}],
                **stack_kwargs
            )
            self._wait('stack_create_complete', "create")
            action = "create"
            stack_id = response.get('StackId')
        else:
            logger.info(f"Updating stack {self.stack_name} ({existing.get('StackStatus')})")
            try:
                response = self.cf.update_stack(**stack_kwargs)
            except ClientError as e:
                if NO_UPDATES_MESSAGE in e.response.get('Error', {}).get('Message', ''):
                    logger.info(f"No changes to deploy for stack {self.stack_name}")
                    return StackDeployResult("no-op", existing.get('StackId'), existing.get('StackStatus'))
                raise
            self._wait('stack_update_complete', "update")
            action = "update"
            stack_id = response.get('StackId')

        status = self.status()
        logger.info(f"✅ Stack {self.stack_name} {action} finished: {status}")
        return StackDeployResult(action, stack_id, status)

    def _wait(self, waiter_name: str, verb: str) -> None:
        waiter = self.cf.get_waiter(waiter_name)
        try:
            waiter.wait(StackName=self.stack_name, WaiterConfig=self.waiter_config)
        except WaiterError as e:
            failures = self.failure_events()
            logger.error(f"❌ Stack {verb} failed for {self.stack_name}: {e}")
            raise StackDeploymentError(f"Stack {verb} failed for {self.stack_name}", failures) from e

    def get_outputs(self) -> Dict[str, str]:
        """Stack outputs as {OutputKey: OutputValue}."""
        stack = self.describe()
        if stack is None:
            raise StackDeploymentError(f"Stack {self.stack_name} does not exist")
        return {
            output['OutputKey']: output['OutputValue']
            for output in stack.get('Outputs', [])
        }

    def get_output(self, key: str) -> Optional[str]:
        return self.get_outputs().get(key)

    def failure_events(self, limit: int = 5) -> List[str]:
        """Most recent *_FAILED events as "LogicalId: reason" strings."""
        try:
            response = self.cf.describe_stack_events(StackName=self.stack_name)
        except ClientError as e:
            logger.warning(f"Could not read stack events: {e}")
            return []

        failures = []
        for event in response.get('StackEvents', []):
            if event.get('ResourceStatus', '').endswith('_FAILED'):
                reason = event.get('ResourceStatusReason', 'unknown reason')
                failures.append(f"{event.get('LogicalResourceId')}: {reason}")
            if len(failures) >= limit:
                break
        return failures

    def delete(self) -> bool:
        """Delete the stack and wait. Returns False if there was nothing to delete."""
        if not self.exists():
            logger.info(f"Stack {self.stack_name} not found (already deleted)")
            return False

        logger.info(f"Deleting stack {self.stack_name}")
        self.cf.delete_stack(StackName=self.stack_name)
        self._wait('stack_delete_complete', "delete")
        logger.info(f"✅ Stack {self.stack_name} deleted")
        return True
