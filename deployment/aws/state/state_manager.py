"""
CMIS deployment state management.

Records what the last deployment run created and what the stack reported,
so later commands (status, destroy, export) work without re-querying AWS.
"""

import json
import logging
import os
from datetime import datetime, timezone
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

STATUSES = ("not_deployed", "deploying", "deployed", "failed", "destroyed")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class StateManager:
    """Manages the local deployment state file."""

    def __init__(self, state_file: str = ".cmis_deployment_state.json"):
        self.state_file = state_file
        self.state = self._load_state()

    @staticmethod
    def _empty_state() -> Dict[str, Any]:
        return {
            "deployment_id": None,
            "created_at": None,
            "last_updated": None,
            "resources": {},
            "outputs": {},
            "status": "not_deployed"
        }

    def _load_state(self) -> Dict[str, Any]:
        """Load deployment state from file."""
        if os.path.exists(self.state_file):
            try:
                with open(self.state_file, 'r') as f:
                    state = json.load(f)
                if isinstance(state, dict):
                    return {**self._empty_state(), **state}
                logger.warning(f"Ignoring malformed state file {self.state_file}")
            except (json.JSONDecodeError, IOError) as e:
                logger.warning(f"Could not read state file {self.state_file}: {e}")

        return self._empty_state()

    def save_state(self):
        """Save current state to file."""
        self.state["last_updated"] = _now()

        try:
            with open(self.state_file, 'w') as f:
                json.dump(self.state, f, indent=2)
        except IOError as e:
            logger.warning(f"Could not save state file: {e}")

    @property
    def status(self) -> str:
        return self.state.get("status", "not_deployed")

    def start_deployment(self, deployment_id: str):
        """Start a new deployment."""
        self.state.update({
            "deployment_id": deployment_id,
            "created_at": _now(),
            "status": "deploying",
            "resources": {},
            "outputs": {},
        })
        self.state.pop("error", None)
        self.save_state()

    def record_resource(self, resource_type: str, resource_id: str,
                        resource_data: Optional[Dict[str, Any]] = None):
        """Record a created or updated AWS resource."""
        self.state.setdefault("resources", {}).setdefault(resource_type, {})
        self.state["resources"][resource_type][resource_id] = {
            **(resource_data or {}),
            "recorded_at": _now()
        }
        self.save_state()

    def get_resource(self, resource_type: str, resource_id: str) -> Optional[Dict[str, Any]]:
        return (self.state.get("resources", {})
                .get(resource_type, {})
                .get(resource_id))

    def list_resources(self, resource_type: Optional[str] = None) -> Dict[str, Any]:
        """List all recorded resources, optionally filtered by type."""
        resources = self.state.get("resources", {})
        if resource_type:
            return resources.get(resource_type, {})
        return resources

    def record_outputs(self, outputs: Dict[str, str]):
        self.state["outputs"] = dict(outputs)
        self.save_state()

    def mark_deployment_complete(self):
        self.state["status"] = "deployed"
        self.save_state()

    def mark_deployment_failed(self, error: str):
        self.state["status"] = "failed"
        self.state["error"] = error
        self.save_state()

    def mark_destroyed(self):
        self.state["status"] = "destroyed"
        self.state["outputs"] = {}
        self.save_state()

    def clear_state(self):
        """Clear all deployment state."""
        if os.path.exists(self.state_file):
            os.remove(self.state_file)
        self.state = self._load_state()

    def export_env_file(self, env_file: str = ".env.cmis-prod") -> None:
        """Export stack outputs and resource names to an environment file."""
        outputs = self.state.get("outputs", {})
        resources = self.state.get("resources", {})

        env_lines = [
            "# CMIS Deployment Configuration",
            f"# Generated on {_now()}",
            f"# Deployment ID: {self.state.get('deployment_id', 'unknown')}",
            "",
        ]

        stacks = resources.get("stack", {})
        if stacks:
            env_lines.extend([
                "# CloudFormation",
                f"STACK_NAME={next(iter(stacks))}",
                ""
            ])

        parameters = resources.get("ssm_parameter", {})
        if parameters:
            env_lines.extend([
                "# SSM Parameter Store",
                f"DB_PASSWORD_PARAMETER={next(iter(parameters))}",
                ""
            ])

        if outputs:
            env_lines.extend([
                "# Stack Outputs",
                f"CMIS_INSTANCE_IP={outputs.get('PublicIP', '')}",
                f"CMIS_DATABASE_ENDPOINT={outputs.get('DatabaseEndpoint', '')}",
                f"CMIS_APPLICATION_URL={outputs.get('ApplicationURL', '')}",
                ""
            ])

        with open(env_file, 'w') as f:
            f.write('\n'.join(env_lines))
        logger.info(f"Configuration exported to {env_file}")
