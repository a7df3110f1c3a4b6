"""
SSH Key Manager for the CMIS application instance.

Creates and manages the EC2 key pair referenced by the stack's
KeyPairName parameter and keeps the private key under ~/.ssh.
"""

import logging
import os
import stat
from pathlib import Path
from typing import Optional

from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


class SSHKeyManager:
    """Manage the EC2 key pair used to reach the application instance."""

    def __init__(self, ec2_client, key_name: str, key_dir: Optional[Path] = None,
                 project: str = "cmis"):
        self.ec2 = ec2_client
        self.key_name = key_name
        self.project = project
        self.local_key_dir = Path(key_dir) if key_dir else Path.home() / ".ssh"
        self.private_key_path = self.local_key_dir / f"{self.key_name}.pem"

    def key_pair_exists_on_aws(self) -> bool:
        """Check if key pair exists on AWS."""
        try:
            response = self.ec2.describe_key_pairs(KeyNames=[self.key_name])
            return len(response['KeyPairs']) > 0
        except ClientError as e:
            if e.response['Error']['Code'] == 'InvalidKeyPair.NotFound':
                return False
            raise

    def local_key_exists(self) -> bool:
        return self.private_key_path.exists()

    def create_key_pair(self) -> Path:
        """Create the key pair on AWS and save the private key locally."""
        logger.info(f"Creating key pair on AWS: {self.key_name}")
        response = self.ec2.create_key_pair(
            KeyName=self.key_name,
            KeyType='rsa',
            TagSpecifications=[
                {
                    'ResourceType': 'key-pair',
                    'Tags': [
                        {'Key': 'Name', 'Value': self.key_name},
                        {'Key': 'Project', 'Value': self.project}
                    ]
                }
            ]
        )
        self.save_private_key_locally(response['KeyMaterial'])
        return self.private_key_path

    def save_private_key_locally(self, private_key_material: str) -> None:
        """Save private key with owner read-only permissions."""
        self.local_key_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        if self.private_key_path.exists():
            # Previous key may be read-only
            os.chmod(self.private_key_path, stat.S_IRUSR | stat.S_IWUSR)

        with open(self.private_key_path, 'w') as f:
            f.write(private_key_material)

        os.chmod(self.private_key_path, stat.S_IRUSR)
        logger.info(f"Private key saved to {self.private_key_path}")

    def ensure_key_pair(self) -> str:
        """Returns "existing" or "created"."""
        if self.key_pair_exists_on_aws():
            if not self.local_key_exists():
                logger.warning(f"Key pair {self.key_name} exists on AWS but {self.private_key_path} is missing")
            return "existing"

        self.create_key_pair()
        return "created"

    def delete_key_pair(self, delete_local: bool = False) -> None:
        """Delete key pair from AWS, and optionally the local private key."""
        try:
            self.ec2.delete_key_pair(KeyName=self.key_name)
            logger.info(f"Deleted key pair {self.key_name} from AWS")
        except ClientError as e:
            if e.response['Error']['Code'] == 'InvalidKeyPair.NotFound':
                logger.info("Key pair not found on AWS (already deleted)")
            else:
                raise

        if delete_local and self.private_key_path.exists():
            self.private_key_path.unlink()
            logger.info(f"Deleted local private key {self.private_key_path}")
