"""CloudFormation stack and EC2 key pair management."""
