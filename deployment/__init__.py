"""
Deployment package for CMIS infrastructure, containers, and automation.

This package contains all deployment-related components:
- AWS clients, preflight checks and console output
- SSM Parameter Store secrets and container image builds
- CloudFormation stack management and deployment orchestration
"""
