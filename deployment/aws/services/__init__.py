"""Parameter store secrets and container image builds."""
