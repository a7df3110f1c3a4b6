"""AWS deployment components for CMIS."""
