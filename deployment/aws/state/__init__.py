"""Local deployment state tracking."""
