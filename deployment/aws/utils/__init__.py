"""AWS client management, preflight checks and console output."""
