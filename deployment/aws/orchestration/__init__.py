"""End-to-end deployment runs."""
