"""Account and publishing services."""
