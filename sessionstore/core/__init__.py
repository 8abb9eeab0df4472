"""Core store logic, configuration and logging."""
