"""Core infrastructure: configuration, security, persistence and errors."""
