"""Core infrastructure: configuration, persistence, logging and errors."""
