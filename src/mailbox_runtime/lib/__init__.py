"""Shared infrastructure: configuration, logging and locking."""
