"""Credential storage."""
