"""Mailbox runtime: pooled IMAP sessions with vendor-aware protocol adapters."""

__version__ = "0.1.0"
