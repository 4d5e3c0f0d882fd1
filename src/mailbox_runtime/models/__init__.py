"""Data model shared by adapters, handlers and the classifier."""

from mailbox_runtime.models.capability import Capability, CapabilitySet
from mailbox_runtime.models.folder import FolderAttribute, ListCommand, ListEntry, StandardFolder
from mailbox_runtime.models.path import FolderPath
from mailbox_runtime.models.specification import ConnectionSpecification, Credentials, ServerConfig

__all__ = [
    "Capability",
    "CapabilitySet",
    "ConnectionSpecification",
    "Credentials",
    "FolderAttribute",
    "FolderPath",
    "ListCommand",
    "ListEntry",
    "ServerConfig",
    "StandardFolder",
]
