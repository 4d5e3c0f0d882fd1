"""Protocol adapters: one wire connection plus the vendor's quirks."""

from mailbox_runtime.adapters.base import AbstractImapAdapter, QueryableCapability
from mailbox_runtime.adapters.generic import GenericAdapter
from mailbox_runtime.adapters.registry import AdapterRegistry, default_registry
from mailbox_runtime.adapters.statements import CommandProtocol
from mailbox_runtime.adapters.vendors import VENDOR_ADAPTERS

__all__ = [
    "AbstractImapAdapter",
    "AdapterRegistry",
    "CommandProtocol",
    "GenericAdapter",
    "QueryableCapability",
    "VENDOR_ADAPTERS",
    "default_registry",
]
