"""Registry of adapter classes, looked up by name."""

import threading
from typing import Iterable, Optional

from mailbox_runtime.adapters.base import AbstractImapAdapter
from mailbox_runtime.errors import AdapterNotFound


class AdapterRegistry:
    """Maps adapter names to adapter classes and holds the default adapter.

    An explicit object rather than module state, so each pool can carry its
    own set of adapters. Use default_registry() for the built-in set.
    """

    def __init__(
        self,
        adapters: Iterable[type[AbstractImapAdapter]] = (),
        default: Optional[type[AbstractImapAdapter]] = None,
    ) -> None:
        self._adapters: dict[str, type[AbstractImapAdapter]] = {}
        self._default: Optional[type[AbstractImapAdapter]] = None
        self._lock = threading.Lock()
        for adapter in adapters:
            self.register(adapter)
        if default is not None:
            self.set_default(default)

    def register(self, adapter: type) -> bool:
        """Add an adapter class; returns False for anything that is not an adapter."""
        if not self._is_adapter(adapter):
            return False
        with self._lock:
            self._adapters[adapter.adapter_name] = adapter
        return True

    def unregister(self, name: str) -> Optional[type[AbstractImapAdapter]]:
        with self._lock:
            return self._adapters.pop(name, None)

    def retrieve(self, name: Optional[str] = None) -> Optional[type[AbstractImapAdapter]]:
        """Adapter registered under name; the default adapter when name is None."""
        if name is None:
            return self._default
        with self._lock:
            adapter = self._adapters.get(name)
        if adapter is None:
            raise AdapterNotFound(name)
        return adapter

    def set_default(self, adapter: type) -> bool:
        if not self._is_adapter(adapter):
            return False
        self._default = adapter
        return True

    @property
    def default(self) -> Optional[type[AbstractImapAdapter]]:
        return self._default

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._adapters)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._adapters

    @staticmethod
    def _is_adapter(adapter: type) -> bool:
        return (
            isinstance(adapter, type)
            and issubclass(adapter, AbstractImapAdapter)
            and adapter is not AbstractImapAdapter
        )


def default_registry() -> AdapterRegistry:
    """Registry with the generic adapter (also the default) and every vendor variant."""
    from mailbox_runtime.adapters.generic import GenericAdapter
    from mailbox_runtime.adapters.vendors import VENDOR_ADAPTERS

    return AdapterRegistry([GenericAdapter, *VENDOR_ADAPTERS], default=GenericAdapter)
