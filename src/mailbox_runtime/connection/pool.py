"""Registry of connection handlers keyed by account identity."""

import threading
from typing import Any, Callable, Hashable, Optional, TypeVar

from imapclient.exceptions import IMAPClientError

from mailbox_runtime.adapters.base import AbstractImapAdapter
from mailbox_runtime.connection.handler import ConnectionHandler, ConnectionState
from mailbox_runtime.errors import ConnectionNotEstablished, MailboxRuntimeError
from mailbox_runtime.lib.config import ConnectionConfig, connection_config
from mailbox_runtime.lib.logger import get_logger
from mailbox_runtime.lib.rwlock import ReadWriteLock
from mailbox_runtime.models.specification import ConnectionSpecification

logger = get_logger(__name__)

T = TypeVar("T")

SpecificationFactory = Callable[[Hashable], Optional[ConnectionSpecification]]
HandlerFactory = Callable[[Hashable], ConnectionHandler]


class ConnectionPool:
    """One ConnectionHandler per account, guarded by the pool's own lock.

    Example:
        pool = ConnectionPool(specification_factory=lookup_account)
        pool.establish_connection("alice")
        folders = pool.with_connection("alice", 10, lambda a: a.folder_retrieve(cmd))
        pool.disconnect("alice")
    """

    def __init__(
        self,
        config: ConnectionConfig = connection_config,
        specification_factory: Optional[SpecificationFactory] = None,
        handler_factory: Optional[HandlerFactory] = None,
    ) -> None:
        self.config = config
        self.specification_factory = specification_factory
        self._handler_factory = handler_factory or (
            lambda identity: ConnectionHandler(self.config, identity=identity)
        )
        self._handlers: dict[Hashable, ConnectionHandler] = {}
        self._lock = ReadWriteLock()

    # ========================================================================
    # Registry
    # ========================================================================
    def add_handler(self, identity: Hashable) -> ConnectionHandler:
        """Register a handler for identity, reusing an existing one."""
        with self._lock.write():
            return self._add_handler(identity)

    def remove_handler(self, identity: Hashable) -> Optional[ConnectionHandler]:
        with self._lock.write():
            return self._handlers.pop(identity, None)

    def has_handler(self, identity: Hashable) -> bool:
        with self._lock.read():
            return identity in self._handlers

    def handler(self, identity: Hashable) -> ConnectionHandler:
        with self._lock.read():
            return self._handler(identity)

    def identities(self) -> list[Hashable]:
        with self._lock.read():
            return list(self._handlers)

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._handlers)

    # ========================================================================
    # Connection lifecycle
    # ========================================================================
    def establish(self, identity: Hashable, specification: ConnectionSpecification) -> bool:
        """Create the handler for identity if needed and connect it."""
        with self._lock.write():
            handler = self._add_handler(identity)
            return handler.establish(specification)

    def establish_connection(self, identity: Hashable) -> bool:
        """Establish identity with the specification the factory resolves for it.

        Raises:
            ValueError: No factory is configured or it knows nothing about identity
        """
        if self.specification_factory is None:
            raise ValueError("No specification factory configured")
        specification = self.specification_factory(identity)
        if specification is None:
            raise ValueError(f"No connection specification for {identity!r}")
        return self.establish(identity, specification)

    def with_connection(
        self,
        identity: Hashable,
        timeout: Optional[float],
        command: Callable[[AbstractImapAdapter], T],
    ) -> T:
        """Run command on the connection of identity.

        Raises:
            ConnectionNotEstablished: No handler is registered for identity
        """
        with self._lock.read():
            handler = self._handler(identity)
            return handler.execute(timeout, command)

    def disconnect(self, identity: Optional[Hashable] = None) -> None:
        """Disconnect one identity and drop its handler, or disconnect all.

        Disconnecting all keeps the handlers registered.
        """
        with self._lock.read():
            if identity is not None:
                self._handler(identity).disconnect()
                self._handlers.pop(identity, None)
                return
            for key, handler in list(self._handlers.items()):
                try:
                    handler.disconnect()
                except MailboxRuntimeError as e:
                    logger.error(f"Failed to disconnect {key!r}: {e}")

    def connected(self, identity: Optional[Hashable] = None) -> bool:
        """Liveness of one identity, or of all handlers (False when there are none)."""
        with self._lock.read():
            if identity is not None:
                return self._handler(identity).connected()
            handlers = list(self._handlers.values())
            return bool(handlers) and all(h.connected() for h in handlers)

    def verify_all(self, identity: Optional[Hashable] = None) -> None:
        """Reconnect one or all handlers whose connection died."""
        with self._lock.read():
            if identity is not None:
                self._handler(identity).verify()
                return
            for key, handler in list(self._handlers.items()):
                try:
                    handler.verify()
                except MailboxRuntimeError as e:
                    logger.error(f"Failed to verify connection {key!r}: {e}")

    # ========================================================================
    # Cleanup
    # ========================================================================
    def cleanup(
        self,
        task_ttl: Optional[float],
        connection_ttl: Optional[float],
        session_ttl: Optional[float],
    ) -> int:
        """Reap sessions that are idle or stuck.

        A handler idle beyond session_ttl is forcibly disconnected and removed.
        A handler with a task older than task_ttl, or idle beyond
        connection_ttl, is forcibly disconnected but kept for reconnection.

        Returns:
            Number of handlers that were disconnected
        """
        reaped = 0
        with self._lock.write():
            for identity, handler in list(self._handlers.items()):
                try:
                    if handler.connection_idle_exceeded(session_ttl):
                        logger.warning(f"Session of {identity!r} expired, removing")
                        handler.disconnect(force=True)
                        del self._handlers[identity]
                        reaped += 1
                    elif handler.timeout(task_ttl, connection_ttl):
                        if handler.state is ConnectionState.UNESTABLISHED:
                            continue
                        logger.warning(f"Connection of {identity!r} timed out, disconnecting")
                        handler.disconnect(force=True)
                        reaped += 1
                except (MailboxRuntimeError, OSError, IMAPClientError) as e:
                    logger.error(f"Failed to clean up connection {identity!r}: {e}")

        if reaped:
            logger.info(f"Cleaned up {reaped} connection(s)")
        return reaped

    def stats(self) -> dict:
        """Pool statistics for monitoring.

        Returns:
            Dictionary containing:
            - total_handlers: Number of registered handlers
            - handlers_by_state: Number of handlers per ConnectionState value
            - tasks_in_flight: Number of supervised commands running
        """
        with self._lock.read():
            by_state: dict[str, int] = {}
            tasks = 0
            handlers = list(self._handlers.values())
            for handler in handlers:
                by_state[handler.state.value] = by_state.get(handler.state.value, 0) + 1
                tasks += handler.task_count
            return {
                "total_handlers": len(handlers),
                "handlers_by_state": by_state,
                "tasks_in_flight": tasks,
            }

    # ========================================================================
    # Internals (callers hold the pool lock)
    # ========================================================================
    def _add_handler(self, identity: Hashable) -> ConnectionHandler:
        handler = self._handlers.get(identity)
        if handler is None:
            handler = self._handler_factory(identity)
            self._handlers[identity] = handler
        return handler

    def _handler(self, identity: Hashable) -> ConnectionHandler:
        handler = self._handlers.get(identity)
        if handler is None:
            raise ConnectionNotEstablished(identity)
        return handler


class CleanupScheduler:
    """Background thread that calls ConnectionPool.cleanup() periodically."""

    def __init__(self, pool: ConnectionPool, config: ConnectionConfig = connection_config) -> None:
        self.pool = pool
        self.config = config
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run,
            daemon=True,
            name="imap-connection-cleanup",
        )
        self._thread.start()
        logger.info(f"Started connection cleanup thread (interval={self.config.observer_interval}s)")

    def stop(self, timeout: Optional[float] = None) -> None:
        thread = self._thread
        self._stop.set()
        if thread is not None:
            thread.join(timeout)
        self._thread = None
        logger.info("Stopped connection cleanup thread")

    def restart(self) -> None:
        self.stop()
        self.start()

    def _run(self) -> None:
        while not self._stop.wait(self.config.observer_interval):
            try:
                self.pool.cleanup(
                    self.config.task_timeout,
                    self.config.connection_timeout,
                    self.config.session_timeout,
                )
            except (MailboxRuntimeError, OSError, IMAPClientError) as e:
                logger.error(f"Error in cleanup thread: {e}")
