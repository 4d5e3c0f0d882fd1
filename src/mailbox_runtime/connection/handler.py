"""Lifecycle and command execution for one account's IMAP connection.

AIDEV-NOTE: Locking
- The handler lock guards the adapter: commands and probes take it for
  reading, connect/reconnect/disconnect take it for writing
- Forced disconnect takes block_all() instead, so it never waits behind a
  stuck command: it turns new callers away, terminates the in-flight tasks
  and then tears the transport down (in that order)
- Every timed call runs in its own Task; a call that outlives its timeout
  marks the adapter desynchronized so the next verify() reconnects
"""

import time
from enum import Enum
from typing import Any, Callable, Optional, TypeVar

from mailbox_runtime.adapters.base import AbstractImapAdapter
from mailbox_runtime.connection.tasks import TaskSupervisor
from mailbox_runtime.errors import (
    AuthenticationFailed,
    ConnectionFailed,
    ConnectionNotEstablished,
    ConnectionTerminated,
    ConnectionTimeout,
    ImapConnectionError,
    MailboxRuntimeError,
)
from mailbox_runtime.lib.config import ConnectionConfig, RetryPolicy, connection_config
from mailbox_runtime.lib.logger import get_logger
from mailbox_runtime.lib.rwlock import ReadWriteLock
from mailbox_runtime.models.specification import ConnectionSpecification

logger = get_logger(__name__)

T = TypeVar("T")

Command = Callable[[AbstractImapAdapter], Any]


class ConnectionState(Enum):
    """Lifecycle states of a connection handler."""
    UNESTABLISHED = "unestablished"
    CONNECTING = "connecting"
    CONNECTED = "connected"  # transport open, not yet authenticated
    READY = "ready"
    DISCONNECTING = "disconnecting"


class ConnectionHandler:
    """Owns the adapter of one account and runs commands against it.

    Attributes:
        config: Retry policies and probe timeouts
        identity: Key of this handler in its pool, used in logs and errors
    """

    def __init__(self, config: ConnectionConfig = connection_config, identity: Any = None) -> None:
        self.config = config
        self.identity = identity
        self._lock = ReadWriteLock()
        self._tasks = TaskSupervisor()
        self._specification: Optional[ConnectionSpecification] = None
        self._adapter: Optional[AbstractImapAdapter] = None
        self._state = ConnectionState.UNESTABLISHED

    # ========================================================================
    # Accessors
    # ========================================================================
    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def adapter(self) -> Optional[AbstractImapAdapter]:
        return self._adapter

    @property
    def specification(self) -> Optional[ConnectionSpecification]:
        return self._specification

    @property
    def task_count(self) -> int:
        return len(self._tasks)

    # ========================================================================
    # Lifecycle
    # ========================================================================
    def establish(self, specification: ConnectionSpecification) -> bool:
        """Adopt specification, build its adapter and connect.

        Raises:
            AdapterNotSpecified: The specification carries no adapter class
            ConnectionFailed: The connect retry policy was exhausted
            AuthenticationFailed: The login retry policy was exhausted
        """
        with self._lock.write():
            if self._adapter is not None:
                self._disconnect()
            self._specification = specification
            self._adapter = specification.new_connection()
            return self._connect()

    def connect(self) -> bool:
        """Connect unless the connection is already alive."""
        with self._lock.write():
            return self._connected() or self._connect()

    def verify(self) -> bool:
        """Probe the connection and reconnect if the probe fails.

        The probe runs under the read lock; only a failed probe escalates to
        the write lock, where the probe is repeated before reconnecting.
        """
        with self._lock.read():
            alive = self._connected()
            if not alive:
                self._tasks.reset()
        if alive:
            return True

        with self._lock.write():
            if not self._connected():
                logger.info(f"Connection {self._label()} lost, reconnecting")
                self._disconnect()
                self._connect()
        return True

    def disconnect(self, force: bool = False) -> None:
        """Close the connection.

        A normal disconnect waits for running commands and logs out if the
        connection is alive. A forced disconnect refuses new callers,
        terminates whatever is in flight and drops the transport.
        """
        if force:
            self._force_disconnect()
            return
        with self._lock.write():
            self._disconnect()

    def connected(self) -> bool:
        with self._lock.read():
            return self._connected()

    # ========================================================================
    # Command execution
    # ========================================================================
    def execute(self, timeout: Optional[float], command: Callable[[AbstractImapAdapter], T]) -> T:
        """Run command against the adapter.

        With timeout None the command runs inline under the read lock; use
        that for accessors that never touch the wire. Otherwise the
        connection is verified first and the command runs as a supervised
        task bounded by timeout.

        Raises:
            ConnectionNotEstablished: establish() was never called
            ConnectionTerminated: The connection died before the command ran
            ConnectionTimeout: The command exceeded timeout
            ImapConnectionError: The command failed unexpectedly
        """
        if self._adapter is None:
            raise ConnectionNotEstablished(self.identity)

        if timeout is None:
            with self._lock.read():
                return command(self._adapter)

        self.verify()
        with self._lock.read():
            if not self._connected():
                self._tasks.reset()
                raise ConnectionTerminated(message=f"Connection {self._label()} is not alive")
            return self._execute(timeout, command)

    # ========================================================================
    # Cleanup queries
    # ========================================================================
    def timeout(self, task_ttl: Optional[float], connection_ttl: Optional[float]) -> bool:
        return self._tasks.timeout(task_ttl, connection_ttl)

    def task_timeout_exceeded(self, task_ttl: Optional[float]) -> bool:
        return self._tasks.timeout_exceeded(task_ttl)

    def connection_idle_exceeded(self, connection_ttl: Optional[float]) -> bool:
        return self._tasks.connection_idle_exceeded(connection_ttl)

    # ========================================================================
    # Internals (callers hold the handler lock)
    # ========================================================================
    def _connected(self) -> bool:
        if self._adapter is None:
            return False
        try:
            return self._execute(
                self.config.noop_timeout,
                lambda adapter: adapter.connected() and adapter.authenticated,
            )
        except ConnectionTimeout:
            logger.warning(f"Liveness probe on {self._label()} timed out")
            self._adapter.reset()
            return False

    def _connect(self) -> bool:
        if self._adapter is None:
            raise ConnectionNotEstablished(self.identity)

        self._tasks.reset()
        self._adapter.reset()
        self._state = ConnectionState.CONNECTING
        try:
            self._run_phase(
                "Connect",
                self.config.connect,
                self._connect_step,
                lambda adapter: adapter.active,
                ConnectionFailed,
            )
            self._state = ConnectionState.CONNECTED
            self._run_phase(
                "Login",
                self.config.login,
                lambda adapter: adapter.authenticate(),
                lambda adapter: adapter.authenticated,
                AuthenticationFailed,
            )
        except ImapConnectionError:
            self._tasks.reset()
            self._adapter.reset()
            self._state = ConnectionState.UNESTABLISHED
            raise

        self._state = ConnectionState.READY
        logger.info(f"Connection {self._label()} ready (adapter={self._adapter.adapter_name})")
        return True

    @staticmethod
    def _connect_step(adapter: AbstractImapAdapter) -> None:
        # drop whatever a previous attempt left behind
        adapter.reset()
        adapter.connect()

    def _run_phase(
        self,
        phase: str,
        policy: RetryPolicy,
        step: Command,
        done: Callable[[AbstractImapAdapter], bool],
        error_class: type[ImapConnectionError],
    ) -> None:
        """Run step until done() holds, at most policy.attempts times."""
        last_error: Optional[BaseException] = None
        for attempt in range(1, policy.attempts + 1):
            try:
                self._execute(policy.timeout, step)
            except MailboxRuntimeError as e:
                last_error = e

            if done(self._adapter):
                if attempt > 1:
                    logger.info(f"{phase} to {self._label()} succeeded on attempt {attempt}")
                return

            if attempt < policy.attempts:
                logger.warning(
                    f"{phase} attempt {attempt}/{policy.attempts} to {self._label()} failed: "
                    f"{last_error}. Retrying in {policy.delay}s..."
                )
                time.sleep(policy.delay)

        logger.error(f"{phase} to {self._label()} failed after {policy.attempts} attempts: {last_error}")
        raise error_class(last_error)

    def _disconnect(self) -> None:
        if self._adapter is None:
            return
        self._state = ConnectionState.DISCONNECTING
        try:
            if self._connected():
                self._execute(self.config.disconnect_timeout, lambda adapter: adapter.disconnect())
                logger.info(f"Connection {self._label()} disconnected")
        except ImapConnectionError as e:
            logger.warning(f"Error during disconnect of {self._label()}: {e}")
        finally:
            self._tasks.reset()
            self._adapter.reset()
            self._state = ConnectionState.UNESTABLISHED

    def _force_disconnect(self) -> None:
        with self._lock.block_all():
            self._state = ConnectionState.DISCONNECTING
            self._tasks.reset()
            if self._adapter is not None:
                self._adapter.abort()
                self._adapter.reset()
            self._state = ConnectionState.UNESTABLISHED
            logger.info(f"Connection {self._label()} forcibly disconnected")

    def _execute(self, timeout: Optional[float], command: Callable[[AbstractImapAdapter], T]) -> T:
        """Run command as a supervised task and wait at most timeout seconds."""
        adapter = self._adapter
        if adapter is None:
            raise ConnectionNotEstablished(self.identity)

        task = self._tasks.start_task(lambda: command(adapter), name=f"imap-{self._label()}")
        try:
            if not task.join(timeout):
                task.terminate()
                if task.on_wire:
                    adapter.invalidate()
                logger.warning(f"Command on {self._label()} timed out after {timeout}s")
                raise ConnectionTimeout(timeout)

            result: list[Any] = []
            if not self._tasks.exists(task, lambda: result.append(task.value())):
                raise ConnectionTerminated()
            return result[0]
        except MailboxRuntimeError:
            raise
        except Exception as e:
            raise ImapConnectionError(e) from e
        finally:
            task.terminate()
            self._tasks.end_task(task)

    def _label(self) -> str:
        if self._specification is not None:
            host = self._specification.config.host
            return f"{self.identity}@{host}" if self.identity is not None else host
        return str(self.identity)

    def __repr__(self) -> str:
        return f"ConnectionHandler(identity={self.identity!r}, state={self._state.value})"
