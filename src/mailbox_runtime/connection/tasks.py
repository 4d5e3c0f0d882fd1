"""Supervision of commands running on a shared connection.

Every timed command runs in its own daemon thread, registered with the
TaskSupervisor of the connection it uses. The supervisor can tell whether a
command has been running too long or the connection has been idle too long,
and can terminate everything that is in flight.

Python threads cannot be killed, so termination is cooperative: a terminated
task has its cancellation event set, and adapters call check_cancelled()
before each wire round-trip. A round-trip that is already blocked in the
socket is released by tearing down the transport.
"""

import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional

from mailbox_runtime.errors import ConnectionTerminated
from mailbox_runtime.lib.logger import get_logger

logger = get_logger(__name__)

_local = threading.local()


def current_task() -> Optional["Task"]:
    """Return the task running in the calling thread, if any."""
    return getattr(_local, "task", None)


def check_cancelled() -> None:
    """Raise ConnectionTerminated if the calling thread's task was terminated."""
    task = current_task()
    if task is not None and task.cancelled:
        raise ConnectionTerminated()


@contextmanager
def round_trip() -> Iterator[None]:
    """Mark the calling thread's task as on the wire, then check for cancellation.

    The flag is set before the check, so a caller that terminates the task
    and then reads on_wire never misses a round-trip that got past the check.
    """
    task = current_task()
    if task is None:
        yield
        return
    outer, task.on_wire = task.on_wire, True
    try:
        check_cancelled()
        yield
    finally:
        task.on_wire = outer


class Timestamp:
    """A renewable point in time measured on the monotonic clock."""

    def __init__(self) -> None:
        self.renew()

    def renew(self) -> None:
        self._timestamp = time.monotonic()

    def elapsed(self) -> float:
        return time.monotonic() - self._timestamp

    def timeout(self, ttl: Optional[float]) -> bool:
        """True if more than ttl seconds passed; a ttl of None or <= 0 never expires."""
        return ttl is not None and ttl > 0 and self.elapsed() > ttl


class Task:
    """One command executing in a daemon thread.

    Attributes:
        started: Timestamp taken when the task was created
        result: Return value of the function once it finished
        error: Exception raised by the function, if any
        on_wire: True while the task is inside a wire round-trip
    """

    def __init__(self, fn: Callable[[], Any], name: str = "imap-task") -> None:
        self._fn = fn
        self._cancelled = threading.Event()
        self._terminated = False
        self.started = Timestamp()
        self.result: Any = None
        self.error: Optional[BaseException] = None
        self.on_wire = False
        self._thread = threading.Thread(target=self._run, daemon=True, name=name)

    def _run(self) -> None:
        _local.task = self
        try:
            self.result = self._fn()
        except BaseException as e:  # handed back to the joining caller
            self.error = e
        finally:
            _local.task = None

    def start(self) -> "Task":
        self._thread.start()
        return self

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the task; return True if it finished within timeout."""
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def value(self) -> Any:
        """Return the task's result, re-raising its error if it failed."""
        if self.error is not None:
            raise self.error
        return self.result

    def timeout(self, ttl: Optional[float]) -> bool:
        return self.started.timeout(ttl)

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def terminate(self) -> None:
        """Request cancellation. Safe to call more than once."""
        if not self._terminated:
            self._terminated = True
            self._cancelled.set()


class TaskSupervisor:
    """Registry of in-flight tasks plus the connection's last activity stamp."""

    def __init__(self) -> None:
        self._tasks: list[Task] = []
        self._lock = threading.RLock()
        self._timestamp = Timestamp()

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    def start_task(self, fn: Callable[[], Any], name: str = "imap-task") -> Task:
        """Register fn as a new task and start it."""
        task = Task(fn, name=name)
        with self._lock:
            self._tasks.append(task)
            self._timestamp.renew()
        return task.start()

    def end_task(self, task: Optional[Task]) -> None:
        """Deregister a task. Unknown tasks are ignored."""
        with self._lock:
            self._tasks = [t for t in self._tasks if t is not task]
            self._timestamp.renew()

    def exists(self, task: Task, on_found: Optional[Callable[[], Any]] = None) -> bool:
        """Check registration and run on_found while the registry is held."""
        with self._lock:
            found = any(t is task for t in self._tasks)
            if found and on_found is not None:
                on_found()
            return found

    def reset(self) -> None:
        """Terminate every registered task and clear the registry.

        The activity stamp is left alone: a reset is not activity.
        """
        with self._lock:
            if self._tasks:
                logger.debug(f"Terminating {len(self._tasks)} in-flight task(s)")
            for task in self._tasks:
                task.terminate()
            self._tasks = []

    def timeout_exceeded(self, ttl: Optional[float]) -> bool:
        """True if any registered task has run longer than ttl."""
        with self._lock:
            return self._task_timeout(ttl)

    def connection_idle_exceeded(self, ttl: Optional[float]) -> bool:
        """True if the last activity is older than ttl."""
        with self._lock:
            return self._timestamp.timeout(ttl)

    def timeout(self, task_ttl: Optional[float], connection_ttl: Optional[float]) -> bool:
        with self._lock:
            return self._task_timeout(task_ttl) or self._timestamp.timeout(connection_ttl)

    def _task_timeout(self, ttl: Optional[float]) -> bool:
        return any(t.timeout(ttl) for t in self._tasks)
