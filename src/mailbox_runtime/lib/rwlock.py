"""Many-readers / one-writer lock with a hard block mode.

    lock = ReadWriteLock()
    with lock.read():
        ...  # other readers may enter, writers wait
    with lock.write():
        ...  # nobody else may enter
    with lock.block_all():
        ...  # any new read() or write() fails with ResourceLocked

block_all() does not wait for readers or writers that are already inside;
it only turns away new ones until it exits.
"""

import threading
from contextlib import contextmanager
from typing import Iterator

from mailbox_runtime.errors import LockStateError, ResourceLocked


class ReadWriteLock:
    """Reader-preferring read/write lock.

    Reader counting is reentrant: a thread that already holds a read lock may
    enter read() again without waiting for queued writers. Both internal
    mutexes are plain Locks because the last reader to leave may not be the
    thread that let the first one in.
    """

    def __init__(self) -> None:
        # held while there are (one or more readers) or (one writer)
        self._reader_mutex = threading.Lock()
        # held while there is one writer
        self._writer_mutex = threading.Lock()

        self._reader_count = 0
        self._reader_count_mutex = threading.Lock()

        self._blocked = False
        self._blocked_mutex = threading.Lock()

    @contextmanager
    def read(self) -> Iterator["ReadWriteLock"]:
        self.start_read()
        try:
            yield self
        finally:
            self.end_read()

    @contextmanager
    def write(self) -> Iterator["ReadWriteLock"]:
        self.start_write()
        try:
            yield self
        finally:
            self.end_write()

    @contextmanager
    def block_all(self) -> Iterator["ReadWriteLock"]:
        self.start_block()
        try:
            yield self
        finally:
            self.end_block()

    @property
    def writer(self) -> bool:
        """True while a writer holds the lock."""
        return self._writer_mutex.locked()

    @property
    def reader_count(self) -> int:
        return self._reader_count

    @property
    def blocked(self) -> bool:
        return self._blocked

    def start_read(self) -> None:
        self._check_blocked()
        with self._reader_count_mutex:
            if self._reader_count == 0:
                self._reader_mutex.acquire()
            self._reader_count += 1

    def end_read(self) -> None:
        with self._reader_count_mutex:
            if self._reader_count <= 0:
                raise LockStateError("end_read called when there are no readers")
            self._reader_count -= 1
            if self._reader_count == 0:
                self._reader_mutex.release()

    def start_write(self) -> None:
        self._check_blocked()
        self._writer_mutex.acquire()
        self._reader_mutex.acquire()

    def end_write(self) -> None:
        if not self._writer_mutex.locked():
            raise LockStateError("end_write called when there is no writer")
        self._writer_mutex.release()
        self._reader_mutex.release()

    def start_block(self) -> None:
        with self._blocked_mutex:
            self._blocked = True

    def end_block(self) -> None:
        with self._blocked_mutex:
            self._blocked = False

    def _check_blocked(self) -> None:
        with self._blocked_mutex:
            if self._blocked:
                raise ResourceLocked()
