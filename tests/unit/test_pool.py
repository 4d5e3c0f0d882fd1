"""Unit tests for ConnectionPool and CleanupScheduler.

Test Organization:
- Registry and establishing
- Routing commands to handlers
- Disconnect and verification of one or all handlers
- Cleanup sweep and background scheduler
"""

import threading
import time
from unittest.mock import MagicMock, Mock, PropertyMock, patch

import pytest

from mailbox_runtime.connection.handler import ConnectionHandler, ConnectionState
from mailbox_runtime.connection.pool import CleanupScheduler, ConnectionPool
from mailbox_runtime.errors import ConnectionNotEstablished, ConnectionTerminated
from mailbox_runtime.lib.config import ConnectionConfig


# ============================================================================
# Test Fixtures
# ============================================================================


def mock_handler(state=ConnectionState.READY, idle=False, timed_out=False):
    """Create a handler double with scripted cleanup answers."""
    handler = MagicMock(spec=ConnectionHandler)
    handler.state = state
    handler.task_count = 0
    handler.connection_idle_exceeded.return_value = idle
    handler.timeout.return_value = timed_out
    return handler


@pytest.fixture
def handlers():
    """Handlers the pool's factory will hand out, by identity."""
    return {}


@pytest.fixture
def pool(fast_config, handlers):
    """Pool whose handlers come from the handlers dict."""
    return ConnectionPool(
        fast_config,
        handler_factory=lambda identity: handlers.setdefault(identity, mock_handler()),
    )


# ============================================================================
# Registry
# ============================================================================


class TestRegistry:
    """Unit tests for handler registration."""

    def test_add_handler_reuses_existing(self, pool):
        first = pool.add_handler("alice")
        assert pool.add_handler("alice") is first
        assert pool.has_handler("alice")
        assert len(pool) == 1

    def test_remove_handler(self, pool):
        pool.add_handler("alice")
        assert pool.remove_handler("alice") is not None
        assert not pool.has_handler("alice")
        assert pool.remove_handler("alice") is None

    def test_establish_creates_and_establishes(self, pool, handlers):
        spec = Mock()
        pool.establish("alice", spec)

        handlers["alice"].establish.assert_called_once_with(spec)
        assert pool.identities() == ["alice"]

    def test_establish_connection_uses_factory(self, fast_config, handlers):
        """Test establish_connection() resolves the specification by identity.

        Validates:
        - Factory called with the identity
        - Returned specification handed to the handler
        - ValueError when the factory returns None
        """
        spec = Mock()
        factory = Mock(side_effect=lambda identity: spec if identity == "alice" else None)
        pool = ConnectionPool(
            fast_config,
            specification_factory=factory,
            handler_factory=lambda identity: handlers.setdefault(identity, mock_handler()),
        )

        pool.establish_connection("alice")
        handlers["alice"].establish.assert_called_once_with(spec)

        with pytest.raises(ValueError):
            pool.establish_connection("bob")

    def test_establish_connection_without_factory(self, pool):
        with pytest.raises(ValueError):
            pool.establish_connection("alice")


# ============================================================================
# Command routing
# ============================================================================


class TestWithConnection:
    """Unit tests for with_connection()."""

    def test_delegates_to_handler(self, pool, handlers):
        pool.add_handler("alice")
        handlers["alice"].execute.return_value = ["INBOX"]
        command = Mock()

        assert pool.with_connection("alice", 5, command) == ["INBOX"]
        handlers["alice"].execute.assert_called_once_with(5, command)

    def test_unknown_identity(self, pool):
        """Test commands for an unknown identity fail with its name."""
        with pytest.raises(ConnectionNotEstablished) as exc_info:
            pool.with_connection("nobody", 5, Mock())
        assert "nobody" in str(exc_info.value)


# ============================================================================
# Disconnect / verify
# ============================================================================


class TestDisconnect:
    """Unit tests for disconnect(), connected() and verify_all()."""

    def test_disconnect_one_removes_it(self, pool, handlers):
        pool.add_handler("alice")
        pool.add_handler("bob")

        pool.disconnect("alice")

        handlers["alice"].disconnect.assert_called_once_with()
        handlers["bob"].disconnect.assert_not_called()
        assert pool.identities() == ["bob"]

    def test_disconnect_all_keeps_handlers(self, pool, handlers):
        """Test disconnecting everything leaves the registry intact."""
        pool.add_handler("alice")
        pool.add_handler("bob")
        handlers["alice"].disconnect.side_effect = ConnectionTerminated()

        pool.disconnect()

        handlers["alice"].disconnect.assert_called_once()
        handlers["bob"].disconnect.assert_called_once()
        assert sorted(pool.identities()) == ["alice", "bob"]

    def test_disconnect_unknown_identity(self, pool):
        with pytest.raises(ConnectionNotEstablished):
            pool.disconnect("nobody")

    def test_connected_all(self, pool, handlers):
        assert pool.connected() is False

        pool.add_handler("alice")
        pool.add_handler("bob")
        handlers["alice"].connected.return_value = True
        handlers["bob"].connected.return_value = False

        assert pool.connected("alice") is True
        assert pool.connected() is False

    def test_verify_all(self, pool, handlers):
        pool.add_handler("alice")
        pool.add_handler("bob")

        pool.verify_all()
        pool.verify_all("alice")

        assert handlers["alice"].verify.call_count == 2
        assert handlers["bob"].verify.call_count == 1


# ============================================================================
# Cleanup
# ============================================================================


class TestCleanup:
    """Unit tests for the cleanup sweep."""

    def test_expired_session_is_removed(self, pool, handlers):
        """Test a handler idle beyond the session TTL.

        Validates:
        - Forced disconnect
        - Handler removed from the pool
        """
        handlers["alice"] = mock_handler(idle=True)
        pool.add_handler("alice")

        assert pool.cleanup(0, 600, 1800) == 1

        handlers["alice"].connection_idle_exceeded.assert_called_once_with(1800)
        handlers["alice"].disconnect.assert_called_once_with(force=True)
        assert not pool.has_handler("alice")

    def test_timed_out_connection_is_kept(self, pool, handlers):
        """Test a handler over the task/connection TTL is disconnected but kept."""
        handlers["alice"] = mock_handler(timed_out=True)
        pool.add_handler("alice")

        assert pool.cleanup(30, 600, 1800) == 1

        handlers["alice"].timeout.assert_called_once_with(30, 600)
        handlers["alice"].disconnect.assert_called_once_with(force=True)
        assert pool.has_handler("alice")

    def test_healthy_and_unestablished_handlers_untouched(self, pool, handlers):
        handlers["alice"] = mock_handler()
        handlers["bob"] = mock_handler(state=ConnectionState.UNESTABLISHED, timed_out=True)
        pool.add_handler("alice")
        pool.add_handler("bob")

        assert pool.cleanup(30, 600, 1800) == 0

        handlers["alice"].disconnect.assert_not_called()
        handlers["bob"].disconnect.assert_not_called()

    def test_error_in_one_handler_does_not_stop_sweep(self, pool, handlers):
        handlers["alice"] = mock_handler(idle=True)
        handlers["alice"].disconnect.side_effect = ConnectionTerminated()
        handlers["bob"] = mock_handler(idle=True)
        pool.add_handler("alice")
        pool.add_handler("bob")

        pool.cleanup(0, 600, 1800)

        handlers["bob"].disconnect.assert_called_once_with(force=True)
        assert pool.identities() == ["alice"]

    def test_stats(self, pool, handlers):
        handlers["alice"] = mock_handler()
        handlers["bob"] = mock_handler(state=ConnectionState.UNESTABLISHED)
        handlers["bob"].task_count = 2
        pool.add_handler("alice")
        pool.add_handler("bob")

        stats = pool.stats()

        assert stats["total_handlers"] == 2
        assert stats["handlers_by_state"] == {"ready": 1, "unestablished": 1}
        assert stats["tasks_in_flight"] == 2

    def test_stats_while_disconnecting(self, pool, handlers):
        """Test stats() runs alongside the removal of one identity.

        Validates:
        - No error while a handler leaves the registry mid-count
        - Counts describe the handlers present when stats() started
        """
        for name in ("alice", "bob", "carol"):
            handler = mock_handler()
            type(handler).task_count = PropertyMock(side_effect=lambda: time.sleep(0.1) or 1)
            handlers[name] = handler
            pool.add_handler(name)
        results = []
        errors = []

        def collect():
            try:
                results.append(pool.stats())
            except Exception as e:
                errors.append(e)

        thread = threading.Thread(target=collect)
        thread.start()
        time.sleep(0.05)
        pool.disconnect("bob")
        thread.join(2)

        assert errors == []
        assert results[0]["total_handlers"] == 3
        assert results[0]["tasks_in_flight"] == 3
        assert sorted(pool.identities()) == ["alice", "carol"]


class TestCleanupScheduler:
    """Unit tests for the background cleanup thread."""

    def test_thread_configuration(self):
        """Test the scheduler starts a named daemon thread."""
        with patch("mailbox_runtime.connection.pool.threading.Thread") as mock_thread:
            scheduler = CleanupScheduler(Mock())
            scheduler.start()

            call_kwargs = mock_thread.call_args.kwargs
            assert call_kwargs["daemon"] is True
            assert call_kwargs["name"] == "imap-connection-cleanup"
            mock_thread.return_value.start.assert_called_once()

    def test_runs_cleanup_with_configured_ttls(self):
        """Test each tick calls cleanup() with the configured TTLs.

        Validates:
        - cleanup(task_timeout, connection_timeout, session_timeout)
        - Errors are logged and the loop keeps running
        - stop() ends the thread
        """
        config = ConnectionConfig(
            observer_interval=0.02,
            task_timeout=30,
            connection_timeout=600,
            session_timeout=1800,
        )
        pool = Mock()
        ticked = threading.Event()
        calls = []

        def cleanup(*args):
            calls.append(args)
            if len(calls) == 1:
                raise ConnectionTerminated()
            ticked.set()

        pool.cleanup.side_effect = cleanup
        scheduler = CleanupScheduler(pool, config)
        scheduler.start()
        assert ticked.wait(2)
        scheduler.stop(timeout=2)

        assert not scheduler.running
        assert calls[0] == (30, 600, 1800)
        assert len(calls) >= 2

    def test_restart(self):
        config = ConnectionConfig(observer_interval=10)
        scheduler = CleanupScheduler(Mock(), config)

        scheduler.start()
        first = scheduler._thread
        scheduler.restart()

        assert scheduler.running
        assert scheduler._thread is not first
        scheduler.stop(timeout=2)
