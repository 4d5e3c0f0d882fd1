"""Pytest configuration and shared fixtures."""

import pytest
import sys
from pathlib import Path

# Add src and tests directories to Python path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))
sys.path.insert(0, str(Path(__file__).parent))

from fakes import FakeServer, adapter_class  # noqa: E402

from mailbox_runtime.adapters.generic import GenericAdapter  # noqa: E402
from mailbox_runtime.lib.config import ConnectionConfig, RetryPolicy  # noqa: E402
from mailbox_runtime.models import ConnectionSpecification, Credentials, ServerConfig  # noqa: E402


@pytest.fixture
def server_config():
    """Server settings for a fake account."""
    return ServerConfig(
        host="imap.example.org",
        credentials=Credentials("user@example.org", "app-password-123"),
        name="test",
    )


@pytest.fixture
def fake_server():
    """Fake IMAP server with an INBOX and a Trash folder."""
    return FakeServer(folders=["INBOX", "Trash"])


@pytest.fixture
def make_adapter(server_config):
    """Factory for connected, authenticated adapters talking to a fake server."""

    def _make(server, base=GenericAdapter, config=None):
        adapter = adapter_class(server, base)(config or server_config)
        adapter.connect()
        adapter.authenticate()
        return adapter

    return _make


@pytest.fixture
def adapter(make_adapter, fake_server):
    """Authenticated GenericAdapter on the fake_server."""
    return make_adapter(fake_server)


@pytest.fixture
def fast_config():
    """Connection config with short timeouts and no retry delay."""
    return ConnectionConfig(
        connect=RetryPolicy(timeout=1.0, attempts=3, delay=0.0),
        login=RetryPolicy(timeout=1.0, attempts=2, delay=0.0),
        disconnect_timeout=1.0,
        noop_timeout=1.0,
    )


@pytest.fixture
def specification(server_config, fake_server):
    """Connection specification whose adapter talks to fake_server."""
    return ConnectionSpecification(server_config, adapter_class(fake_server))


# Configure pytest markers
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (several components, fake server)"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests as slow running"
    )
