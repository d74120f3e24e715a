"""Shared fixtures."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from ycmd_lsp.session import ServerSession, SessionStatus
from ycmd_lsp.text_buffer import LineBuffer

SECRET = b"0123456789abcdef"


@pytest.fixture
def running_session():
    """A session that looks like a ycmd serving on 127.0.0.1:8080."""
    return ServerSession(
        host="127.0.0.1",
        secret=SECRET,
        port=8080,
        status=SessionStatus.RUNNING,
    )


@pytest.fixture
def sessions(running_session):
    """A SessionManager stand-in that always has a running session."""
    manager = MagicMock()
    manager.session = running_session
    manager.is_running.return_value = True
    manager.ensure_running = AsyncMock(return_value=running_session)
    return manager


@pytest.fixture
def buffer():
    return LineBuffer("int main() {\n  return 0;\n}\n", "/p/main.cc", ["cpp"])
