"""Shared pytest fixtures for tmux relay tests."""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional
from unittest.mock import MagicMock

import pytest

from tmux_relay.command_relay import CommandRelay
from tmux_relay.models import SessionRecord
from tmux_relay.session_manager import SessionManager
from tmux_relay.session_store import SessionStore
from tmux_relay.tmux_controller import TmuxController


class FakeClock:
    """Settable clock; call it to get the current time."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 1, 15, 10, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def sessions_dir(tmp_path: Path) -> Path:
    return tmp_path / "sessions"


@pytest.fixture
def store(sessions_dir: Path, clock: FakeClock) -> SessionStore:
    return SessionStore(str(sessions_dir), clock=clock)


@pytest.fixture
def mock_tmux() -> MagicMock:
    """
    Mock TmuxController for testing without a tmux server.

    Returns:
        MagicMock with common tmux methods configured
    """
    mock = MagicMock(spec=TmuxController)
    mock.current_session.return_value = "work"
    mock.session_exists.return_value = True
    mock.send_input.return_value = None
    mock.capture_pane.return_value = "$ make test\nall tests passed\n"
    return mock


@pytest.fixture
def session_manager(store: SessionStore, mock_tmux: MagicMock, clock: FakeClock) -> SessionManager:
    return SessionManager(store, mock_tmux, clock=clock)


@pytest.fixture
def relay(store: SessionStore, mock_tmux: MagicMock, clock: FakeClock) -> CommandRelay:
    return CommandRelay(store, mock_tmux, clock=clock)


@pytest.fixture
def make_record(clock: FakeClock) -> Callable[..., SessionRecord]:
    """Factory for session records created at the fake clock's time."""
    counter = {"n": 0}

    def _make(
        token: str = "AB12CD34",
        tmux_session: str = "work",
        created: Optional[datetime] = None,
        ttl: timedelta = timedelta(hours=24),
        project: Optional[str] = "demo",
    ) -> SessionRecord:
        counter["n"] += 1
        created = created or clock()
        return SessionRecord(
            id=f"session-{counter['n']}",
            token=token,
            type="telegram",
            created=created,
            expires=created + ttl,
            tmux_session=tmux_session,
            project=project,
            notification={"type": "completed", "project": project, "message": "done", "metadata": None},
        )

    return _make


@pytest.fixture
def rewrite_record(sessions_dir: Path) -> Callable[..., None]:
    """Edit a persisted record file in place, bypassing the store."""

    def _rewrite(session_id: str, **changes) -> None:
        path = sessions_dir / f"{session_id}.json"
        data = json.loads(path.read_text())
        data.update(changes)
        path.write_text(json.dumps(data))

    return _rewrite
