"""
Regression tests for token lifecycle.

Tests verify that:
1. A token moves Active -> Expired -> Removed and never comes back
2. A token reissued after expiry binds only to the new session
3. Two live sessions never share a token even when the generator repeats
4. A token whose tmux session died never types into a session sharing its prefix
"""

import subprocess
from datetime import timedelta
from unittest.mock import patch

from tmux_relay.command_relay import MSG_NOT_FOUND, MSG_TARGET_GONE, CommandRelay
from tmux_relay.models import Notification
from tmux_relay.session_manager import SessionManager
from tmux_relay.tmux_controller import TmuxController


def test_expired_token_is_never_resurrected(store, relay, session_manager, clock, mock_tmux):
    record = session_manager.create_session(Notification(type="completed", message="x"), channel="telegram")
    assert relay.relay_command(record.token, "ls").success is True

    clock.advance(hours=24, seconds=1)
    assert relay.relay_command(record.token, "ls").message == MSG_NOT_FOUND
    # Expired record removed on observation
    assert store.get(record.id) is None

    # Moving the clock back does not bring it back
    clock.advance(hours=-24)
    assert relay.relay_command(record.token, "ls").message == MSG_NOT_FOUND
    assert mock_tmux.send_input.call_count == 1


def test_reissued_token_binds_to_new_session(store, relay, mock_tmux, clock):
    tokens = iter(["REUSE001", "REUSE001"])
    manager = SessionManager(store, mock_tmux, clock=clock, token_factory=lambda: next(tokens))

    mock_tmux.current_session.return_value = "old"
    old = manager.create_session(Notification(type="completed", message="x"), channel="telegram")
    clock.advance(hours=25)

    mock_tmux.current_session.return_value = "new"
    new = manager.create_session(Notification(type="completed", message="y"), channel="telegram")

    result = relay.relay_command("REUSE001", "make")
    assert result.success is True
    assert result.session.id == new.id
    assert result.session.id != old.id
    mock_tmux.send_input.assert_called_once_with("new", "make")


def test_live_sessions_never_share_a_token(store, mock_tmux, clock):
    tokens = iter(["SAME0001", "SAME0001", "OTHER001"])
    manager = SessionManager(store, mock_tmux, clock=clock, token_factory=lambda: next(tokens))

    first = manager.create_session(Notification(type="completed", message="x"), channel="telegram")
    clock.advance(minutes=1)
    second = manager.create_session(Notification(type="completed", message="y"), channel="telegram")

    live_tokens = [r.token for r in store.list_sessions()]
    assert first.token != second.token
    assert len(live_tokens) == len(set(live_tokens))


def fake_tmux_server(live_sessions, sent):
    """
    subprocess.run stand-in resolving targets the way tmux does.

    "=name" matches exactly; a bare name falls back to a unique prefix.
    """
    def run(cmd, **kwargs):
        target = cmd[cmd.index("-t") + 1] if "-t" in cmd else None
        if target and target.startswith("="):
            matches = [s for s in live_sessions if s == target[1:]]
        elif target:
            matches = [s for s in live_sessions if s == target] or \
                [s for s in live_sessions if s.startswith(target)]
        else:
            matches = []
        returncode = 0 if len(matches) == 1 else 1
        if returncode == 0 and cmd[1] == "send-keys":
            sent.append((matches[0], cmd[-1]))
        if returncode and kwargs.get("check"):
            raise subprocess.CalledProcessError(returncode, cmd, stderr="can't find session")
        return subprocess.CompletedProcess(cmd, returncode, stdout="", stderr="")
    return run


def test_dead_target_never_reaches_session_sharing_its_prefix(store, make_record, clock):
    store.create(make_record(token="AB12CD34", tmux_session="workspace"))
    sent = []
    controller = TmuxController(config={"timeouts": {"tmux": {"send_keys_settle_seconds": 0}}})
    relay = CommandRelay(store, controller, clock=clock)

    with patch("tmux_relay.tmux_controller.subprocess.run",
               side_effect=fake_tmux_server({"workspace3f1a2b"}, sent)):
        result = relay.relay_command("AB12CD34", "echo MARK")

    assert result.success is False
    assert result.message == MSG_TARGET_GONE
    assert sent == []
