"""CLI command implementations."""

import sys
from typing import Optional

from ..tmux_controller import TmuxController
from .client import RelayClient


def cmd_notify(
    client: RelayClient,
    notification_type: str,
    project: Optional[str],
    message: str,
    tmux: Optional[TmuxController] = None,
) -> int:
    """
    Announce a notification; runs from an agent hook inside tmux.

    The hook process is the one attached to tmux, so the session name is
    resolved here rather than by the server.

    Exit codes:
        0: Notification sent
        1: Server rejected it
        2: Relay unavailable
    """
    tmux = tmux or TmuxController()
    tmux_session = tmux.current_session()

    data, unavailable = client.notify(notification_type, project, message, tmux_session=tmux_session)
    if unavailable:
        print("Error: tmux relay unavailable", file=sys.stderr)
        return 2
    if data is None:
        print("Error: notification failed", file=sys.stderr)
        return 1

    print(f"Token {data['token']} -> {data['tmux_session']}")
    return 0


def cmd_send(client: RelayClient, token: str, command: str) -> int:
    """
    Relay a command by token.

    Exit codes:
        0: Delivered
        1: Relay refused or failed
        2: Relay unavailable
    """
    result, unavailable = client.relay(token, command)
    if unavailable:
        print("Error: tmux relay unavailable", file=sys.stderr)
        return 2
    if result is None:
        print("Error: relay request failed", file=sys.stderr)
        return 1
    if not result["success"]:
        print(f"Failed: {result['message']}", file=sys.stderr)
        return 1

    print(f"Sent to {result['session']['tmux_session']}")
    return 0


def cmd_sessions(client: RelayClient) -> int:
    """List live sessions."""
    sessions = client.list_sessions()
    if sessions is None:
        print("Error: tmux relay unavailable", file=sys.stderr)
        return 2

    if not sessions:
        print("No live sessions")
        return 0

    for s in sessions:
        print(f"{s['token']}  {s['tmux_session']:<20} {s.get('project') or '-':<20} expires {s['expires']}")
    return 0
