"""Main entry point for the tmux-relay-cli tool."""

import argparse
import sys

from .client import RelayClient
from . import commands


def main():
    """Main entry point for tmux-relay-cli."""
    parser = argparse.ArgumentParser(
        prog="tmux-relay-cli",
        description="tmux relay CLI - announce sessions and relay commands",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # tmux-relay-cli notify (called by agent hooks)
    notify_parser = subparsers.add_parser("notify", help="Announce this tmux session in chat (called by hook)")
    notify_parser.add_argument("--type", dest="notification_type", default="completed",
                               choices=["completed", "waiting"], help="Notification type")
    notify_parser.add_argument("--project", help="Project name to display")
    notify_parser.add_argument("--message", default="", help="Message text")

    # tmux-relay-cli send <token> <command...>
    send_parser = subparsers.add_parser("send", help="Relay a command by token")
    send_parser.add_argument("token", help="Session token")
    send_parser.add_argument("text", nargs="+", help="Command to type")

    # tmux-relay-cli sessions
    subparsers.add_parser("sessions", help="List live sessions")

    args = parser.parse_args()
    client = RelayClient()

    if args.command == "notify":
        sys.exit(commands.cmd_notify(client, args.notification_type, args.project, args.message))
    elif args.command == "send":
        sys.exit(commands.cmd_send(client, args.token, " ".join(args.text)))
    elif args.command == "sessions":
        sys.exit(commands.cmd_sessions(client))
    else:
        parser.print_help()
        sys.exit(0)


if __name__ == "__main__":
    main()
