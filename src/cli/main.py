"""Main entry point for agentctl CLI tool."""

import argparse
import sys

from .client import AgentSessionsClient
from . import commands

PERMISSION_MODES = ["accept-edits", "ask-user", "plan-only"]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agentctl",
        description="Start, stop and watch coding-agent sessions",
    )
    parser.add_argument("--api-url", default=None, help="Service URL (default: $AGENT_SESSIONS_URL)")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # agentctl start <session-id> "<instruction>"
    start_parser = subparsers.add_parser("start", help="Start an agent session")
    start_parser.add_argument("session_id", help="Session ID")
    start_parser.add_argument("instruction", help="Instruction for the agent")
    start_parser.add_argument("--work-dir", default=None, help="Working directory (default: cwd)")
    start_parser.add_argument("--mode", choices=PERMISSION_MODES, default="accept-edits", help="Permission mode")

    # agentctl stop <session-id>
    stop_parser = subparsers.add_parser("stop", help="Stop an agent session")
    stop_parser.add_argument("session_id", help="Session ID")

    # agentctl active <session-id>
    active_parser = subparsers.add_parser("active", help="Check whether a session is active")
    active_parser.add_argument("session_id", help="Session ID")

    # agentctl list
    subparsers.add_parser("list", help="List live sessions")

    # agentctl watch [session-id]
    watch_parser = subparsers.add_parser("watch", help="Stream status and activity events")
    watch_parser.add_argument("session_id", nargs="?", default=None, help="Only this session")

    return parser


def main(argv=None):
    """Main entry point for agentctl CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(0)

    client = AgentSessionsClient(args.api_url)

    if args.command == "start":
        sys.exit(commands.cmd_start(client, args.session_id, args.instruction, args.work_dir, args.mode))
    elif args.command == "stop":
        sys.exit(commands.cmd_stop(client, args.session_id))
    elif args.command == "active":
        sys.exit(commands.cmd_active(client, args.session_id))
    elif args.command == "list":
        sys.exit(commands.cmd_list(client))
    elif args.command == "watch":
        sys.exit(commands.cmd_watch(client, args.session_id))
    else:
        parser.print_help()
        sys.exit(0)


if __name__ == "__main__":
    main()
