"""Command implementations for agentctl CLI."""

import os
import sys
import urllib.error
from typing import Optional

from .client import AgentSessionsClient

_INSTRUCTION_PREVIEW_WIDTH = 60


def cmd_start(
    client: AgentSessionsClient,
    session_id: str,
    instruction: str,
    work_dir: Optional[str] = None,
    permission_mode: str = "accept-edits",
) -> int:
    """
    Start an agent session.

    Exit codes:
        0: Start accepted
        1: Rejected by the service (bad directory, empty instruction, ...)
        2: Service unavailable
    """
    work_dir = os.path.abspath(os.path.expanduser(work_dir or os.getcwd()))
    data, success, unavailable = client.start(session_id, work_dir, instruction, permission_mode)
    if unavailable:
        print("Error: agent sessions service unavailable", file=sys.stderr)
        return 2
    if not success:
        detail = (data or {}).get("detail", "request rejected")
        print(f"Error: {detail}", file=sys.stderr)
        return 1
    print(f"Started {session_id} in {work_dir}")
    return 0


def cmd_stop(client: AgentSessionsClient, session_id: str) -> int:
    """
    Stop an agent session (no-op if it is not running).

    Exit codes:
        0: Success
        1: API error
        2: Service unavailable
    """
    success, unavailable = client.stop(session_id)
    if unavailable:
        print("Error: agent sessions service unavailable", file=sys.stderr)
        return 2
    if not success:
        print(f"Error: failed to stop {session_id}", file=sys.stderr)
        return 1
    print(f"Stopped {session_id}")
    return 0


def cmd_active(client: AgentSessionsClient, session_id: str) -> int:
    """
    Report whether a session is active.

    Exit codes:
        0: Active
        1: Not active
        2: Service unavailable
    """
    active = client.is_active(session_id)
    if active is None:
        print("Error: agent sessions service unavailable", file=sys.stderr)
        return 2
    print("active" if active else "inactive")
    return 0 if active else 1


def format_session_line(session: dict) -> str:
    instruction = session.get("instruction", "")
    if len(instruction) > _INSTRUCTION_PREVIEW_WIDTH:
        instruction = instruction[:_INSTRUCTION_PREVIEW_WIDTH - 3] + "..."
    return (
        f"{session.get('id')}  [{session.get('status')}]  "
        f"{session.get('permission_mode')}  {session.get('work_dir')}  {instruction}"
    )


def cmd_list(client: AgentSessionsClient) -> int:
    """List live sessions."""
    sessions = client.list_sessions()
    if sessions is None:
        print("Error: agent sessions service unavailable", file=sys.stderr)
        return 2
    if not sessions:
        print("No active sessions")
        return 0
    for session in sessions:
        print(format_session_line(session))
    return 0


def format_event(kind: str, payload: dict) -> str:
    session_id = payload.get("session_id", "?")
    if kind == "status":
        text = f"[{session_id}] status: {payload.get('status')}"
        if payload.get("error"):
            text += f" ({payload['error']})"
        return text
    return f"[{session_id}] {payload.get('line', '')}"


def cmd_watch(client: AgentSessionsClient, session_id: Optional[str] = None) -> int:
    """
    Print the event stream until interrupted or the service goes away.

    Exit codes:
        0: Stream ended or interrupted
        2: Service unavailable
    """
    try:
        for kind, payload in client.iter_events(session_id):
            print(format_event(kind, payload), flush=True)
    except urllib.error.URLError:
        print("Error: agent sessions service unavailable", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        pass
    return 0
