"""Classification of raw agent output into status transitions and activity lines.

Two tiers are tried in order:

1. Structured: newline-delimited JSON events (``--output-format stream-json``).
2. Heuristic: keyword matching on plain progress text, used when the agent
   ignores the structured-output request or prints something else.

Nothing in this module raises on bad input; malformed JSON falls through to
the heuristic tier.
"""

import json
import re
from typing import Any, Optional

from .models import AgentStatus, ClassifiedOutput

COMMAND_DISPLAY_WIDTH = 80
MATCHED_TEXT_WIDTH = 80
PLAIN_TEXT_WIDTH = 100

TOOL_SUCCEEDED_LINE = "✓ Tool completed"
TOOL_FAILED_LINE = "✕ Tool failed"
RESULT_SUCCEEDED_LINE = "✓ Completed"

SHELL_TOOLS = frozenset({"Bash", "Shell", "shell"})
WRITE_TOOLS = frozenset({"Write", "Edit", "MultiEdit", "NotebookEdit"})
READ_TOOLS = frozenset({"Read", "Glob", "Grep", "LS"})
SUBAGENT_TOOLS = frozenset({"Task"})

# CSI sequences (colors, cursor movement), OSC sequences and lone escapes
_ansi_re = re.compile(
    r"\x1b\[[0-?]*[ -/]*[@-~]"
    r"|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)"
    r"|\x1b[@-Z\\-_]"
    r"|[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]"
)

_thinking_re = re.compile(r"thinking", re.IGNORECASE)
_editing_re = re.compile(r"writing|editing", re.IGNORECASE)
_running_re = re.compile(r"running|\$", re.IGNORECASE)
_reading_re = re.compile(r"reading", re.IGNORECASE)


def strip_ansi(text: str) -> str:
    """Remove terminal color and control sequences."""
    return _ansi_re.sub("", text)


def _str_field(data: dict, *keys: str) -> Optional[str]:
    """Return the first non-empty string value among keys."""
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def _find_content_block(event: dict, block_type: str) -> Optional[dict]:
    """Find the first content block of block_type inside a message envelope."""
    message = event.get("message")
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    if not isinstance(content, list):
        return None
    for block in content:
        if isinstance(block, dict) and block.get("type") == block_type:
            return block
    return None


def _classify_tool_use(event: dict) -> ClassifiedOutput:
    tool_name = event.get("name")
    if not isinstance(tool_name, str) or not tool_name:
        tool_name = "tool"
    tool_input = event.get("input")
    if not isinstance(tool_input, dict):
        tool_input = {}

    if tool_name in SHELL_TOOLS:
        command = _str_field(tool_input, "command") or "command"
        return ClassifiedOutput(
            AgentStatus.RUNNING_COMMAND,
            f"> {command[:COMMAND_DISPLAY_WIDTH]}",
        )
    if tool_name in WRITE_TOOLS:
        path = _str_field(tool_input, "file_path", "path", "notebook_path") or "file"
        return ClassifiedOutput(AgentStatus.EDITING, f"● Editing {path}")
    if tool_name in READ_TOOLS:
        path = _str_field(tool_input, "file_path", "path", "pattern") or "file"
        return ClassifiedOutput(AgentStatus.THINKING, f"○ Reading {path}")
    if tool_name in SUBAGENT_TOOLS:
        return ClassifiedOutput(AgentStatus.THINKING, "● Spawning subagent...")
    return ClassifiedOutput(AgentStatus.THINKING, f"● Using {tool_name}")


def _classify_tool_result(event: dict) -> ClassifiedOutput:
    line = TOOL_FAILED_LINE if event.get("is_error") is True else TOOL_SUCCEEDED_LINE
    return ClassifiedOutput(AgentStatus.THINKING, line)


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def _init_line(event: dict) -> Optional[str]:
    """Activity line for the system init event: ● Claude <version> | <model>."""
    if event.get("subtype") != "init":
        return None
    parts = [p for p in (_str_field(event, "claude_code_version"), _str_field(event, "model")) if p]
    if not parts:
        return None
    return "● Claude " + " | ".join(parts)


def _result_line(event: dict) -> str:
    """
    Summary line for the final result event.

    is_error takes precedence over a "success" subtype.
    """
    is_error = event.get("is_error") is True
    if not is_error and event.get("subtype") == "success":
        details = []
        turns = _number(event.get("num_turns"))
        if turns is not None:
            details.append(f"{int(turns)} turns")
        cost = _number(event.get("total_cost_usd"))
        if cost is not None:
            details.append(f"${cost:.4f}")
        return RESULT_SUCCEEDED_LINE + (f" ({', '.join(details)})" if details else "")

    message = _str_field(event, "result") if is_error else None
    if message is None:
        errors = event.get("errors")
        if isinstance(errors, list) and errors:
            message = ", ".join(str(e) for e in errors)
    if message is None:
        message = _str_field(event, "subtype") or "error"
    return f"✕ {message[:PLAIN_TEXT_WIDTH]}"


def _progress_line(event: dict) -> str:
    tool_name = _str_field(event, "tool_name") or "tool"
    elapsed = _number(event.get("elapsed_time_seconds"))
    if elapsed is None:
        return f"⏱ {tool_name}"
    return f"⏱ {tool_name} ({elapsed:.1f}s)"


def parse_json_event(event: Any, previous_status: AgentStatus) -> Optional[ClassifiedOutput]:
    """
    Classify one decoded stream-json event.

    Args:
        event: Decoded JSON value
        previous_status: Status before this event

    Returns:
        ClassifiedOutput, or None if the value is not a typed event object
        (caller falls back to the heuristic tier)
    """
    if not isinstance(event, dict):
        return None
    event_type = event.get("type")
    if not isinstance(event_type, str):
        return None

    if event_type == "tool_use":
        return _classify_tool_use(event)

    if event_type == "tool_result":
        return _classify_tool_result(event)

    if event_type == "assistant":
        # Claude wraps tool calls in assistant message envelopes
        block = _find_content_block(event, "tool_use")
        if block is not None:
            return _classify_tool_use(block)
        return ClassifiedOutput(AgentStatus.THINKING)

    if event_type == "user":
        block = _find_content_block(event, "tool_result")
        if block is not None:
            return _classify_tool_result(block)

    # Informational events: a line, but the status stays put. Terminal
    # statuses come from the process exit only.
    if event_type == "system":
        return ClassifiedOutput(previous_status, _init_line(event))

    if event_type == "result":
        return ClassifiedOutput(previous_status, _result_line(event))

    if event_type == "tool_progress":
        return ClassifiedOutput(previous_status, _progress_line(event))

    # Recognized shape, unknown variant: no transition, no line
    return ClassifiedOutput(previous_status)


def classify_plain_text(text: str, previous_status: AgentStatus) -> ClassifiedOutput:
    """Heuristic classification of human-readable progress text."""
    clean = strip_ansi(text).strip()
    if not clean:
        return ClassifiedOutput(previous_status)

    shown = clean[:MATCHED_TEXT_WIDTH]
    if _thinking_re.search(clean):
        return ClassifiedOutput(AgentStatus.THINKING, f"● {shown}")
    if _editing_re.search(clean):
        return ClassifiedOutput(AgentStatus.EDITING, f"● {shown}")
    if _running_re.search(clean):
        return ClassifiedOutput(AgentStatus.RUNNING_COMMAND, f"> {shown}")
    if _reading_re.search(clean):
        return ClassifiedOutput(AgentStatus.THINKING, f"○ {shown}")

    return ClassifiedOutput(previous_status, clean[:PLAIN_TEXT_WIDTH])


def classify(raw_chunk: str, previous_status: AgentStatus) -> ClassifiedOutput:
    """
    Turn one chunk of agent stdout into a status and an optional activity line.

    The first line of the chunk that decodes as a typed JSON event decides
    the result; the rest of the chunk is ignored for this call. If no line
    decodes, the whole chunk goes through the heuristic tier.
    """
    if not isinstance(raw_chunk, str):
        return ClassifiedOutput(previous_status)

    for line in strip_ansi(raw_chunk).splitlines():
        line = line.strip()
        if not line.startswith("{"):
            continue
        try:
            event = json.loads(line)
        except (ValueError, RecursionError):
            continue
        result = parse_json_event(event, previous_status)
        if result is not None:
            return result

    return classify_plain_text(raw_chunk, previous_status)
