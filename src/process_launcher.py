"""Builds the agent CLI invocation for a session."""

import os
import shlex
from dataclasses import dataclass, field
from typing import Optional

from .models import PermissionMode


def _default_env() -> dict[str, str]:
    # Force non-interactive, plain-terminal behavior
    return {"CI": "true", "TERM": "xterm-256color"}


@dataclass
class AgentLauncherConfig:
    """Configuration for launching the agent CLI."""
    command: str = "claude"
    args: list[str] = field(default_factory=list)  # Extra leading arguments
    output_format: Optional[str] = "stream-json"
    accept_edits_flag: str = "--dangerously-skip-permissions"
    plan_only_flag: str = "--plan"
    env: dict[str, str] = field(default_factory=_default_env)
    stop_grace_seconds: float = 3.0
    stream_limit_bytes: int = 8 * 1024 * 1024

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "AgentLauncherConfig":
        """Build from the ``agent`` config section, ignoring unknown keys."""
        data = data or {}
        values = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        if "args" in values:
            values["args"] = [str(arg) for arg in values["args"] or []]
        if "env" in values:
            values["env"] = {str(k): str(v) for k, v in (values["env"] or {}).items()}
        return cls(**values)


@dataclass(frozen=True)
class AgentInvocation:
    """Argument vector and environment for one agent process."""
    argv: list[str]
    env: dict[str, str]

    def display(self) -> str:
        """Shell-quoted rendering for activity logs (never executed)."""
        return shlex.join(self.argv)


def build_invocation(
    instruction: str,
    permission_mode: PermissionMode,
    config: Optional[AgentLauncherConfig] = None,
    base_env: Optional[dict[str, str]] = None,
) -> AgentInvocation:
    """
    Build the agent command line for a session.

    The instruction is always passed as a single argv element, never
    interpolated into a shell string.

    Args:
        instruction: Natural-language instruction for the agent
        permission_mode: Launch-time permission mode
        config: Launcher configuration (defaults used if omitted)
        base_env: Environment to inherit (defaults to os.environ)

    Returns:
        AgentInvocation with argv and the merged environment
    """
    config = config or AgentLauncherConfig()
    permission_mode = PermissionMode.parse(permission_mode)

    argv = [config.command, *config.args, "-p", instruction]

    if permission_mode == PermissionMode.ACCEPT_EDITS:
        argv.append(config.accept_edits_flag)
    elif permission_mode == PermissionMode.PLAN_ONLY:
        argv.append(config.plan_only_flag)
    # ASK_USER: confirmation is the tool's default, no flag

    if config.output_format:
        argv.extend(["--output-format", config.output_format])
        if config.output_format == "stream-json":
            # The CLI refuses stream-json in print mode without --verbose
            argv.append("--verbose")

    env = dict(os.environ if base_env is None else base_env)
    env.update(config.env)

    return AgentInvocation(argv=argv, env=env)
