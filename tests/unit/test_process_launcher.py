"""Unit tests for agent CLI invocation building."""

import pytest

from src.models import PermissionMode
from src.process_launcher import AgentLauncherConfig, build_invocation


def test_instruction_is_a_single_argument():
    instruction = 'fix the bug; rm -rf / && echo "$HOME" | tee out'
    invocation = build_invocation(instruction, PermissionMode.ASK_USER, base_env={})
    assert invocation.argv[:3] == ["claude", "-p", instruction]
    assert invocation.argv.count(instruction) == 1


@pytest.mark.parametrize(
    "mode, flag",
    [
        (PermissionMode.ACCEPT_EDITS, "--dangerously-skip-permissions"),
        (PermissionMode.PLAN_ONLY, "--plan"),
    ],
)
def test_permission_flags(mode, flag):
    invocation = build_invocation("do it", mode, base_env={})
    assert flag in invocation.argv


def test_ask_user_adds_no_permission_flag():
    invocation = build_invocation("do it", PermissionMode.ASK_USER, base_env={})
    assert "--dangerously-skip-permissions" not in invocation.argv
    assert "--plan" not in invocation.argv


def test_requests_stream_json_output():
    argv = build_invocation("do it", "accept-edits", base_env={}).argv
    index = argv.index("--output-format")
    assert argv[index + 1] == "stream-json"
    assert "--verbose" in argv


def test_output_format_can_be_disabled():
    config = AgentLauncherConfig(output_format=None)
    argv = build_invocation("do it", PermissionMode.ASK_USER, config, base_env={}).argv
    assert "--output-format" not in argv
    assert "--verbose" not in argv


def test_environment_is_inherited_with_overrides():
    invocation = build_invocation(
        "do it", PermissionMode.ASK_USER, base_env={"PATH": "/usr/bin", "CI": "false"}
    )
    assert invocation.env["PATH"] == "/usr/bin"
    assert invocation.env["CI"] == "true"
    assert invocation.env["TERM"] == "xterm-256color"


def test_inherits_os_environ_by_default(monkeypatch):
    monkeypatch.setenv("AGENT_TEST_MARKER", "1")
    invocation = build_invocation("do it", PermissionMode.ASK_USER)
    assert invocation.env["AGENT_TEST_MARKER"] == "1"


def test_custom_command_and_leading_args():
    config = AgentLauncherConfig(command="/opt/agent", args=["--model", "opus"])
    argv = build_invocation("go", PermissionMode.PLAN_ONLY, config, base_env={}).argv
    assert argv[:5] == ["/opt/agent", "--model", "opus", "-p", "go"]


def test_display_quotes_instruction():
    invocation = build_invocation("fix it now", PermissionMode.ASK_USER, base_env={})
    assert "'fix it now'" in invocation.display()


def test_config_from_dict_ignores_unknown_keys():
    config = AgentLauncherConfig.from_dict({
        "command": "claude-dev",
        "args": ["--debug", 1],
        "env": {"FOO": 2},
        "mock": True,
        "stop_grace_seconds": 1,
    })
    assert config.command == "claude-dev"
    assert config.args == ["--debug", "1"]
    assert config.env == {"FOO": "2"}
    assert config.stop_grace_seconds == 1


def test_config_from_empty_dict_uses_defaults():
    assert AgentLauncherConfig.from_dict(None) == AgentLauncherConfig()
