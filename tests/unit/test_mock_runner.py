"""Unit tests for the scripted mock session runner."""

import asyncio

import pytest

from src.mock_runner import MOCK_MODE_LINE, MOCK_SCRIPT, MockSessionRunner
from src.models import AgentStatus, PermissionMode
from src.session_registry import STARTING_LINE, SessionRegistry


def test_script_shape():
    assert MOCK_SCRIPT[-1].status == AgentStatus.COMPLETED
    assert MOCK_SCRIPT[-1].delay_ms == 0
    assert all(step.status != AgentStatus.COMPLETED for step in MOCK_SCRIPT[:-1])
    assert [step.line for step in MOCK_SCRIPT if step.status == AgentStatus.RUNNING_COMMAND] == [
        "> git status",
        "> pnpm lint",
    ]


def test_negative_delay_scale_is_clamped():
    assert MockSessionRunner(step_delay_scale=-2).step_delay_scale == 0.0


@pytest.mark.asyncio
async def test_full_script_runs_to_completion(mock_registry, recording_sink):
    mock_registry.start("m1", "/tmp", "demo", PermissionMode.ACCEPT_EDITS)
    await mock_registry.drain()

    assert recording_sink.statuses("m1") == [AgentStatus.STARTING] + [step.status for step in MOCK_SCRIPT]
    assert recording_sink.lines("m1") == [STARTING_LINE, MOCK_MODE_LINE] + [step.line for step in MOCK_SCRIPT]
    assert recording_sink.for_session("m1")[-1].status == AgentStatus.COMPLETED
    assert not mock_registry.is_active("m1")


@pytest.mark.asyncio
async def test_stop_before_first_step(mock_registry, recording_sink):
    mock_registry.start("m1", "/tmp", "demo", PermissionMode.ACCEPT_EDITS)
    mock_registry.stop("m1")
    await mock_registry.drain()

    assert recording_sink.statuses("m1") == [AgentStatus.STARTING]
    assert recording_sink.lines("m1") == [STARTING_LINE]


@pytest.mark.asyncio
async def test_stop_mid_script(recording_sink):
    registry = SessionRegistry(sink=recording_sink, driver=MockSessionRunner(step_delay_scale=0.01))
    registry.start("m1", "/tmp", "demo", PermissionMode.ACCEPT_EDITS)

    # Wait until the script is past its first step
    for _ in range(200):
        if len(recording_sink.statuses("m1")) >= 3:
            break
        await asyncio.sleep(0.005)
    registry.stop("m1")
    seen = len(recording_sink.events)
    await registry.drain()

    assert len(recording_sink.events) == seen
    assert AgentStatus.COMPLETED not in recording_sink.statuses("m1")
    assert not registry.is_active("m1")


@pytest.mark.asyncio
async def test_delays_are_scaled(recording_sink, monkeypatch):
    slept = []

    async def fake_sleep(delay):
        slept.append(delay)

    monkeypatch.setattr("src.mock_runner.asyncio.sleep", fake_sleep)
    registry = SessionRegistry(sink=recording_sink, driver=MockSessionRunner(step_delay_scale=0.5))
    registry.start("m1", "/tmp", "demo", PermissionMode.ACCEPT_EDITS)
    await registry.drain()

    assert slept == [step.delay_ms * 0.5 / 1000 for step in MOCK_SCRIPT if step.delay_ms]
