"""Shared pytest fixtures for agent session tests."""

import sys
from pathlib import Path

import pytest

from src.event_sink import EventSink
from src.mock_runner import MockSessionRunner
from src.models import AgentStatus, StatusEvent, ActivityLineEvent
from src.process_launcher import AgentLauncherConfig
from src.session_driver import ProcessSessionDriver
from src.session_registry import SessionRegistry

FAKE_AGENT = Path(__file__).parent / "fixtures" / "fake_agent.py"


class RecordingSink(EventSink):
    """EventSink that keeps every event in publish order."""

    def __init__(self):
        self.events: list = []

    def publish_status(self, event: StatusEvent) -> None:
        self.events.append(event)

    def publish_line(self, event: ActivityLineEvent) -> None:
        self.events.append(event)

    def for_session(self, session_id: str) -> list:
        return [e for e in self.events if e.session_id == session_id]

    def statuses(self, session_id: str) -> list[AgentStatus]:
        return [e.status for e in self.for_session(session_id) if isinstance(e, StatusEvent)]

    def lines(self, session_id: str) -> list[str]:
        return [e.line for e in self.for_session(session_id) if isinstance(e, ActivityLineEvent)]


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def mock_registry(recording_sink: RecordingSink) -> SessionRegistry:
    """Registry driven by the scripted runner with no delays."""
    return SessionRegistry(sink=recording_sink, driver=MockSessionRunner(step_delay_scale=0))


@pytest.fixture
def fake_agent_config() -> AgentLauncherConfig:
    """Launcher config that runs tests/fixtures/fake_agent.py with this interpreter."""
    return AgentLauncherConfig(
        command=sys.executable,
        args=[str(FAKE_AGENT)],
        env={"PYTHONUNBUFFERED": "1", "CI": "true"},
        stop_grace_seconds=0.5,
    )


@pytest.fixture
def process_registry(recording_sink: RecordingSink, fake_agent_config: AgentLauncherConfig) -> SessionRegistry:
    """Registry that spawns the fake agent script as a real child process."""
    return SessionRegistry(sink=recording_sink, driver=ProcessSessionDriver(fake_agent_config))
