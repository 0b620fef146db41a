"""Scripted session driver for hosts without the real agent binary."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .models import AgentSession, AgentStatus, is_terminal
from .session_driver import SessionDriver

if TYPE_CHECKING:
    from .session_registry import SessionRegistry

logger = logging.getLogger(__name__)

MOCK_MODE_LINE = "! Running in mock mode"


@dataclass(frozen=True)
class MockStep:
    """One scripted (status, line, delay) step."""
    status: AgentStatus
    line: str
    delay_ms: int


MOCK_SCRIPT: tuple[MockStep, ...] = (
    MockStep(AgentStatus.THINKING, "● Analyzing request...", 800),
    MockStep(AgentStatus.THINKING, "○ Reading CLAUDE.md", 600),
    MockStep(AgentStatus.THINKING, "○ Reading package.json", 400),
    MockStep(AgentStatus.THINKING, "● Planning approach...", 1000),
    MockStep(AgentStatus.RUNNING_COMMAND, "> git status", 500),
    MockStep(AgentStatus.THINKING, "✓ Command completed", 300),
    MockStep(AgentStatus.EDITING, "● Editing src/components/Example.tsx", 1200),
    MockStep(AgentStatus.THINKING, "✓ File saved", 300),
    MockStep(AgentStatus.RUNNING_COMMAND, "> pnpm lint", 800),
    MockStep(AgentStatus.THINKING, "✓ Lint passed", 300),
    MockStep(AgentStatus.THINKING, "● Reviewing changes...", 600),
    MockStep(AgentStatus.COMPLETED, "✓ Task completed successfully", 0),
)


class MockSessionRunner(SessionDriver):
    """Replays MOCK_SCRIPT instead of spawning the agent process."""

    mode = "mock"

    def __init__(self, step_delay_scale: float = 1.0):
        self.step_delay_scale = max(0.0, float(step_delay_scale))

    async def run(self, session: AgentSession, registry: SessionRegistry) -> None:
        registry.publish_line(session, MOCK_MODE_LINE)

        for step in MOCK_SCRIPT:
            if session.aborted:
                logger.info(f"Mock session {session.id} aborted")
                return

            if is_terminal(step.status):
                registry.finish(session, step.status, line=step.line)
            else:
                registry.publish_status(session, step.status, dedupe=False)
                registry.publish_line(session, step.line)

            delay = step.delay_ms * self.step_delay_scale / 1000
            if delay > 0:
                await asyncio.sleep(delay)

        logger.info(f"Mock session {session.id} completed")

    def stop(self, session: AgentSession) -> None:
        # Nothing to terminate; the script checks session.aborted between steps
        pass
