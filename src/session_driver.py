"""Session drivers: what actually produces output for a registered session."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

from .models import AgentSession
from .process_launcher import AgentLauncherConfig, build_invocation

if TYPE_CHECKING:
    from .session_registry import SessionRegistry

logger = logging.getLogger(__name__)


class SessionDriver(ABC):
    """Produces the event flow for one session on behalf of the registry."""

    mode: str = "driver"

    @abstractmethod
    async def run(self, session: AgentSession, registry: SessionRegistry) -> None:
        """Drive the session until it ends or is aborted."""

    @abstractmethod
    def stop(self, session: AgentSession) -> None:
        """Request termination. Must not block."""


class ProcessSessionDriver(SessionDriver):
    """Runs the real agent CLI as a child process and pumps its output."""

    mode = "process"

    def __init__(self, config: Optional[AgentLauncherConfig] = None):
        self.config = config or AgentLauncherConfig()

    async def run(self, session: AgentSession, registry: SessionRegistry) -> None:
        invocation = build_invocation(session.instruction, session.permission_mode, self.config)
        registry.publish_line(session, f"> {invocation.display()}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *invocation.argv,
                cwd=session.work_dir,
                env=invocation.env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=self.config.stream_limit_bytes,
            )
        except OSError as e:
            registry.handle_spawn_failure(session, e)
            return

        session.process = proc
        logger.info(f"Agent process spawned for session {session.id} (pid={proc.pid})")

        if session.aborted:
            # stop() landed while the spawn was in flight
            self._terminate(session)

        await asyncio.gather(
            self._pump(session, proc.stdout, registry.handle_stdout),
            self._pump(session, proc.stderr, registry.handle_stderr),
        )
        returncode = await proc.wait()
        registry.handle_exit(session, returncode)

    async def _pump(self, session: AgentSession, stream: asyncio.StreamReader, handler) -> None:
        while True:
            try:
                data = await stream.readline()
            except ValueError:
                # Line longer than stream_limit_bytes; the reader has already discarded it
                logger.warning(f"Dropped oversized output line from session {session.id}")
                continue
            if not data:
                break
            handler(session, data.decode("utf-8", errors="replace"))

    def stop(self, session: AgentSession) -> None:
        if session.process is None:
            return
        self._terminate(session)

    def _terminate(self, session: AgentSession) -> None:
        proc = session.process
        if proc is None or proc.returncode is not None:
            return
        try:
            proc.terminate()
        except ProcessLookupError:
            return
        logger.info(f"Sent SIGTERM to session {session.id} (pid={proc.pid})")

        grace = self.config.stop_grace_seconds
        if grace is not None and grace >= 0:
            asyncio.get_running_loop().call_later(grace, self._kill_if_alive, session.id, proc)

    @staticmethod
    def _kill_if_alive(session_id: str, proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is not None:
            return
        try:
            proc.kill()
        except ProcessLookupError:
            return
        logger.warning(f"Session {session_id} ignored SIGTERM, sent SIGKILL (pid={proc.pid})")
