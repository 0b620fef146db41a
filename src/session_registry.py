"""Registry of in-flight agent sessions and their lifecycle control."""

import asyncio
import logging
from datetime import datetime
from typing import Optional, Union

from .event_sink import EventSink
from .models import (
    ActivityLineEvent,
    AgentSession,
    AgentStatus,
    PermissionMode,
    StatusEvent,
    can_transition,
    is_terminal,
)
from .output_classifier import classify, strip_ansi
from .session_driver import SessionDriver

logger = logging.getLogger(__name__)

STARTING_LINE = "● Starting Claude agent..."
COMPLETED_LINE = "✓ Task completed"
STDERR_PREFIX = "! "


class SessionRegistry:
    """
    Owns the table of live sessions and routes their output to the sink.

    All mutation happens on the event loop thread. Each check of
    ``session.aborted`` and the emission that follows it run without an
    intervening await, so start, stop and exit handling are atomic with
    respect to a given session id.

    Notes:
    - A session is removed from the table as soon as it reaches a terminal
      status or is stopped; ``is_active`` is a plain table lookup.
    - Output read after ``stop`` is dropped before classification.
    """

    def __init__(self, sink: EventSink, driver: SessionDriver):
        self.sink = sink
        self.driver = driver
        self.sessions: dict[str, AgentSession] = {}
        self._tasks: set[asyncio.Task] = set()

    # -----------------------
    # Public operations
    # -----------------------
    def start(
        self,
        session_id: str,
        work_dir: str,
        instruction: str,
        permission_mode: Union[PermissionMode, str],
    ) -> None:
        """
        Start a session. Fire-and-forget: failures arrive as events.

        Must be called from the event loop thread.

        Raises:
            ValueError: If permission_mode is not a known mode
        """
        permission_mode = PermissionMode.parse(permission_mode)

        previous = self.sessions.get(session_id)
        if previous is not None:
            logger.warning(f"Session {session_id} started again while active, superseding previous run")
            self._abort(previous)

        session = AgentSession(
            id=session_id,
            work_dir=work_dir,
            instruction=instruction,
            permission_mode=permission_mode,
        )
        self.sessions[session_id] = session
        logger.info(
            f"Starting session {session_id} (mode={permission_mode.value}, driver={self.driver.mode}, "
            f"work_dir={work_dir}, instruction={instruction[:50]!r})"
        )

        self._emit_status(session, AgentStatus.STARTING)
        self.publish_line(session, STARTING_LINE)

        task = asyncio.create_task(self._run_session(session))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def stop(self, session_id: str) -> None:
        """Stop a session. Unknown or already-stopped ids are a no-op."""
        session = self.sessions.get(session_id)
        if session is None:
            logger.debug(f"Stop requested for inactive session {session_id}")
            return
        logger.info(f"Stopping session {session_id}")
        self._abort(session)

    def is_active(self, session_id: str) -> bool:
        return session_id in self.sessions

    def get_session(self, session_id: str) -> Optional[AgentSession]:
        return self.sessions.get(session_id)

    def list_sessions(self) -> list[AgentSession]:
        return list(self.sessions.values())

    async def drain(self) -> None:
        """Wait until every in-flight session flow has returned."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Stop all sessions and wait for their flows to finish."""
        for session_id in list(self.sessions):
            self.stop(session_id)
        await self.drain()

    # -----------------------
    # Driver callbacks
    # -----------------------
    def publish_status(
        self,
        session: AgentSession,
        status: AgentStatus,
        error: Optional[str] = None,
        dedupe: bool = True,
    ) -> bool:
        """
        Publish a non-terminal status for session.

        Returns:
            True if an event was emitted
        """
        if is_terminal(status):
            raise ValueError(f"Use finish() for terminal status {status.value}")
        if not session.accepting_events:
            return False
        if dedupe and status == session.current_status:
            return False
        return self._emit_status(session, status, error)

    def publish_line(self, session: AgentSession, line: str) -> bool:
        """Publish an activity line. Returns True if emitted."""
        if not session.accepting_events:
            return False
        session.last_activity = datetime.now()
        return self._safe_publish(self.sink.publish_line, ActivityLineEvent(session.id, line))

    def finish(
        self,
        session: AgentSession,
        status: AgentStatus,
        line: Optional[str] = None,
        error: Optional[str] = None,
    ) -> bool:
        """
        Publish the final line and terminal status, then unregister.

        The line goes out first so the terminal status is always the last
        event observed for the session.
        """
        if not is_terminal(status):
            raise ValueError(f"{status.value} is not a terminal status")
        if not session.accepting_events:
            return False
        if line:
            self.publish_line(session, line)
        emitted = self._emit_status(session, status, error)
        self._unregister(session)
        return emitted

    def handle_stdout(self, session: AgentSession, chunk: str) -> None:
        """Classify one stdout chunk and publish the result."""
        if session.aborted:
            logger.debug(f"Dropping stdout from aborted session {session.id}")
            return
        if session.finished:
            return
        logger.debug(f"[{session.id}] stdout: {chunk[:200]!r}")

        result = classify(chunk, session.current_status)
        if result.status != session.current_status:
            self.publish_status(session, result.status)
        if result.line:
            self.publish_line(session, result.line)

    def handle_stderr(self, session: AgentSession, chunk: str) -> None:
        """Publish stderr text verbatim as a warning line."""
        if not session.accepting_events:
            return
        text = strip_ansi(chunk).strip()
        logger.debug(f"[{session.id}] stderr: {text[:200]!r}")
        if text:
            self.publish_line(session, f"{STDERR_PREFIX}{text}")

    def handle_exit(self, session: AgentSession, returncode: int) -> None:
        logger.info(f"Session {session.id} process exited with code {returncode}")
        if session.aborted:
            return
        if returncode == 0:
            self.finish(session, AgentStatus.COMPLETED, line=COMPLETED_LINE)
        else:
            self.finish(
                session,
                AgentStatus.ERROR,
                line=f"✕ Exited with code {returncode}",
                error=f"Process exited with code {returncode}",
            )

    def handle_spawn_failure(self, session: AgentSession, error: BaseException) -> None:
        message = str(error) or error.__class__.__name__
        logger.error(f"Failed to spawn agent for session {session.id}: {message}")
        if session.aborted:
            self._unregister(session)
            return
        self.finish(session, AgentStatus.ERROR, line=f"✕ Error: {message}", error=message)

    # -----------------------
    # Internals
    # -----------------------
    async def _run_session(self, session: AgentSession) -> None:
        try:
            await self.driver.run(session, self)
            if session.accepting_events:
                logger.warning(f"Driver returned without a final status for session {session.id}")
                self.finish(session, AgentStatus.ERROR, error="Session ended unexpectedly")
        except asyncio.CancelledError:
            if not session.aborted:
                logger.info(f"Session {session.id} flow cancelled, terminating")
                self._abort(session)
            raise
        except Exception as e:
            logger.exception(f"Session {session.id} driver failed")
            self.finish(session, AgentStatus.ERROR, line=f"✕ Error: {e}", error=str(e) or e.__class__.__name__)
        finally:
            if not session.accepting_events:
                self._unregister(session)

    def _abort(self, session: AgentSession) -> None:
        session.aborted = True
        self._unregister(session)
        try:
            self.driver.stop(session)
        except Exception:
            logger.exception(f"Error terminating session {session.id}")

    def _unregister(self, session: AgentSession) -> None:
        # The id may already belong to a newer session
        if self.sessions.get(session.id) is session:
            del self.sessions[session.id]

    def _emit_status(self, session: AgentSession, status: AgentStatus, error: Optional[str] = None) -> bool:
        if not can_transition(session.current_status, status) and status != session.current_status:
            logger.warning(
                f"Rejected transition {session.current_status.value} -> {status.value} for session {session.id}"
            )
            return False
        session.current_status = status
        if is_terminal(status):
            session.finished = True
        return self._safe_publish(self.sink.publish_status, StatusEvent(session.id, status, error))

    def _safe_publish(self, publish, event) -> bool:
        try:
            publish(event)
        except Exception:
            logger.exception(f"Event sink failed for session {event.session_id}")
            return False
        return True
