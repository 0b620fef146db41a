"""HTTP client for the agent sessions API."""

import json
import os
import urllib.error
import urllib.parse
import urllib.request
from typing import Iterator, Optional

# Default API endpoint
DEFAULT_API_URL = "http://127.0.0.1:8421"
API_TIMEOUT = 5  # seconds


class AgentSessionsClient:
    """Client for the agent sessions API."""

    def __init__(self, api_url: Optional[str] = None):
        """
        Initialize client.

        Args:
            api_url: Base URL for API (default: http://127.0.0.1:8421)
        """
        self.api_url = (api_url or os.environ.get("AGENT_SESSIONS_URL", DEFAULT_API_URL)).rstrip("/")

    def _request(self, method: str, path: str, data: Optional[dict] = None, timeout: Optional[int] = None) -> tuple[Optional[dict], bool, bool]:
        """
        Make an HTTP request.

        Returns:
            Tuple of (response_data, success, unavailable)
            - success=True, unavailable=False: Request succeeded
            - success=False, unavailable=True: Connection error (service unavailable)
            - success=False, unavailable=False: API error (4xx, 5xx response)
        """
        url = f"{self.api_url}{path}"
        request_timeout = timeout if timeout is not None else API_TIMEOUT

        try:
            headers = {"Content-Type": "application/json"}
            body = json.dumps(data).encode() if data is not None else None

            req = urllib.request.Request(url, data=body, headers=headers, method=method)
            with urllib.request.urlopen(req, timeout=request_timeout) as response:
                return json.loads(response.read().decode()), True, False

        except urllib.error.HTTPError as e:
            # API responded but with error status
            try:
                detail = json.loads(e.read().decode())
            except ValueError:
                detail = None
            return detail, False, False
        except (urllib.error.URLError, OSError):
            # Connection refused, timeout, etc.
            return None, False, True

    def start(self, session_id: str, work_dir: str, instruction: str, permission_mode: str) -> tuple[Optional[dict], bool, bool]:
        """Request a session start."""
        return self._request(
            "POST",
            f"/agents/{urllib.parse.quote(session_id, safe='')}/start",
            {"work_dir": work_dir, "instruction": instruction, "permission_mode": permission_mode},
        )

    def stop(self, session_id: str) -> tuple[bool, bool]:
        """
        Request a session stop.

        Returns:
            Tuple of (success, unavailable)
        """
        _, success, unavailable = self._request("POST", f"/agents/{urllib.parse.quote(session_id, safe='')}/stop")
        return success, unavailable

    def is_active(self, session_id: str) -> Optional[bool]:
        """Return whether the session is active, or None if unavailable."""
        data, success, _ = self._request("GET", f"/agents/{urllib.parse.quote(session_id, safe='')}/active")
        if success and data is not None:
            return bool(data.get("active"))
        return None

    def list_sessions(self) -> Optional[list]:
        """List live sessions."""
        data, success, _ = self._request("GET", "/agents")
        if success and data is not None:
            return data.get("sessions", [])
        return None

    def iter_events(self, session_id: Optional[str] = None) -> Iterator[tuple[str, dict]]:
        """
        Yield (event_kind, payload) pairs from the SSE stream until it closes.

        Raises:
            urllib.error.URLError: If the service is unreachable
        """
        path = "/events"
        if session_id:
            path += "?" + urllib.parse.urlencode({"session_id": session_id})

        req = urllib.request.Request(f"{self.api_url}{path}", headers={"Accept": "text/event-stream"})
        with urllib.request.urlopen(req) as response:
            yield from parse_sse_lines(raw.decode("utf-8") for raw in response)


def parse_sse_lines(lines) -> Iterator[tuple[str, dict]]:
    """Parse Server-Sent-Events text lines into (event_kind, payload) pairs."""
    kind = "message"
    data_parts: list[str] = []
    for line in lines:
        line = line.rstrip("\r\n")
        if not line:
            payload = None
            if data_parts:
                try:
                    payload = json.loads("\n".join(data_parts))
                except ValueError:
                    payload = None  # Malformed frame
            if isinstance(payload, dict):
                yield kind, payload
            kind, data_parts = "message", []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        value = value[1:] if value.startswith(" ") else value
        if field == "event":
            kind = value
        elif field == "data":
            data_parts.append(value)
