"""
Test doubles shared by the test modules: a manual clock, token builder,
scripted transport and an event recorder.
"""

import base64
import json
from typing import Any

from sweep_sync.core.events import SyncEvents

# 2023-11-14T22:13:20Z
START_TIME = 1_700_000_000.0


class FakeClock:
    """Manually advanced wall clock, in epoch seconds."""

    def __init__(self, now: float = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_token(exp: float | None, role: str | None = None, **claims: Any) -> str:
    """Builds an unsigned three-segment token carrying the given claims."""
    body = dict(claims)
    if exp is not None:
        body["exp"] = int(exp)
    if role is not None:
        body["role"] = role
    segment = base64.urlsafe_b64encode(json.dumps(body).encode()).decode().rstrip("=")
    return f"eyJhbGciOiJIUzI1NiJ9.{segment}.signature"


class FakeTransport:
    """
    Stands in for the gateway's HTTP exchange.

    Responses are consumed in order; each is either a `(status, body)` tuple or
    an exception instance to raise. When the script runs out, `default` is used.
    """

    def __init__(self, default: tuple[int, Any] = (200, {})):
        self.default = default
        self.responses: list[Any] = []
        self.requests: list[dict[str, Any]] = []

    def queue(self, *responses: Any) -> "FakeTransport":
        self.responses.extend(responses)
        return self

    async def send(
        self, method: str, url: str, headers: dict[str, str], body: Any
    ) -> tuple[int, Any]:
        self.requests.append(
            {"method": method, "url": url, "headers": headers, "body": body}
        )
        response = self.responses.pop(0) if self.responses else self.default
        if isinstance(response, BaseException):
            raise response
        return response

    @property
    def paths(self) -> list[str]:
        """Requested paths without the base URL or the cache-busting parameter."""
        result = []
        for request in self.requests:
            path = request["url"].split("://", 1)[-1]
            path = path[path.index("/") :] if "/" in path else "/"
            if request["method"] == "GET":
                path = path.rsplit("t=", 1)[0].rstrip("?&")
            result.append(path)
        return result

    def install(self, gateway) -> "FakeTransport":
        gateway._send = self.send
        return self


class EventRecorder:
    """Collects everything the engine publishes through its hooks."""

    def __init__(self):
        self.notices: list[str] = []
        self.statuses: list[Any] = []
        self.expired: list[str] = []
        self.refreshes = 0
        self.progress_starts = 0
        self.progress_stops = 0

    def _refresh(self) -> None:
        self.refreshes += 1

    def _start(self) -> None:
        self.progress_starts += 1

    def _stop(self) -> None:
        self.progress_stops += 1

    def events(self) -> SyncEvents:
        return SyncEvents(
            on_progress_start=self._start,
            on_progress_stop=self._stop,
            on_notice=self.notices.append,
            on_status_changed=self.statuses.append,
            on_refresh_view=self._refresh,
            on_session_expired=self.expired.append,
        )

