"""
Runtime Bridge

The seam between the QA orchestrator and a running game instance.

Two implementations:
- HttpRuntimeBridge: talks to the browser runner service over HTTP.
- InMemoryRuntimeBridge: scripted game for tests and local development,
  driven by a virtual clock so timing checks run instantly.

Event model: the runner buffers every event a game emits for the lifetime of
a session. await_event() returns the first buffered event of the requested
type, waiting up to timeout_ms for it to arrive. The game page stays loaded
until close(), so commands may still be sent after QUIT.
"""
import asyncio
import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import httpx

from ...models.qa_models import GameEvent, GameEventType, LaunchContext

logger = logging.getLogger(__name__)


# =============================================================================
# EXCEPTIONS
# =============================================================================

class RuntimeBridgeError(Exception):
    """The runner could not carry out a launch/command/event request."""
    pass


class BridgeTimeoutError(RuntimeBridgeError):
    """An awaited event did not arrive within its budget."""

    def __init__(self, event_type: GameEventType, timeout_ms: int):
        self.event_type = event_type
        self.timeout_ms = timeout_ms
        super().__init__(f"No {event_type.value} event within {timeout_ms}ms")


# =============================================================================
# INTERFACE
# =============================================================================

class RuntimeBridge(ABC):
    """What the orchestrator needs from a game runtime."""

    @abstractmethod
    async def launch(self, entry_url: str, context: LaunchContext) -> str:
        """Load the game and return an opaque session handle."""

    @abstractmethod
    async def send_command(self, handle: str, command: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Send a host command (init, quit, submit_result) and return the ack."""

    @abstractmethod
    async def await_event(self, handle: str, event_type: GameEventType, timeout_ms: int) -> GameEvent:
        """Wait for an event; raises BridgeTimeoutError when the budget runs out."""

    @abstractmethod
    async def error_count(self, handle: str) -> int:
        """Internal errors (console errors, uncaught exceptions) seen so far."""

    @abstractmethod
    async def close(self, handle: str) -> None:
        """Tear the session down."""


# =============================================================================
# HTTP IMPLEMENTATION
# =============================================================================

class HttpRuntimeBridge(RuntimeBridge):
    """
    Bridge to the browser runner service.

    Endpoints (relative to base_url):
        POST   /sessions                          -> {"handle": "..."}
        POST   /sessions/{handle}/commands        -> ack JSON
        GET    /sessions/{handle}/events/{type}   -> event JSON, 408 on timeout
        GET    /sessions/{handle}/errors          -> {"count": n}
        DELETE /sessions/{handle}
    """

    def __init__(self, base_url: str, timeout_seconds: float = 30.0, headers: Optional[Dict[str, str]] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.headers = headers or {}
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout_seconds),
                headers=self.headers,
            )
        return self._client

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        client = await self._get_client()
        try:
            response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise RuntimeBridgeError(f"Runner request timed out: {method} {path}") from e
        except httpx.RequestError as e:
            raise RuntimeBridgeError(f"Runner request failed: {method} {path}: {e}") from e
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        if response.status_code >= 400:
            raise RuntimeBridgeError(f"Runner returned {response.status_code}: {response.text[:200]}")
        try:
            return response.json()
        except ValueError as e:
            raise RuntimeBridgeError(f"Runner returned invalid JSON: {e}") from e

    async def launch(self, entry_url: str, context: LaunchContext) -> str:
        response = await self._request("POST", "/sessions", json={
            "entryUrl": entry_url,
            "gameId": context.game_id,
            "versionId": context.version_id,
            "userId": context.user_id,
            "sessionId": context.session_id,
        })
        handle = self._json(response).get("handle")
        if not handle:
            raise RuntimeBridgeError("Runner did not return a session handle")
        return str(handle)

    async def send_command(self, handle: str, command: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        response = await self._request(
            "POST", f"/sessions/{handle}/commands",
            json={"command": command, "payload": payload or {}},
        )
        return self._json(response)

    async def await_event(self, handle: str, event_type: GameEventType, timeout_ms: int) -> GameEvent:
        # Long-poll: the HTTP timeout must outlive the event budget.
        response = await self._request(
            "GET", f"/sessions/{handle}/events/{event_type.value}",
            params={"timeoutMs": timeout_ms},
            timeout=timeout_ms / 1000 + self.timeout_seconds,
        )
        if response.status_code == 408:
            raise BridgeTimeoutError(event_type, timeout_ms)
        data = self._json(response)
        return GameEvent(
            type=event_type,
            timestamp=datetime.utcnow(),
            data=data.get("data"),
            duration_ms=data.get("durationMs"),
        )

    async def error_count(self, handle: str) -> int:
        response = await self._request("GET", f"/sessions/{handle}/errors")
        return int(self._json(response).get("count", 0))

    async def close(self, handle: str) -> None:
        response = await self._request("DELETE", f"/sessions/{handle}")
        if response.status_code >= 400 and response.status_code != 404:
            raise RuntimeBridgeError(f"Runner failed to close session {handle}: {response.status_code}")

    async def aclose(self) -> None:
        """Release the underlying HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()


# =============================================================================
# IN-MEMORY IMPLEMENTATION
# =============================================================================

class VirtualClock:
    """Monotonic clock in seconds that only moves when advanced."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class GameScript:
    """
    How the scripted game behaves.

    Delays are measured from the command that triggers them:
    ready/assets/result from "init", complete from "quit".
    A delay of None means the event never arrives.
    """
    ready_delay_ms: Optional[int] = 200
    assets_delay_ms: Optional[int] = 800
    complete_delay_ms: Optional[int] = 100
    raw_result: Any = field(default_factory=lambda: {"score": 80, "maxScore": 100, "completed": True})
    # Console errors raised by the game after init.
    internal_errors: int = 0
    # Attempt ids returned for successive submit_result commands; cycled when exhausted.
    attempt_ids: List[str] = field(default_factory=list)
    # Rows the backend ends up holding per session after a burst (None: one per distinct attempt id).
    persisted_records: Optional[int] = 1
    # Command/method name -> exception to raise.
    failures: Dict[str, Exception] = field(default_factory=dict)
    # Events listed here block forever (until cancelled) instead of timing out.
    hang_on: List[GameEventType] = field(default_factory=list)


class InMemoryRuntimeBridge(RuntimeBridge):
    """
    Scripted runtime. Tracks submissions so a record store can count them.

    on_submit, when given, is called as on_submit(context, attempt_id, payload)
    for every submit_result, the way a real game posts to the results API.
    """

    def __init__(
        self,
        script: Optional[GameScript] = None,
        clock: Optional[VirtualClock] = None,
        on_submit: Optional[Callable[[LaunchContext, str, Dict[str, Any]], Any]] = None,
    ):
        self.script = script or GameScript()
        self.clock = clock or VirtualClock()
        self.on_submit = on_submit
        self._handles = itertools.count(1)
        self._sessions: Dict[str, Dict[str, Any]] = {}
        self.closed: List[str] = []

    def _maybe_fail(self, name: str) -> None:
        failure = self.script.failures.get(name)
        if failure is not None:
            raise failure

    def _session(self, handle: str) -> Dict[str, Any]:
        if handle not in self._sessions:
            raise RuntimeBridgeError(f"Unknown session handle: {handle}")
        return self._sessions[handle]

    def submitted_attempts(self, handle: str) -> List[str]:
        return list(self._session(handle)["attempts"])

    def records_for(self, game_id: str, version_id: str, session_id: Optional[str] = None) -> int:
        """What a backend would hold after the scripted submissions."""
        total = 0
        for session in self._sessions.values():
            ctx: LaunchContext = session["context"]
            if ctx.game_id != game_id or ctx.version_id != version_id:
                continue
            if session_id is not None and ctx.session_id != session_id:
                continue
            if not session["attempts"]:
                continue
            if self.script.persisted_records is None:
                total += len(set(session["attempts"]))
            else:
                total += self.script.persisted_records
        return total

    async def launch(self, entry_url: str, context: LaunchContext) -> str:
        self._maybe_fail("launch")
        handle = f"mem-{next(self._handles)}"
        self._sessions[handle] = {
            "context": context,
            "entry_url": entry_url,
            "triggers": {},
            "attempts": [],
        }
        return handle

    async def send_command(self, handle: str, command: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        self._maybe_fail(command)
        session = self._session(handle)
        await asyncio.sleep(0)
        if command in ("init", "quit"):
            session["triggers"][command] = self.clock()
            return {"ok": True, "command": command}
        if command == "submit_result":
            ids = self.script.attempt_ids
            index = len(session["attempts"])
            attempt_id = ids[index % len(ids)] if ids else f"{handle}-attempt-{index + 1}"
            session["attempts"].append(attempt_id)
            if self.on_submit is not None:
                self.on_submit(session["context"], attempt_id, dict(payload or {}))
            return {"ok": True, "attemptId": attempt_id}
        raise RuntimeBridgeError(f"Unknown command: {command}")

    def _schedule(self, event_type: GameEventType):
        script = self.script
        return {
            GameEventType.READY: ("init", script.ready_delay_ms, None),
            GameEventType.ASSETS_LOADED: ("init", script.assets_delay_ms, None),
            GameEventType.RESULT: ("init", script.ready_delay_ms, script.raw_result),
            GameEventType.COMPLETE: ("quit", script.complete_delay_ms, None),
        }.get(event_type)

    async def await_event(self, handle: str, event_type: GameEventType, timeout_ms: int) -> GameEvent:
        self._maybe_fail(f"await_{event_type.value.lower()}")
        session = self._session(handle)

        if event_type in self.script.hang_on:
            await asyncio.Event().wait()

        schedule = self._schedule(event_type)
        trigger_at = session["triggers"].get(schedule[0]) if schedule else None
        if schedule is None or trigger_at is None or schedule[1] is None:
            self.clock.advance(timeout_ms / 1000)
            raise BridgeTimeoutError(event_type, timeout_ms)

        _, delay_ms, data = schedule
        due = trigger_at + delay_ms / 1000
        wait = max(0.0, due - self.clock())
        if wait * 1000 > timeout_ms:
            self.clock.advance(timeout_ms / 1000)
            raise BridgeTimeoutError(event_type, timeout_ms)

        self.clock.advance(wait)
        await asyncio.sleep(0)
        return GameEvent(
            type=event_type,
            timestamp=datetime.utcnow(),
            data=data,
            duration_ms=delay_ms,
        )

    async def error_count(self, handle: str) -> int:
        self._maybe_fail("error_count")
        # Scripted errors surface once the game has been initialised.
        if "init" not in self._session(handle)["triggers"]:
            return 0
        return self.script.internal_errors

    async def close(self, handle: str) -> None:
        self.closed.append(handle)
