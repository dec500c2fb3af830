"""Live build-log registry -- one WebSocket subscriber per build id.

Running pipelines push their console output through ``deliver()``; the
``/api/logs/{build_id}`` endpoint puts the viewer's socket in with
``register()``.  Output produced while nobody is subscribed is dropped,
there is no replay buffer.
"""

import asyncio
import logging

from tinyci.config import settings

logger = logging.getLogger(__name__)

# Final frame sent to a subscriber before its socket is closed
BUILD_COMPLETE = "BUILD_COMPLETE"


class LogSinkRegistry:
    """Maps build ids to the single live subscriber for that build.

    The lock is held for the map mutation plus at most one frame send, so
    frames for one build reach the socket in delivery order and a replaced
    subscriber never sees frames meant for its successor.
    """

    def __init__(self, send_timeout: float | None = None) -> None:
        self._subscribers: dict[str, object] = {}  # build_id -> websocket
        self._lock = asyncio.Lock()
        self._send_timeout = send_timeout or settings.WS_SEND_TIMEOUT_SECONDS

    def __len__(self) -> int:
        return len(self._subscribers)

    def has_subscriber(self, build_id: str) -> bool:
        """Return whether a subscriber is registered for *build_id* (lock-free)."""
        return build_id in self._subscribers

    async def register(self, build_id: str, websocket) -> None:  # noqa: ANN001
        """Attach *websocket* to *build_id*, replacing any previous subscriber."""
        async with self._lock:
            previous = self._subscribers.get(build_id)
            self._subscribers[build_id] = websocket
        if previous is not None and previous is not websocket:
            logger.info("Log subscriber for build %s replaced", build_id[:8])

    async def deliver(self, build_id: str, data: bytes | str) -> None:
        """Forward *data* to the build's subscriber; no-op if there is none.

        A subscriber whose send fails or times out is dropped and its socket
        closed with 1011, so the viewer is not left waiting for a sentinel
        that will never come.  Nothing is raised back to the caller.
        """
        text = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data
        if not text:
            return
        async with self._lock:
            websocket = self._subscribers.get(build_id)
            if websocket is None:
                return
            try:
                await asyncio.wait_for(websocket.send_text(text), timeout=self._send_timeout)
            except Exception as exc:
                logger.warning("Dropping log subscriber for build %s: %s", build_id[:8], exc)
                if self._subscribers.get(build_id) is websocket:
                    del self._subscribers[build_id]
                await self._close_quietly(build_id, websocket, code=1011)

    async def complete_and_close(self, build_id: str) -> None:
        """Send the completion sentinel, close the socket and forget it."""
        async with self._lock:
            websocket = self._subscribers.pop(build_id, None)
            if websocket is None:
                return
            try:
                await asyncio.wait_for(
                    websocket.send_text(BUILD_COMPLETE), timeout=self._send_timeout,
                )
            except Exception as exc:
                logger.warning("Could not send completion to build %s: %s", build_id[:8], exc)
            await self._close_quietly(build_id, websocket)

    async def deregister(self, build_id: str) -> None:
        """Forget the subscriber for *build_id* without notifying it."""
        async with self._lock:
            self._subscribers.pop(build_id, None)

    async def discard(self, build_id: str, websocket) -> None:  # noqa: ANN001
        """Forget *websocket* if it is still the registered subscriber.

        Used when the remote side disconnects, so a newer subscriber for
        the same build is left alone.
        """
        async with self._lock:
            if self._subscribers.get(build_id) is websocket:
                del self._subscribers[build_id]

    async def _close_quietly(self, build_id: str, websocket, code: int = 1000) -> None:  # noqa: ANN001
        try:
            await asyncio.wait_for(websocket.close(code=code), timeout=self._send_timeout)
        except Exception:
            logger.debug("Close failed for build %s subscriber", build_id[:8], exc_info=True)
