"""Cooperative cancellation for prayer fetches.

A ``CancellationToken`` is handed to a fetch by its caller; raising it
stops the fetch at the next checkpoint, wakes it from a backoff sleep and
abandons an in-flight generator call. ``RequestCoordinator`` gives each
session last-request-wins semantics: starting a request cancels the
session's previous one.
"""

import asyncio
import logging

from prayer_companion.models import FetchCancelled

logger = logging.getLogger(__name__)


class CancellationToken:
    """One-shot cancellation signal shared between a caller and a fetch."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str = "cancelled by caller") -> None:
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise FetchCancelled(self._reason or "cancelled")

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        await self._event.wait()

    async def sleep(self, seconds: float) -> None:
        """Sleep for ``seconds``, returning early if the token is cancelled."""
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass


class RequestCoordinator:
    """Tracks the in-flight token of each session."""

    def __init__(self) -> None:
        self._tokens: dict[str, CancellationToken] = {}

    def __len__(self) -> int:
        return len(self._tokens)

    def begin(self, session_id: str) -> CancellationToken:
        """Cancel the session's previous request and return a fresh token."""
        previous = self._tokens.get(session_id)
        if previous is not None and not previous.cancelled:
            logger.info(f"[FETCH] Session {session_id}: superseding in-flight request")
            previous.cancel("superseded by a newer request")
        token = CancellationToken()
        self._tokens[session_id] = token
        return token

    def finish(self, session_id: str, token: CancellationToken) -> None:
        """Forget ``token`` unless a newer request already replaced it."""
        if self._tokens.get(session_id) is token:
            del self._tokens[session_id]

    def cancel_all(self, reason: str = "service shutting down") -> None:
        for token in self._tokens.values():
            token.cancel(reason)
        self._tokens.clear()
