"""Resilient prayer fetcher.

Runs one logical "get prayers for this situation" operation:

    IDLE → CHECK_CACHE ─hit─→ DONE
                 └─miss─→ SEARCHING → GENERATING → FINALIZING → DONE
                              ↑                         │
                              └──── RETRY_WAIT ←────────┘ (transient failure)

- Transient failures are retried up to ``max_attempts`` with exponential
  backoff: delay before attempt n (n >= 2) = min(base * 2**(n-2), max).
- A response that fails shape validation is terminal (``InvalidResponse``).
- Cancellation is checked at every step, wakes the backoff sleep and
  abandons an in-flight generator call; it always surfaces as
  ``FetchCancelled`` and never writes to the cache.
- Successful results are stored in the cache before they are returned.
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from pydantic import ValidationError

from prayer_companion.config import Settings, get_settings
from prayer_companion.models import (
    FetchCancelled,
    FetchResult,
    InvalidResponse,
    LoadingPhase,
    PrayerFetchError,
    PrayerResult,
    TransientFailure,
)
from prayer_companion.services.cache import create_cache_storage
from prayer_companion.services.prayer_cache import PrayerCache
from prayer_companion.services.prayer_generator import (
    PrayerGeneratorService,
    create_prayer_generator,
)

from .cancellation import CancellationToken, RequestCoordinator

logger = logging.getLogger(__name__)

PhaseListener = Callable[[LoadingPhase], None]
SleepFn = Callable[[float, CancellationToken], Awaitable[None]]


class FetchState(str, Enum):
    """States a single fetch moves through."""

    IDLE = "idle"
    CHECK_CACHE = "check_cache"
    SEARCHING = "searching"
    GENERATING = "generating"
    FINALIZING = "finalizing"
    RETRY_WAIT = "retry_wait"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"


_PHASE_FOR_STATE = {
    FetchState.SEARCHING: LoadingPhase.SEARCHING,
    FetchState.GENERATING: LoadingPhase.GENERATING,
    FetchState.FINALIZING: LoadingPhase.FINALIZING,
}


@dataclass(frozen=True)
class BackoffPolicy:
    """Retry budget and delay schedule. Delays are in seconds."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    jitter: bool = False

    def delay_before(self, attempt: int) -> float:
        """Delay to wait before ``attempt`` (1-based). The first attempt never waits."""
        if attempt < 2:
            return 0.0
        delay = min(self.base_delay * 2 ** (attempt - 2), self.max_delay)
        if self.jitter:
            delay = random.uniform(delay / 2, delay)
        return delay


async def _token_sleep(delay: float, token: CancellationToken) -> None:
    await token.sleep(delay)


class _FetchRun:
    """Per-invocation bookkeeping: state, attempt count, phase listener."""

    def __init__(
        self,
        tradition: str,
        situation: str,
        token: CancellationToken,
        listener: Optional[PhaseListener],
    ) -> None:
        self.tradition = tradition
        self.situation = situation
        self.token = token
        self.listener = listener
        self.state = FetchState.IDLE
        self.attempt = 0

    def transition(self, state: FetchState) -> None:
        self.state = state
        logger.debug(f"[FETCH] {self.tradition!r}: → {state.value} (attempt {self.attempt})")
        phase = _PHASE_FOR_STATE.get(state)
        if phase is not None and self.listener is not None:
            try:
                self.listener(phase)
            except Exception as e:
                logger.warning(f"[FETCH] Phase listener raised on {phase.value}: {e}")


class PrayerFetcher:
    """Cache-first prayer retrieval with retry, backoff and cancellation.

    Build one with ``create_prayer_fetcher()`` (or directly, for tests) and
    call ``dispose()`` when done.
    """

    def __init__(
        self,
        generator: PrayerGeneratorService,
        cache: PrayerCache,
        backoff: BackoffPolicy | None = None,
        sleep: SleepFn | None = None,
    ) -> None:
        self._generator = generator
        self._cache = cache
        self._backoff = backoff or BackoffPolicy()
        self._sleep = sleep or _token_sleep
        self.sessions = RequestCoordinator()

    @property
    def cache(self) -> PrayerCache:
        return self._cache

    async def dispose(self) -> None:
        """Cancel in-flight requests and release the cache storage."""
        self.sessions.cancel_all()
        await self._cache.close()

    async def fetch_prayers(
        self,
        tradition: str,
        situation: str,
        on_phase_change: Optional[PhaseListener] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> FetchResult:
        """Return prayers for ``situation``, from cache when possible.

        Args:
            tradition: Tradition identifier, e.g. ``"Buddhism"``.
            situation: Free-text description of what the user is going through.
            on_phase_change: Called with each ``LoadingPhase`` as generation progresses.
            cancel_token: Raise it to abort the fetch.

        Raises:
            FetchCancelled: The token was raised before the fetch completed.
            InvalidResponse: The generator answered with an unusable payload.
            TransientFailure: Every attempt failed transiently.
        """
        run = _FetchRun(tradition, situation, cancel_token or CancellationToken(), on_phase_change)
        started = time.monotonic()
        try:
            run.token.raise_if_cancelled()
            run.transition(FetchState.CHECK_CACHE)
            cached = await self._cache.lookup(tradition, situation)
            run.token.raise_if_cancelled()
            if cached is not None:
                run.transition(FetchState.DONE)
                return FetchResult(
                    prayers=cached.prayers, sources=cached.sources, served_from_cache=True
                )

            result = await self._generate_with_retry(run)
            run.token.raise_if_cancelled()
            await self._cache.store(tradition, situation, result)
            run.transition(FetchState.DONE)
            logger.info(
                f"[FETCH] {tradition}: generated in {time.monotonic() - started:.2f}s "
                f"after {run.attempt} attempt(s)"
            )
            return FetchResult(prayers=result.prayers, sources=result.sources, served_from_cache=False)
        except FetchCancelled as e:
            run.transition(FetchState.CANCELLED)
            logger.info(f"[FETCH] {tradition}: cancelled ({e})")
            raise
        except PrayerFetchError as e:
            run.transition(FetchState.FAILED)
            logger.warning(f"[FETCH] {tradition}: {type(e).__name__}: {e}")
            raise

    async def _generate_with_retry(self, run: _FetchRun) -> PrayerResult:
        last_error: TransientFailure | None = None
        for attempt in range(1, self._backoff.max_attempts + 1):
            if attempt > 1:
                delay = self._backoff.delay_before(attempt)
                run.transition(FetchState.RETRY_WAIT)
                run.token.raise_if_cancelled()
                logger.info(
                    f"[FETCH] Retry {attempt}/{self._backoff.max_attempts} in {delay:.1f}s: {last_error}"
                )
                await self._sleep(delay, run.token)
                run.token.raise_if_cancelled()

            run.attempt = attempt
            try:
                return await self._attempt(run)
            except (FetchCancelled, InvalidResponse):
                raise
            except TransientFailure as e:
                last_error = e
            except Exception as e:
                last_error = TransientFailure(f"{type(e).__name__}: {e}")
                last_error.__cause__ = e

        raise TransientFailure(
            f"Gave up after {self._backoff.max_attempts} attempts: {last_error}",
            attempts=self._backoff.max_attempts,
        ) from last_error

    async def _attempt(self, run: _FetchRun) -> PrayerResult:
        run.token.raise_if_cancelled()
        run.transition(FetchState.SEARCHING)
        run.transition(FetchState.GENERATING)
        raw = await self._await_unless_cancelled(
            self._generator.generate(run.tradition, run.situation), run.token
        )
        run.token.raise_if_cancelled()
        run.transition(FetchState.FINALIZING)
        return self._finalize(raw)

    @staticmethod
    async def _await_unless_cancelled(
        coro: Awaitable[Any], token: CancellationToken
    ) -> Any:
        """Await ``coro``, abandoning it as soon as ``token`` is raised."""
        task = asyncio.ensure_future(coro)
        waiter = asyncio.ensure_future(token.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
        if task in done:
            return task.result()
        await asyncio.gather(task, return_exceptions=True)
        token.raise_if_cancelled()
        raise FetchCancelled("cancelled")

    @staticmethod
    def _finalize(raw: Any) -> PrayerResult:
        try:
            return PrayerResult.model_validate(raw)
        except ValidationError as e:
            raise InvalidResponse(
                f"Generated payload failed validation ({e.error_count()} errors): {e.errors()[0]['msg']}"
            ) from e


async def create_prayer_fetcher(
    settings: Settings | None = None,
    generator: PrayerGeneratorService | None = None,
) -> PrayerFetcher:
    """Build a fetcher wired from settings and connect its cache storage."""
    settings = settings or get_settings()
    generator = generator or create_prayer_generator(settings)
    storage = create_cache_storage(
        settings.cache_backend,
        path=settings.cache_path,
        redis_url=settings.redis_url,
    )
    cache = PrayerCache(
        storage=storage,
        max_entries=settings.cache_max_entries,
        ttl_seconds=settings.cache_ttl_seconds,
    )
    try:
        await cache.connect()
    except Exception as e:
        logger.warning(f"[CACHE] Storage connect failed, caching is best effort: {e}")
    backoff = BackoffPolicy(
        max_attempts=settings.fetch_max_attempts,
        base_delay=settings.fetch_base_delay,
        max_delay=settings.fetch_max_delay,
    )
    return PrayerFetcher(
        generator=generator,
        cache=cache,
        backoff=backoff,
    )
