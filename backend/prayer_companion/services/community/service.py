"""Community prayer wall.

Anonymous prayer intentions that other visitors can "pray for". State lives
in three small JSON files inside a data directory (the temp dir by default):

- ``prayers.json``:             the board, newest first, capped at 500
- ``prayer-rate-limits.json``:  submissions per client in a 24h window
- ``pray-rate-limits.json``:    ids each client has already prayed for

Unreadable files load as empty and failed writes are logged; the board is
a convenience feature and must not take the API down with it.
"""

import asyncio
import json
import logging
import random
import string
import tempfile
import time
from pathlib import Path
from typing import Any, Callable

from prayer_companion.models import PrayerRequest

logger = logging.getLogger(__name__)


class CommunityError(Exception):
    """Base class for prayer wall errors."""


class InvalidPrayerRequest(CommunityError):
    """Submitted intention or religion failed validation."""


class PrayerNotFound(CommunityError):
    """No prayer request with the given id."""


class RateLimitExceeded(CommunityError):
    """The client already submitted the daily maximum."""


class AlreadyPrayed(CommunityError):
    """The client already prayed for this request."""


class CommunityPrayerService:
    """Flat-file prayer wall with per-client limits."""

    MAX_INTENTION_LENGTH = 280
    MAX_STORED_REQUESTS = 500
    LIST_LIMIT = 50
    MAX_SUBMISSIONS_PER_DAY = 3
    MAX_REMEMBERED_PER_CLIENT = 1000
    DAY_SECONDS = 24 * 60 * 60

    def __init__(
        self,
        data_dir: str | Path | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._data_dir = Path(data_dir or tempfile.gettempdir())
        self._prayers_file = self._data_dir / "prayers.json"
        self._submit_limits_file = self._data_dir / "prayer-rate-limits.json"
        self._pray_limits_file = self._data_dir / "pray-rate-limits.json"
        self._clock = clock
        self._lock = asyncio.Lock()

    # ── File helpers ──────────────────────────────────────────────────

    async def _load(self, path: Path, default: Any) -> Any:
        def _read() -> Any:
            if not path.exists():
                return default
            return json.loads(path.read_text(encoding="utf-8"))

        try:
            data = await asyncio.to_thread(_read)
        except (OSError, ValueError) as e:
            logger.warning(f"[COMMUNITY] Error loading {path.name}: {e}")
            return default
        return data if isinstance(data, type(default)) else default

    async def _save(self, path: Path, data: Any) -> None:
        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(data, indent=2), encoding="utf-8")

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            logger.warning(f"[COMMUNITY] Error saving {path.name}: {e}")

    async def _load_requests(self) -> list[PrayerRequest]:
        requests: list[PrayerRequest] = []
        for item in await self._load(self._prayers_file, []):
            try:
                requests.append(PrayerRequest.model_validate(item))
            except ValueError:
                logger.info("[COMMUNITY] Skipping malformed prayer request")
        return requests

    async def _save_requests(self, requests: list[PrayerRequest]) -> None:
        await self._save(self._prayers_file, [r.model_dump(mode="json") for r in requests])

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _generate_id(self) -> str:
        suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=7))
        return f"prayer_{self._now_ms()}_{suffix}"

    # ── Operations ────────────────────────────────────────────────────

    async def list_requests(self, limit: int | None = None) -> tuple[list[PrayerRequest], int]:
        """Return the newest requests and the total number on the board."""
        limit = self.LIST_LIMIT if limit is None else limit
        requests = await self._load_requests()
        return requests[:limit], len(requests)

    async def submit(
        self, client_id: str, intention: str, religion: str
    ) -> tuple[PrayerRequest, int]:
        """Post a new intention.

        Returns:
            The stored request and how many submissions the client has left today.

        Raises:
            InvalidPrayerRequest: Empty or over-long intention, or no religion.
            RateLimitExceeded: The client has used up today's submissions.
        """
        trimmed = (intention or "").strip()
        if not trimmed:
            raise InvalidPrayerRequest("Intention cannot be empty")
        if len(trimmed) > self.MAX_INTENTION_LENGTH:
            raise InvalidPrayerRequest(
                f"Intention cannot exceed {self.MAX_INTENTION_LENGTH} characters"
            )
        if not religion or not religion.strip():
            raise InvalidPrayerRequest("Religion is required")

        async with self._lock:
            remaining = await self._consume_submission(client_id)

            request = PrayerRequest(
                id=self._generate_id(),
                intention=trimmed,
                religion=religion.strip(),
                is_anonymous=True,
                timestamp=self._now_ms(),
                prayer_count=0,
            )
            requests = await self._load_requests()
            requests.insert(0, request)
            await self._save_requests(requests[: self.MAX_STORED_REQUESTS])

        logger.info(f"[COMMUNITY] New prayer request {request.id} ({request.religion})")
        return request, remaining

    async def pray_for(self, client_id: str, prayer_id: str) -> int:
        """Add one prayer to a request. Returns the new prayer count.

        Raises:
            AlreadyPrayed: This client already prayed for the request.
            PrayerNotFound: No request has this id.
        """
        async with self._lock:
            limits: dict[str, list[str]] = await self._load(self._pray_limits_file, {})
            prayed_for = limits.get(client_id)
            if not isinstance(prayed_for, list):
                prayed_for = []
            if prayer_id in prayed_for:
                raise AlreadyPrayed("You have already prayed for this intention")

            requests = await self._load_requests()
            for request in requests:
                if request.id == prayer_id:
                    break
            else:
                raise PrayerNotFound(f"Prayer not found: {prayer_id}")

            request.prayer_count += 1
            await self._save_requests(requests)

            prayed_for.append(prayer_id)
            limits[client_id] = prayed_for[-self.MAX_REMEMBERED_PER_CLIENT:]
            await self._save(self._pray_limits_file, limits)

        return request.prayer_count

    async def _consume_submission(self, client_id: str) -> int:
        """Count one submission against the client's window; return what is left."""
        limits: dict[str, dict[str, float]] = await self._load(self._submit_limits_file, {})
        now = self._clock()
        entry = limits.get(client_id)
        try:
            count = int(entry["count"])
            reset_time = float(entry["reset_time"])
        except (TypeError, KeyError, ValueError):
            # Missing or unreadable window: start a new one.
            count, reset_time = 0, 0.0

        if now > reset_time:
            limits[client_id] = {"count": 1, "reset_time": now + self.DAY_SECONDS}
            await self._save(self._submit_limits_file, limits)
            return self.MAX_SUBMISSIONS_PER_DAY - 1

        if count >= self.MAX_SUBMISSIONS_PER_DAY:
            raise RateLimitExceeded(
                f"Rate limit exceeded. You can submit up to "
                f"{self.MAX_SUBMISSIONS_PER_DAY} prayer requests per day."
            )

        limits[client_id] = {"count": count + 1, "reset_time": reset_time}
        await self._save(self._submit_limits_file, limits)
        return self.MAX_SUBMISSIONS_PER_DAY - count - 1
