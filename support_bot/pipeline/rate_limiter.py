"""
Per-identity request throttling with short and long windows.
Breaching the long window blocks the user in the store and schedules an
automatic unblock; breaching the short window only rejects the request.
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from ..db.repository import SupportRepository

logger = logging.getLogger(__name__)


@dataclass
class RateWindow:
    """Request counter for one identity in one window."""
    count: int
    started_at: float


class AbuseRateLimiter:
    """
    Enforces short- and long-window request caps per chat identity.

    Counters live in process memory and are rebuilt empty on restart.
    The pending automatic unblocks are not persisted either: a user blocked
    right before a restart stays blocked until an administrator unblocks them.
    """

    def __init__(
        self,
        repository: SupportRepository,
        short_limit: int = 5,
        short_window: float = 60.0,
        long_limit: int = 20,
        long_window: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the limiter.

        Args:
            repository: Store used to read and persist the blocked flag
            short_limit: Requests allowed per short window
            short_window: Short window length in seconds
            long_limit: Requests allowed per long window
            long_window: Long window length in seconds; also the block duration
            clock: Monotonic time source in seconds
        """
        self.repository = repository
        self.short_limit = short_limit
        self.short_window = short_window
        self.long_limit = long_limit
        self.long_window = long_window
        self._clock = clock

        self._lock = threading.Lock()
        self._short: dict[str, RateWindow] = {}
        self._long: dict[str, RateWindow] = {}
        self._unblock_tasks: dict[int, asyncio.Task] = {}

    async def check_limit(self, identity: str) -> bool:
        """
        Record a request for an identity and decide whether to reject it.

        Args:
            identity: External chat identity

        Returns:
            True if the request must be rejected
        """
        try:
            user = await self.repository.get_user_by_identity(identity)
        except Exception as e:
            logger.error("Error reading user %s in rate limiter: %s", identity, e)
            return False

        if user is not None and user.is_blocked:
            return True

        long_exceeded, short_exceeded = self._record_hit(identity)

        if long_exceeded:
            logger.warning("User %s exceeded long-window request limit (%d)", identity, self.long_limit)
            if user is not None:
                try:
                    await self.repository.set_blocked(user.id, True)
                except Exception as e:
                    logger.error("Error blocking user %s: %s", identity, e)
                    return False
                self.schedule_unblock(user.id, identity)
            return True

        if short_exceeded:
            logger.warning("User %s exceeded short-window request limit (%d)", identity, self.short_limit)
            return True

        return False

    def _record_hit(self, identity: str) -> tuple[bool, bool]:
        """Update both windows atomically. Returns (long_exceeded, short_exceeded)."""
        with self._lock:
            now = self._clock()
            long_window = self._bump(self._long, identity, now, self.long_window)
            short_window = self._bump(self._short, identity, now, self.short_window)
            return long_window.count > self.long_limit, short_window.count > self.short_limit

    @staticmethod
    def _bump(windows: dict[str, RateWindow], identity: str, now: float, length: float) -> RateWindow:
        window = windows.get(identity)
        if window is None or now - window.started_at > length:
            window = RateWindow(count=1, started_at=now)
            windows[identity] = window
        else:
            window.count += 1
        return window

    def schedule_unblock(self, user_id: int, identity: Optional[str] = None) -> asyncio.Task:
        """Schedule an automatic unblock after the long window elapses."""
        self.cancel_unblock(user_id)
        task = asyncio.create_task(self._unblock_later(user_id, identity or str(user_id)))
        self._unblock_tasks[user_id] = task
        task.add_done_callback(lambda done: self._forget_task(user_id, done))
        return task

    def cancel_unblock(self, user_id: int) -> bool:
        """Cancel a pending automatic unblock. Returns True if one was pending."""
        task = self._unblock_tasks.pop(user_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def pending_unblocks(self) -> list[int]:
        """Ids of users with a scheduled automatic unblock."""
        return [user_id for user_id, task in self._unblock_tasks.items() if not task.done()]

    def _forget_task(self, user_id: int, task: asyncio.Task) -> None:
        if self._unblock_tasks.get(user_id) is task:
            del self._unblock_tasks[user_id]

    async def _unblock_later(self, user_id: int, identity: str) -> None:
        await asyncio.sleep(self.long_window)
        try:
            await self.repository.set_blocked(user_id, False)
        except Exception as e:
            logger.error("Error unblocking user %s: %s", identity, e)
            return
        with self._lock:
            self._long.pop(identity, None)
            self._short.pop(identity, None)
        logger.info("User %s has been automatically unblocked", identity)

    def reset(self, identity: str) -> None:
        """Forget the counters of one identity."""
        with self._lock:
            self._long.pop(identity, None)
            self._short.pop(identity, None)

    async def aclose(self) -> None:
        """Cancel every pending unblock task."""
        tasks = [task for task in self._unblock_tasks.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._unblock_tasks.clear()
