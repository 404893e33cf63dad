"""
Short-lived conversation state for administrators.
"""

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class AdminStep(str, Enum):
    """Steps of multi-message admin dialogs."""
    awaiting_faq_text = "awaiting_faq_text"


@dataclass
class AdminSession:
    step: AdminStep
    started_at: float


class AdminSessionStore:
    """Dialog state keyed by administrator id, expiring after `ttl` seconds."""

    def __init__(self, ttl: float = 600.0, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: dict[int, AdminSession] = {}

    def begin(self, admin_id: int, step: AdminStep) -> None:
        with self._lock:
            self._sessions[admin_id] = AdminSession(step=step, started_at=self._clock())

    def current(self, admin_id: int) -> Optional[AdminStep]:
        """Active step for an administrator, or None if absent or expired."""
        with self._lock:
            session = self._sessions.get(admin_id)
            if session is None:
                return None
            if self._clock() - session.started_at > self.ttl:
                del self._sessions[admin_id]
                logger.debug("Admin session of %s expired", admin_id)
                return None
            return session.step

    def clear(self, admin_id: int) -> bool:
        """Drop an administrator's state. Returns True if there was any."""
        with self._lock:
            return self._sessions.pop(admin_id, None) is not None
