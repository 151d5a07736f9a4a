"""
In-memory trial quota meter.

One entry per trial id, kept for the process lifetime. Updates for a key are
serialized by that key's own lock, so traffic for different trial ids never
contends.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from .config import Settings
from .errors import QuotaExceeded

logger = logging.getLogger("fact_checking")


@dataclass(frozen=True)
class TrialUsageState:
    used_tokens: int
    last_updated: datetime


@dataclass(frozen=True)
class TrialQuotaSnapshot:
    limit_tokens: int
    used_tokens: int
    remaining_tokens: int
    exhausted: bool


class TrialQuotaMeter:
    def __init__(self, settings: Settings):
        self.settings = settings
        self._usage: dict[str, TrialUsageState] = {}
        self._locks: dict[str, threading.Lock] = {}

    @property
    def token_limit(self) -> int:
        return max(1, self.settings.trial_token_limit)

    def is_enabled_for(self, provider: str) -> bool:
        if not self.settings.trial_enabled or not self.api_key():
            return False
        return (self.settings.trial_provider or "").strip().lower() == (provider or "").strip().lower()

    def api_key(self) -> Optional[str]:
        key = (self.settings.trial_api_key or "").strip()
        return key or None

    def get_snapshot(self, trial_id: Optional[str]) -> TrialQuotaSnapshot:
        limit = self.token_limit
        if not trial_id or not trial_id.strip():
            return TrialQuotaSnapshot(limit, 0, limit, True)
        state = self._usage.get(trial_id.strip())
        return self._snapshot(state.used_tokens if state else 0)

    def ensure_can_use(self, trial_id: Optional[str]) -> None:
        snapshot = self.get_snapshot(trial_id)
        if snapshot.exhausted:
            logger.info("Trial quota exhausted: used=%s limit=%s", snapshot.used_tokens, snapshot.limit_tokens)
            raise QuotaExceeded(snapshot.limit_tokens)

    def add_usage(self, trial_id: Optional[str], tokens: int) -> TrialQuotaSnapshot:
        """
        Atomically charge `tokens` to `trial_id` and return the post-update snapshot.

        A charge that would push usage past the limit is not granted: the entry
        is pinned at the limit (usage stays monotonic) and QuotaExceeded is raised.
        This also holds for a first charge larger than the whole limit: the
        caller's completed LLM result is discarded and the trial is exhausted.
        """
        if not trial_id or not trial_id.strip():
            return self.get_snapshot(trial_id)

        key = trial_id.strip()
        charge = max(0, tokens)
        limit = self.token_limit
        now = datetime.now(timezone.utc)

        with self._lock_for(key):
            current = self._usage.get(key)
            used = current.used_tokens if current else 0
            if used + charge > limit:
                self._usage[key] = TrialUsageState(used_tokens=limit, last_updated=now)
                logger.info("Trial usage rejected: used=%s charge=%s limit=%s", used, charge, limit)
                raise QuotaExceeded(limit)

            self._usage[key] = TrialUsageState(used_tokens=used + charge, last_updated=now)
            snapshot = self._snapshot(used + charge)

        logger.info(
            "Trial usage updated: charge=%s used=%s remaining=%s",
            charge,
            snapshot.used_tokens,
            snapshot.remaining_tokens,
        )
        return snapshot

    def clear(self) -> None:
        self._usage.clear()
        self._locks.clear()

    def _lock_for(self, key: str) -> threading.Lock:
        # dict.setdefault is atomic, so two callers always agree on the lock
        return self._locks.setdefault(key, threading.Lock())

    def _snapshot(self, used: int) -> TrialQuotaSnapshot:
        limit = self.token_limit
        remaining = max(0, limit - used)
        return TrialQuotaSnapshot(limit, used, remaining, remaining <= 0)
