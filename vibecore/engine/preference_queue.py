"""Redis-backed append-only queue of PreferenceSignal records.

Capacity-bounded: every append is RPUSH + LTRIM in one MULTI/EXEC, so
concurrent writers can never leave more than PREFERENCE_QUEUE_CAP entries
and the oldest entries are the ones dropped. Draining pops from the
front, FIFO, in batches.
"""

from __future__ import annotations

import inspect
import json
import logging
from typing import Any, Callable, Optional

import redis

from vibecore.config.settings import (
    PREFERENCE_BATCH_SIZE,
    PREFERENCE_QUEUE_CAP,
    PREFERENCE_QUEUE_KEY,
    REDIS_URL,
)
from vibecore.models.preference import PreferenceSignal

logger = logging.getLogger(__name__)


def _get_redis() -> redis.Redis:
    return redis.Redis.from_url(REDIS_URL, decode_responses=True)


class PreferenceQueue:
    def __init__(
        self,
        r: redis.Redis | None = None,
        key: str = PREFERENCE_QUEUE_KEY,
        cap: int = PREFERENCE_QUEUE_CAP,
    ):
        self._r = r or _get_redis()
        self._key = key
        self._cap = cap

    def append(self, signal: PreferenceSignal) -> int:
        """Append one record, evicting from the front past the cap. Returns new size."""
        return self.extend([signal])

    def extend(self, signals: list[PreferenceSignal]) -> int:
        if not signals:
            return self.size()
        with self._r.pipeline(transaction=True) as pipe:
            pipe.rpush(self._key, *(s.to_json() for s in signals))
            pipe.ltrim(self._key, -self._cap, -1)
            pipe.llen(self._key)
            _, _, size = pipe.execute()
        return size

    def size(self) -> int:
        return self._r.llen(self._key)

    def peek(self, count: int = PREFERENCE_BATCH_SIZE) -> list[PreferenceSignal]:
        """Oldest `count` records without removing them."""
        raw = self._r.lrange(self._key, 0, count - 1)
        return [PreferenceSignal.from_json(item) for item in raw]

    def drain(self, batch_size: int = PREFERENCE_BATCH_SIZE) -> list[PreferenceSignal]:
        """Remove and return the oldest batch."""
        with self._r.pipeline(transaction=True) as pipe:
            pipe.lrange(self._key, 0, batch_size - 1)
            pipe.ltrim(self._key, batch_size, -1)
            raw, _ = pipe.execute()
        return [PreferenceSignal.from_json(item) for item in raw]

    def requeue_front(self, signals: list[PreferenceSignal]) -> None:
        """Put a batch back at the head, preserving its order.

        Records appended meanwhile are newer than the batch, so if the cap
        is exceeded the oldest entries (the batch first) are the ones dropped.
        """
        if not signals:
            return
        with self._r.pipeline(transaction=True) as pipe:
            pipe.lpush(self._key, *(s.to_json() for s in reversed(signals)))
            pipe.ltrim(self._key, -self._cap, -1)
            pipe.execute()

    async def drain_to(
        self,
        upload: Callable[[list[PreferenceSignal]], Any],
        batch_size: int = PREFERENCE_BATCH_SIZE,
        max_batches: Optional[int] = None,
    ) -> int:
        """Drain batches into `upload` until empty. Returns records uploaded.

        If an upload raises, that batch goes back to the front of the queue
        and the error propagates.
        """
        uploaded = 0
        batches = 0
        while max_batches is None or batches < max_batches:
            batch = self.drain(batch_size)
            if not batch:
                break
            try:
                result = upload(batch)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.warning(f"Preference upload failed, re-queued {len(batch)} records")
                self.requeue_front(batch)
                raise
            uploaded += len(batch)
            batches += 1
        logger.info(f"Uploaded {uploaded} preference signals in {batches} batches")
        return uploaded

    # ── JSON form ──

    def export_json(self) -> str:
        """Whole queue as a JSON list, oldest first."""
        raw = self._r.lrange(self._key, 0, -1)
        return json.dumps([json.loads(item) for item in raw])

    def import_json(self, payload: str) -> int:
        records = [PreferenceSignal.from_dict(d) for d in json.loads(payload)]
        return self.extend(records)
