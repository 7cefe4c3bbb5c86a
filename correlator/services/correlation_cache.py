"""
Persistent cache of correlation and combination results.

Freshness is measured from `computed_at`: reads never extend an entry's
life. Expired entries are a miss on `get` and are physically removed by
`cleanup_expired` (run from the scheduled batch).

The range tag part of a key also carries the options that change a result
(minimum sample size, combination thresholds and caps), so requests made
with different options never share an entry.
"""

import logging
from abc import ABC, abstractmethod
from typing import Sequence

from sqlalchemy.orm import Session

from correlator.config import settings
from correlator.models import CorrelationCacheEntry
from correlator.services.clock import Clock, now_ms
from correlator.services.schemas import (
    CacheEntry,
    CacheKey,
    CauseKind,
    CombinationEffect,
    CombinationOptions,
    CorrelationResult,
)
from correlator.services.window_scorer import HOUR_MS

logger = logging.getLogger(__name__)

COMBINATIONS_CAUSE = "combinations"


def cause_key(cause_kind: CauseKind, cause_id: str) -> str:
    return f"{cause_kind.value}:{cause_id}"


def correlation_key(
    user_id: str, cause_kind: CauseKind, cause_id: str, effect_id: str, time_range_tag: str
) -> CacheKey:
    return CacheKey(
        user_id=user_id,
        cause_id=cause_key(cause_kind, cause_id),
        effect_id=effect_id,
        time_range_tag=time_range_tag,
    )


def combinations_key(user_id: str, effect_id: str, time_range_tag: str) -> CacheKey:
    return CacheKey(
        user_id=user_id,
        cause_id=COMBINATIONS_CAUSE,
        effect_id=effect_id,
        time_range_tag=time_range_tag,
    )


def correlation_tag(time_range_tag: str, min_sample_size: int) -> str:
    """Cache tag for a pair result: the range tag plus the options that shape it."""
    return f"{time_range_tag}|ms{min_sample_size}"


def combinations_tag(time_range_tag: str, options: CombinationOptions) -> str:
    return (
        f"{time_range_tag}|ms{options.min_sample_size}|t{options.synergy_threshold!r}"
        f"|p{options.max_pairs}|s{options.max_combination_size}"
    )


def result_from_entry(entry: CacheEntry) -> CorrelationResult:
    return CorrelationResult.model_validate(entry.payload)


def combinations_from_entry(entry: CacheEntry) -> list[CombinationEffect]:
    return [CombinationEffect.model_validate(c) for c in entry.payload["combinations"]]


class CorrelationCache(ABC):
    """Cache contract used by the orchestration service."""

    @abstractmethod
    async def get(self, key: CacheKey) -> CacheEntry | None: ...

    @abstractmethod
    async def set(
        self, result: CorrelationResult, user_id: str, time_range_tag: str
    ) -> CacheEntry: ...

    @abstractmethod
    async def set_combinations(
        self,
        combinations: Sequence[CombinationEffect],
        user_id: str,
        effect_id: str,
        time_range_tag: str,
        computed_at: int,
    ) -> CacheEntry: ...

    @abstractmethod
    async def cleanup_expired(self, user_id: str) -> int: ...

    @abstractmethod
    async def invalidate(
        self, user_id: str, cause_id: str | None = None, effect_id: str | None = None
    ) -> int: ...

    @abstractmethod
    async def stats(self, user_id: str) -> dict: ...


class SqlCorrelationCache(CorrelationCache):
    """CorrelationCache stored in the correlation_cache table."""

    def __init__(self, db: Session, ttl_ms: int | None = None, clock: Clock | None = None):
        self.db = db
        self.ttl_ms = (
            ttl_ms if ttl_ms is not None else settings.correlation_cache_ttl_hours * HOUR_MS
        )
        self.clock = clock or now_ms

    def _query_key(self, key: CacheKey):
        return self.db.query(CorrelationCacheEntry).filter(
            CorrelationCacheEntry.user_id == key.user_id,
            CorrelationCacheEntry.cause_id == key.cause_id,
            CorrelationCacheEntry.effect_id == key.effect_id,
            CorrelationCacheEntry.time_range_tag == key.time_range_tag,
        )

    async def get(self, key: CacheKey) -> CacheEntry | None:
        row = self._query_key(key).first()
        if row is None:
            return None

        entry = CacheEntry(
            key=key,
            kind=row.kind,
            payload=row.payload,
            computed_at=row.computed_at,
            expires_at=row.expires_at,
        )
        if entry.is_expired(self.clock()):
            logger.debug("Cache entry expired for %s", key)
            return None
        return entry

    def _replace(self, key: CacheKey, kind: str, payload: dict, computed_at: int) -> CacheEntry:
        entry = CacheEntry(
            key=key,
            kind=kind,
            payload=payload,
            computed_at=computed_at,
            expires_at=computed_at + self.ttl_ms,
        )
        try:
            self._query_key(key).delete(synchronize_session=False)
            self.db.add(
                CorrelationCacheEntry(
                    user_id=key.user_id,
                    cause_id=key.cause_id,
                    effect_id=key.effect_id,
                    time_range_tag=key.time_range_tag,
                    kind=kind,
                    payload=payload,
                    computed_at=entry.computed_at,
                    expires_at=entry.expires_at,
                )
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return entry

    async def set(
        self, result: CorrelationResult, user_id: str, time_range_tag: str
    ) -> CacheEntry:
        key = correlation_key(
            user_id, result.cause_kind, result.cause_id, result.effect_id, time_range_tag
        )
        payload = result.model_dump(mode="json", by_alias=True)
        return self._replace(key, "correlation", payload, result.computed_at)

    async def set_combinations(
        self,
        combinations: Sequence[CombinationEffect],
        user_id: str,
        effect_id: str,
        time_range_tag: str,
        computed_at: int,
    ) -> CacheEntry:
        key = combinations_key(user_id, effect_id, time_range_tag)
        payload = {
            "combinations": [c.model_dump(mode="json", by_alias=True) for c in combinations]
        }
        return self._replace(key, "combinations", payload, computed_at)

    async def cleanup_expired(self, user_id: str) -> int:
        removed = (
            self.db.query(CorrelationCacheEntry)
            .filter(
                CorrelationCacheEntry.user_id == user_id,
                CorrelationCacheEntry.expires_at < self.clock(),
            )
            .delete(synchronize_session=False)
        )
        self.db.commit()
        if removed:
            logger.info("Removed %d expired cache entries for user %s", removed, user_id)
        return removed

    async def invalidate(
        self, user_id: str, cause_id: str | None = None, effect_id: str | None = None
    ) -> int:
        """
        Drop entries for a user, optionally narrowed to a cause key
        ("food:rice") and/or effect. Narrowing by cause also drops the
        combination entries, which depend on every food.
        """
        query = self.db.query(CorrelationCacheEntry).filter(
            CorrelationCacheEntry.user_id == user_id
        )
        if cause_id is not None:
            query = query.filter(
                CorrelationCacheEntry.cause_id.in_([cause_id, COMBINATIONS_CAUSE])
            )
        if effect_id is not None:
            query = query.filter(CorrelationCacheEntry.effect_id == effect_id)
        removed = query.delete(synchronize_session=False)
        self.db.commit()
        return removed

    async def stats(self, user_id: str) -> dict:
        now = self.clock()
        base = self.db.query(CorrelationCacheEntry).filter(
            CorrelationCacheEntry.user_id == user_id
        )
        total = base.count()
        expired = base.filter(CorrelationCacheEntry.expires_at < now).count()
        return {"total": total, "expired": expired, "active": total - expired}
