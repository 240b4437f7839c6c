"""
Ranking Index Service
Keeps two "top-N by score" indexes over movie titles:

- rank:movies:popular  scored by rating count
- rank:movies:top      scored by rounded average rating (only when count > 0)

The indexes are derived data. They are refreshed from the recomputed
aggregate after every rating upsert and may lag the database briefly.
A failing backend is logged and skipped; it never fails a rating submission.
"""
import logging
import threading
from typing import Dict, List, Optional, Tuple

import redis

logger = logging.getLogger(__name__)

POPULAR_INDEX = "rank:movies:popular"
TOP_RATED_INDEX = "rank:movies:top"

RankingEntry = Tuple[str, float]


class RankingIndex:
    """Interface for ranking backends."""

    name = "base"

    def record(self, title: str, count: int, average: float) -> None:
        """Push a movie's latest aggregate into both indexes."""
        if count <= 0:
            # Nothing rated yet: keep the title out of the top-rated index
            self._add(POPULAR_INDEX, title, 0)
            return
        self._add(POPULAR_INDEX, title, float(count))
        self._add(TOP_RATED_INDEX, title, float(average))

    def top(self, index: str, n: int = 10) -> List[RankingEntry]:
        raise NotImplementedError

    def _add(self, index: str, title: str, score: float) -> None:
        raise NotImplementedError


class NullRankingIndex(RankingIndex):
    name = "none"

    def top(self, index: str, n: int = 10) -> List[RankingEntry]:
        return []

    def _add(self, index: str, title: str, score: float) -> None:
        return None


class MemoryRankingIndex(RankingIndex):
    """In-process sorted-set equivalent (single worker only)."""

    name = "memory"

    def __init__(self):
        self._scores: Dict[str, Dict[str, float]] = {POPULAR_INDEX: {}, TOP_RATED_INDEX: {}}
        self._lock = threading.Lock()

    def top(self, index: str, n: int = 10) -> List[RankingEntry]:
        with self._lock:
            members = list(self._scores.get(index, {}).items())
        # Same ordering as ZREVRANGE: score desc, then member desc
        members.sort(key=lambda item: (item[1], item[0]), reverse=True)
        return members[:max(n, 0)]

    def _add(self, index: str, title: str, score: float) -> None:
        with self._lock:
            self._scores.setdefault(index, {})[title] = score


class RedisRankingIndex(RankingIndex):
    """Sorted sets in Redis. ZADD replaces a member's score, never duplicates it."""

    name = "redis"

    def __init__(self, client: redis.Redis):
        self.client = client

    def top(self, index: str, n: int = 10) -> List[RankingEntry]:
        if n <= 0:
            return []
        try:
            rows = self.client.zrevrange(index, 0, n - 1, withscores=True)
        except redis.RedisError as e:
            logger.warning(f"Ranking read error for {index}: {e}")
            return []
        return [(member, float(score)) for member, score in rows]

    def _add(self, index: str, title: str, score: float) -> None:
        try:
            self.client.zadd(index, {title: score})
        except redis.RedisError as e:
            logger.warning(f"Skipping ranking update of {index} for '{title}': {e}")


def build_ranking_index(client: Optional[redis.Redis], use_memory: bool = False) -> RankingIndex:
    """Same selection rules as the cache: Redis, then in-process, then disabled."""
    if client is not None:
        return RedisRankingIndex(client)
    if use_memory:
        return MemoryRankingIndex()
    return NullRankingIndex()
