"""
Segment Cache
=============

Time-bounded memo of rendered tiles, keyed by SegmentKey.

Design Rules:
    - One authoritative expires_at per key; overwriting replaces it
    - Expired entries are misses on read and are removed by a periodic sweep
    - Snapshots hold only live entries and keep their original expiry
    - Runs on the event loop thread; every method is atomic between awaits
"""

import asyncio
import json
import logging
import os
import time
from pathlib import Path
from typing import Callable, Dict, Optional

from tilestream.models.segment import CacheEntry, SegmentKey, TileData


logger = logging.getLogger(__name__)


class SegmentCache:
    """
    Key -> CacheEntry store with time-based eviction.

    Attributes:
        ttl: Default time-to-live in seconds
        hits: Lookups answered from the cache
        misses: Lookups that found nothing live
        evictions: Entries removed because they expired

    Example:
        cache = SegmentCache(ttl=600)
        cache.store(key, width=16, height=16, data=url, format="png")

        entry = cache.get(key)
    """

    def __init__(
        self,
        ttl: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize cache.

        Args:
            ttl: Default time-to-live in seconds. Must be > 0.
            clock: Wall-clock source in UNIX seconds
        """
        if ttl <= 0:
            raise ValueError("ttl must be > 0")

        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[SegmentKey, CacheEntry] = {}

        self.hits: int = 0
        self.misses: int = 0
        self.evictions: int = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: SegmentKey) -> bool:
        entry = self._entries.get(key)
        return entry is not None and not entry.is_expired(self._clock())

    def get(self, key: SegmentKey) -> Optional[CacheEntry]:
        """
        Look up a live entry.

        Returns:
            The stored entry verbatim, or None on a miss
        """
        entry = self._entries.get(key)
        if entry is not None and entry.is_expired(self._clock()):
            del self._entries[key]
            self.evictions += 1
            entry = None

        if entry is None:
            self.misses += 1
            return None

        self.hits += 1
        return entry

    def put(self, key: SegmentKey, entry: CacheEntry) -> None:
        """
        Store an entry, replacing any previous entry for the key.

        Raises:
            ValueError: If the entry is already expired
        """
        if entry.is_expired(self._clock()):
            raise ValueError(f"Refusing to cache an expired entry for {key}")
        self._entries[key] = entry

    def store(
        self,
        key: SegmentKey,
        width: int,
        height: int,
        data: TileData,
        format: str,
        ttl: Optional[float] = None,
    ) -> CacheEntry:
        """Build an entry expiring ttl seconds from now and put it."""
        ttl = self.ttl if ttl is None else ttl
        if ttl <= 0:
            raise ValueError("ttl must be > 0")

        entry = CacheEntry(
            width=width,
            height=height,
            data=data,
            format=format,
            expires_at=self._clock() + ttl,
        )
        self.put(key, entry)
        return entry

    def sweep(self) -> int:
        """
        Remove every expired entry.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]

        if expired:
            self.evictions += len(expired)
            logger.debug(f"Swept {len(expired)} expired tiles, {len(self._entries)} remain")
        return len(expired)

    def clear(self) -> int:
        cleared = len(self._entries)
        self._entries.clear()
        return cleared

    async def run_sweeper(self, interval: float) -> None:
        """Sweep expired entries every interval seconds until cancelled."""
        logger.info(f"Cache sweeper started (every {interval}s)")
        while True:
            await asyncio.sleep(interval)
            self.sweep()

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def save_snapshot(self, path: Path) -> int:
        """
        Write all live entries to a JSON snapshot.

        The file is replaced atomically so an interrupted write never
        leaves a truncated snapshot behind.

        Returns:
            Number of entries written
        """
        path = Path(path)
        now = self._clock()
        pairs = [
            [key.to_list(), entry.to_dict()]
            for key, entry in self._entries.items()
            if not entry.is_expired(now)
        ]

        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + ".tmp")
        with open(tmp_path, "w") as f:
            json.dump(pairs, f)
        os.replace(tmp_path, path)

        logger.info(f"Saved {len(pairs)} cached tiles to {path}")
        return len(pairs)

    def restore_snapshot(self, path: Path) -> int:
        """
        Load entries from a JSON snapshot, discarding expired ones.

        Surviving entries keep their stored expires_at. A missing or
        corrupt snapshot leaves the cache unchanged.

        Returns:
            Number of entries restored
        """
        path = Path(path)
        if not path.exists():
            logger.info(f"No cache snapshot at {path}")
            return 0

        try:
            with open(path, "r") as f:
                pairs = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read cache snapshot {path}: {e}")
            return 0

        if not isinstance(pairs, list):
            logger.error(f"Invalid cache snapshot {path}: expected a list")
            return 0

        now = self._clock()
        restored = 0
        discarded = 0
        for pair in pairs:
            try:
                raw_key, raw_entry = pair
                key = SegmentKey.from_list(raw_key)
                entry = CacheEntry.from_dict(raw_entry)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping invalid snapshot entry: {e}")
                discarded += 1
                continue

            if entry.is_expired(now):
                discarded += 1
                continue

            self._entries[key] = entry
            restored += 1

        logger.info(f"Restored {restored} cached tiles from {path} ({discarded} discarded)")
        return restored

    def metrics(self) -> dict:
        """
        Get cache metrics for observability.

        Returns:
            Dict with size, hits, misses, evictions, ttl_seconds
        """
        return {
            "size": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "ttl_seconds": self.ttl,
        }
