"""
Time-bounded cache of database snapshots.

One entry per connection identity. Entries are replaced wholesale by the next
scan and never patched. There is no single-flight guard: two callers that
miss at the same time both scan.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from mongolingo.config.settings import SCHEMA_CACHE_TTL_SECONDS
from mongolingo.schemas.response.mongo_response import DatabaseSnapshot

logger = logging.getLogger(__name__)

@dataclass
class CachedSnapshot:
    """A snapshot and the moment it was stored."""
    snapshot: DatabaseSnapshot
    stored_at: float = field(default_factory=time.monotonic)

class SchemaCache:
    """
    Snapshot cache keyed by connection identity.

    Pass one instance into the pipeline rather than relying on module state;
    tests create a fresh cache per case.
    """

    def __init__(self, ttl: float = SCHEMA_CACHE_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        """
        Args:
            ttl: Seconds an entry stays valid
            clock: Monotonic time source
        """
        self._entries: Dict[str, CachedSnapshot] = {}
        self.ttl = ttl
        self._clock = clock

    def get(self, key: str) -> Optional[DatabaseSnapshot]:
        """
        Return the cached snapshot for a connection, or None if absent or expired.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None

        if self._clock() - entry.stored_at >= self.ttl:
            del self._entries[key]
            logger.info("Schema cache entry expired")
            return None

        return entry.snapshot

    def put(self, key: str, snapshot: DatabaseSnapshot) -> None:
        self._entries[key] = CachedSnapshot(snapshot=snapshot, stored_at=self._clock())

    def clear(self, key: Optional[str] = None) -> None:
        """Drop one connection's entry, or everything when no key is given."""
        if key is None:
            self._entries.clear()
            logger.info("Schema cache cleared")
        else:
            self._entries.pop(key, None)
            logger.info("Schema cache entry cleared")

    def __len__(self) -> int:
        return len(self._entries)
