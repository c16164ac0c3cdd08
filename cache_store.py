"""On-disk, per-identifier TTL cache for article summaries and full texts."""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from collections.abc import Callable
from enum import Enum
from json import JSONDecodeError
from pathlib import Path
from typing import Any
from urllib.parse import quote

from models import Article, CacheEntry
from settings import ClientSettings

DEFAULT_TTL_SECONDS = 86400

_TIMESTAMP_LINE_RE = re.compile(r"^<!--\s*timestamp:\s*(\d+)\s*-->$")

LOGGER = logging.getLogger(__name__)


class CacheKind(str, Enum):
    """Record kinds; each one lives in its own subdirectory."""

    SUMMARY = "summary"
    FULLTEXT = "fulltext"

    @property
    def suffix(self) -> str:
        return ".json" if self is CacheKind.SUMMARY else ".md"


class CacheStore:
    """Best-effort cache: reads never raise, write failures are only logged.

    Summaries are stored as `{"data": {...}, "timestamp": <ms>}` JSON.
    Full texts are stored as Markdown whose first line is
    `<!-- timestamp: <ms> -->`. Expired or unreadable entries are deleted
    on read and reported as misses.
    """

    def __init__(
        self,
        cache_dir: str | Path,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cache_dir = Path(cache_dir)
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def path_for(self, kind: CacheKind, record_id: str) -> Path:
        # percent-encoding keeps distinct ids in distinct files
        safe_id = quote(record_id, safe="")
        return self.cache_dir / kind.value / f"{safe_id}{kind.suffix}"

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    def is_valid(self, timestamp_ms: int) -> bool:
        age_seconds = (self.now_ms() - timestamp_ms) / 1000
        return age_seconds < self.ttl_seconds

    async def get(self, kind: CacheKind, record_id: str) -> Article | str | None:
        return await asyncio.to_thread(self._read, kind, record_id)

    async def set(self, kind: CacheKind, record_id: str, value: Article | str) -> None:
        await asyncio.to_thread(self._write, kind, record_id, value)

    def ensure_dirs(self) -> None:
        for kind in CacheKind:
            (self.cache_dir / kind.value).mkdir(parents=True, exist_ok=True)

    def _read(self, kind: CacheKind, record_id: str) -> Article | str | None:
        path = self.path_for(kind, record_id)
        try:
            content = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as exc:
            LOGGER.warning("Cache read failed for %s %s: %s", kind.value, record_id, exc)
            self._discard(path)
            return None

        try:
            entry = self._decode(kind, content)
        except (JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            LOGGER.info("Discarding corrupt %s cache entry %s: %s", kind.value, record_id, exc)
            self._discard(path)
            return None

        if not self.is_valid(entry.timestamp):
            LOGGER.debug("Cache entry expired: %s %s", kind.value, record_id)
            self._discard(path)
            return None

        LOGGER.debug("Cache hit: %s %s", kind.value, record_id)
        return entry.data

    def _write(self, kind: CacheKind, record_id: str, value: Article | str) -> None:
        path = self.path_for(kind, record_id)
        try:
            self.ensure_dirs()
            path.write_text(self._encode(kind, value, self.now_ms()), encoding="utf-8")
        except OSError as exc:
            LOGGER.warning("Cache write failed for %s %s: %s", kind.value, record_id, exc)

    @staticmethod
    def _encode(kind: CacheKind, value: Article | str, timestamp_ms: int) -> str:
        if kind is CacheKind.SUMMARY:
            if not isinstance(value, Article):
                raise TypeError("summary cache entries must be Article instances")
            return json.dumps({"data": value.to_dict(), "timestamp": timestamp_ms}, indent=2)
        if not isinstance(value, str):
            raise TypeError("fulltext cache entries must be strings")
        return f"<!-- timestamp: {timestamp_ms} -->\n{value}"

    @staticmethod
    def _decode(kind: CacheKind, content: str) -> CacheEntry[Any]:
        if kind is CacheKind.SUMMARY:
            raw = json.loads(content)
            if not isinstance(raw, dict):
                raise TypeError("summary cache entry must be a JSON object")
            timestamp = raw["timestamp"]
            if not isinstance(timestamp, int) or isinstance(timestamp, bool):
                raise TypeError("summary cache timestamp must be an integer")
            return CacheEntry(data=Article.from_dict(raw["data"]), timestamp=timestamp)

        first_line, _, rest = content.partition("\n")
        match = _TIMESTAMP_LINE_RE.match(first_line.strip())
        if match is None:
            raise ValueError("missing timestamp marker line")
        return CacheEntry(data=rest.strip(), timestamp=int(match.group(1)))

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            LOGGER.warning("Could not remove cache file %s: %s", path, exc)


def open_cache(settings: ClientSettings, clock: Callable[[], float] = time.time) -> CacheStore | None:
    """Return a CacheStore for the configured directory, or None when disabled."""
    if not settings.cache_dir:
        return None
    return CacheStore(settings.cache_dir, ttl_seconds=settings.cache_ttl, clock=clock)
