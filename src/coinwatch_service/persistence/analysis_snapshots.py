"""Best-effort file store for per-symbol analysis summaries."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Mapping

logger = logging.getLogger("coinwatch.persistence.analysis_snapshots")


@dataclass(slots=True)
class CachedAnalysisSummary:
    summary: dict[str, Any]
    cache_time: datetime

    def is_from(self, day: date) -> bool:
        return self.cache_time.date() == day

    def to_dict(self) -> dict[str, Any]:
        return {"summary": self.summary, "cacheTime": self.cache_time.isoformat()}


def _parse_cache_time(raw: Any) -> datetime | None:
    if isinstance(raw, str):
        try:
            return datetime.fromisoformat(raw)
        except ValueError:
            return None
    # array form: [year, month, day, hour, minute, second, nanos]
    if isinstance(raw, list) and len(raw) >= 3:
        try:
            parts = [int(value) for value in raw[:6]]
        except (TypeError, ValueError):
            return None
        try:
            return datetime(*parts)
        except ValueError:
            return None
    return None


class AnalysisSnapshotStore:
    """
    JSON map of symbol -> cached analysis summary with a ``cacheTime`` stamp.

    Entries whose ``cacheTime`` is not today's local date are treated as expired
    when the file is loaded. Every mutation is written straight back to disk;
    I/O problems are logged and never raised.
    """

    def __init__(self, path: str | Path, *, now: Callable[[], datetime] | None = None) -> None:
        self._path = Path(path)
        self._now = now or datetime.now
        self._entries: dict[str, CachedAnalysisSummary] = {}

    @property
    def path(self) -> Path:
        return self._path

    def __len__(self) -> int:
        return len(self._entries)

    def load(self) -> int:
        if not self._path.exists():
            logger.info("No analysis snapshot file found at %s", self._path)
            return 0
        try:
            with open(self._path, "r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("Failed to load analysis snapshots from %s: %s", self._path, exc)
            return 0
        if not isinstance(data, Mapping):
            logger.error("Analysis snapshot file %s is not a JSON object", self._path)
            return 0

        today = self._now().date()
        loaded: dict[str, CachedAnalysisSummary] = {}
        skipped = 0
        for symbol, raw in data.items():
            if not isinstance(raw, Mapping):
                skipped += 1
                continue
            cache_time = _parse_cache_time(raw.get("cacheTime"))
            if cache_time is None or cache_time.date() != today:
                skipped += 1
                continue
            summary = raw.get("summary")
            loaded[str(symbol)] = CachedAnalysisSummary(
                summary=dict(summary) if isinstance(summary, Mapping) else {},
                cache_time=cache_time,
            )
        self._entries = loaded
        logger.info(
            "Loaded %s analysis snapshots from %s (%s expired)",
            len(loaded),
            self._path,
            skipped,
        )
        return len(loaded)

    def save(self) -> bool:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            temp_path = self._path.with_suffix(".tmp")
            with open(temp_path, "w", encoding="utf-8") as handle:
                json.dump(
                    {symbol: entry.to_dict() for symbol, entry in self._entries.items()},
                    handle,
                    indent=2,
                    ensure_ascii=False,
                )
            temp_path.replace(self._path)
        except OSError as exc:
            logger.error("Failed to save analysis snapshots to %s: %s", self._path, exc)
            return False
        logger.debug("Saved %s analysis snapshots to %s", len(self._entries), self._path)
        return True

    def put(self, symbol: str, summary: Mapping[str, Any]) -> None:
        self._entries[symbol] = CachedAnalysisSummary(summary=dict(summary), cache_time=self._now())
        logger.info("Cached analysis summary for %s", symbol)
        self.save()

    def get(self, symbol: str) -> dict[str, Any] | None:
        entry = self._entries.get(symbol)
        if entry is None or not entry.is_from(self._now().date()):
            return None
        return entry.summary

    def todays_summaries(self) -> list[dict[str, Any]]:
        today = self._now().date()
        return [entry.summary for entry in self._entries.values() if entry.is_from(today)]

    def clear_old_entries(self) -> int:
        today = self._now().date()
        stale = [symbol for symbol, entry in self._entries.items() if not entry.is_from(today)]
        for symbol in stale:
            self._entries.pop(symbol, None)
        self.save()
        return len(stale)

    def stats(self) -> dict[str, int]:
        today = self._now().date()
        todays = sum(1 for entry in self._entries.values() if entry.is_from(today))
        return {"total": len(self._entries), "today": todays}


__all__ = ["AnalysisSnapshotStore", "CachedAnalysisSummary"]
