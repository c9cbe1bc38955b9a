from __future__ import annotations

import json
from datetime import datetime

from coinwatch_service.persistence import AnalysisSnapshotStore


class FakeNow:
    def __init__(self, value: datetime) -> None:
        self.value = value

    def __call__(self) -> datetime:
        return self.value


def test_load_drops_entries_not_from_today(tmp_path) -> None:
    path = tmp_path / "snapshots.json"
    path.write_text(
        json.dumps(
            {
                "bitcoin": {"summary": {"action": "HOLD"}, "cacheTime": "2024-05-02T08:15:00"},
                "ethereum": {"summary": {"action": "BUY"}, "cacheTime": "2024-05-01T23:59:00"},
                "solana": {"summary": {"action": "SELL"}, "cacheTime": [2024, 5, 2, 6, 30, 0, 0]},
                "cardano": {"summary": {"action": "HOLD"}},
            }
        ),
        encoding="utf-8",
    )
    store = AnalysisSnapshotStore(path, now=FakeNow(datetime(2024, 5, 2, 12, 0)))

    assert store.load() == 2
    assert store.get("bitcoin") == {"action": "HOLD"}
    assert store.get("solana") == {"action": "SELL"}
    assert store.get("ethereum") is None


def test_put_persists_and_stamps_cache_time(tmp_path) -> None:
    path = tmp_path / "nested" / "snapshots.json"
    now = FakeNow(datetime(2024, 5, 2, 9, 0))
    store = AnalysisSnapshotStore(path, now=now)

    store.put("bitcoin", {"action": "HOLD", "confidence": 0.7})

    saved = json.loads(path.read_text(encoding="utf-8"))
    assert saved["bitcoin"]["summary"] == {"action": "HOLD", "confidence": 0.7}
    assert saved["bitcoin"]["cacheTime"] == "2024-05-02T09:00:00"

    reloaded = AnalysisSnapshotStore(path, now=now)
    assert reloaded.load() == 1
    assert reloaded.todays_summaries() == [{"action": "HOLD", "confidence": 0.7}]


def test_entries_expire_when_the_day_changes(tmp_path) -> None:
    now = FakeNow(datetime(2024, 5, 2, 23, 0))
    store = AnalysisSnapshotStore(tmp_path / "snapshots.json", now=now)
    store.put("bitcoin", {"action": "HOLD"})
    assert store.stats() == {"total": 1, "today": 1}

    now.value = datetime(2024, 5, 3, 0, 5)

    assert store.get("bitcoin") is None
    assert store.stats() == {"total": 1, "today": 0}
    assert store.clear_old_entries() == 1
    assert len(store) == 0


def test_missing_or_corrupt_file_is_not_fatal(tmp_path) -> None:
    store = AnalysisSnapshotStore(tmp_path / "absent.json")
    assert store.load() == 0

    corrupt = tmp_path / "corrupt.json"
    corrupt.write_text("{not json", encoding="utf-8")
    assert AnalysisSnapshotStore(corrupt).load() == 0


def test_save_failure_is_logged_not_raised(tmp_path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    store = AnalysisSnapshotStore(blocker / "snapshots.json")

    store.put("bitcoin", {"action": "HOLD"})

    assert store.save() is False
    assert store.get("bitcoin") == {"action": "HOLD"}
