from __future__ import annotations

import json
import random
import sys
from pathlib import Path

import pytest

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

import data_exchange  # noqa: E402
from audit import AuditLogger  # noqa: E402
from data_exchange import export_month, import_month  # noqa: E402
from local_store import MemoryRosterStore  # noqa: E402
from shift_manager import ShiftStateManager  # noqa: E402
from summary import day_totals, month_grid, requested_days, staff_totals  # noqa: E402


@pytest.fixture()
def manager(tmp_path) -> ShiftStateManager:
    manager = ShiftStateManager(
        MemoryRosterStore(),
        2026,
        2,
        default_staff=["A", "B"],
        audit=AuditLogger(tmp_path / "audit.log"),
        rng=random.Random(1),
    )
    manager.assign_cell("A", 1, "夜", "plan")
    manager.assign_cell("A", 2, "明", "plan")
    manager.assign_cell("B", 1, "夜", "plan", requested=True)
    manager.assign_cell("B", 3, "休", "actual")
    return manager


def test_staff_totals_count_every_code(manager) -> None:
    totals = staff_totals(manager, "plan")

    assert totals["A"] == {"日": 0, "早": 0, "遅": 0, "夜": 1, "明": 1, "休": 0}
    assert totals["B"]["夜"] == 1
    assert staff_totals(manager, "actual")["B"]["休"] == 1


def test_day_totals_list_only_present_codes(manager) -> None:
    totals = day_totals(manager, "plan")

    assert totals[1] == {"夜": 2}
    assert totals[2] == {"明": 1}
    assert totals[3] == {}
    assert len(totals) == 28


def test_grid_and_requested_days(manager) -> None:
    assert month_grid(manager, "plan") == {"A": {1: "夜", 2: "明"}, "B": {1: "夜"}}
    assert month_grid(manager, "actual") == {"A": {}, "B": {3: "休"}}
    assert requested_days(manager) == {"B": [1]}


def test_export_import_round_trip(manager, tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(data_exchange, "EXPORT_DIR", tmp_path / "exports")

    path = export_month(manager.store, 2026, 2)
    assert path.parent == tmp_path / "exports"
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["year"] == 2026
    assert len(payload["records"]) == 4

    fresh = MemoryRosterStore()
    assert import_month(fresh, path) == 4
    assert fresh.fetch_month(2026, 2) == manager.store.fetch_month(2026, 2)


def test_import_rejects_malformed_documents(tmp_path) -> None:
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"rows": []}), encoding="utf-8")
    with pytest.raises(ValueError):
        import_month(MemoryRosterStore(), path)

    path.write_text(json.dumps({"records": [{"staff_name": "A", "date": "nope"}]}), encoding="utf-8")
    with pytest.raises(ValueError):
        import_month(MemoryRosterStore(), path)
