from __future__ import annotations

import datetime
import json
from pathlib import Path
from typing import Any, Optional

from database import DATA_DIR, RosterStore, RosterStoreError, normalize_record


EXPORT_DIR = DATA_DIR / "exports"


def _timestamp() -> str:
    return datetime.datetime.now().strftime("%Y%m%d_%H%M%S")


def export_month(store: RosterStore, year: int, month: int, target: Optional[Path] = None) -> Path:
    """Write every plan/actual record of the month to a JSON file."""
    records = store.fetch_month(year, month)
    if target is None:
        EXPORT_DIR.mkdir(parents=True, exist_ok=True)
        target = EXPORT_DIR / f"roster_{year:04d}_{month:02d}_{_timestamp()}.json"
    payload = {
        "generated_at": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "year": year,
        "month": month,
        "records": records,
    }
    target.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    return target


def import_records(
    store: RosterStore,
    data: Any,
    *,
    year: Optional[int] = None,
    month: Optional[int] = None,
) -> int:
    """Upsert the records of an export document; raises ValueError if it is malformed.

    When ``year`` and ``month`` are given, every record must fall inside that
    month or nothing is written.
    """
    if not isinstance(data, dict) or not isinstance(data.get("records"), list):
        raise ValueError("Roster export must be a JSON object with a 'records' list.")
    try:
        records = [normalize_record(item) for item in data["records"]]
    except RosterStoreError as exc:
        raise ValueError(f"Invalid roster record: {exc}") from exc
    if year is not None and month is not None:
        prefix = f"{year:04d}-{month:02d}-"
        outside = [record["date"] for record in records if not record["date"].startswith(prefix)]
        if outside:
            raise ValueError(f"Records outside {year}-{month:02d}: {', '.join(outside[:3])}")
    if not records:
        return 0
    return store.upsert(records)


def import_month(store: RosterStore, file_path: Path) -> int:
    data = json.loads(Path(file_path).read_text(encoding="utf-8"))
    return import_records(store, data)
