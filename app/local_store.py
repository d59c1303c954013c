from __future__ import annotations

import datetime
import json
from pathlib import Path
from typing import Dict, Iterable, List, Tuple

from database import Record, RosterStore, RosterStoreError, normalize_batch, normalize_record


RecordKey = Tuple[str, str, bool]


class MemoryRosterStore(RosterStore):
    """Dict-backed roster store with the same contract as the SQL store.

    Changes are built on a copy and only swapped in once ``_persist`` accepts
    them, so a failed write leaves the store exactly as it was.
    """

    def __init__(self, records: Iterable[Record] | None = None) -> None:
        self._records: Dict[RecordKey, Record] = {}
        if records:
            self._records = self._with_upsert(self._records, normalize_batch(list(records)))

    def __len__(self) -> int:
        return len(self._records)

    def all_records(self) -> List[Record]:
        return _ordered(self._records)

    def fetch_range(self, start: datetime.date, end: datetime.date) -> List[Record]:
        first, last = start.isoformat(), end.isoformat()
        return [
            dict(self._records[key])
            for key in sorted(self._records, key=lambda item: (item[1], item[0], item[2]))
            if first <= key[1] <= last
        ]

    def upsert(self, records: Record | Iterable[Record]) -> int:
        batch = normalize_batch(records)
        updated = self._with_upsert(self._records, batch)
        self._persist(updated)
        self._records = updated
        return len(batch)

    def delete_range(self, start: datetime.date, end: datetime.date, is_actual: bool) -> int:
        first, last = start.isoformat(), end.isoformat()
        kept = {
            key: record
            for key, record in self._records.items()
            if not (first <= key[1] <= last and key[2] == bool(is_actual))
        }
        removed = len(self._records) - len(kept)
        self._persist(kept)
        self._records = kept
        return removed

    @staticmethod
    def _with_upsert(current: Dict[RecordKey, Record], batch: List[Record]) -> Dict[RecordKey, Record]:
        updated = dict(current)
        for record in batch:
            updated[(record["staff_name"], record["date"], record["is_actual"])] = dict(record)
        return updated

    def _persist(self, records: Dict[RecordKey, Record]) -> None:
        pass


class JsonRosterStore(MemoryRosterStore):
    """Roster store persisted as one JSON document on local disk."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        super().__init__(self._load())

    def _load(self) -> List[Record]:
        if not self.path.exists():
            return []
        try:
            raw = self.path.read_text(encoding="utf-8").strip()
            if not raw:
                return []
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            return []
        records = data.get("records", []) if isinstance(data, dict) else []
        valid: List[Record] = []
        for item in records:
            try:
                normalize_record(item)
            except RosterStoreError:
                continue
            valid.append(item)
        return valid

    def _persist(self, records: Dict[RecordKey, Record]) -> None:
        payload = {"records": _ordered(records)}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
            tmp.replace(self.path)
        except OSError as exc:
            raise RosterStoreError(f"could not write {self.path}: {exc}") from exc


def _ordered(records: Dict[RecordKey, Record]) -> List[Record]:
    return [dict(records[key]) for key in sorted(records)]
