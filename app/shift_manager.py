"""In-memory shift state for one displayed month, backed by a roster store.

The manager owns the plan/actual mappings for the current month only; the
store owns history. Edits are applied in memory first and then written
through. Store failures never propagate to the caller: they are collected in
``failed_writes`` (and the audit log) and the optimistic in-memory state
stands until the next reload.
"""

from __future__ import annotations

import datetime
import random
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from audit import AuditLogger, audit_logger
from database import Record, RosterStore, RosterStoreError, days_in_month, month_bounds, record_date
from shift_types import (
    ACTUAL,
    AUTO_FILL_POOL,
    DEFAULT_STAFF,
    NIGHT,
    PLAN,
    POST_NIGHT,
    UNASSIGNED,
    ViewMode,
    is_actual,
    mode_label,
    normalize_mode,
)


ShiftData = Dict[str, Any]
Confirmation = Union[bool, Callable[[str], bool]]

REQUEST_SUFFIX = "-request"
COPY_PROMPT = "現在の予定を実績にコピーしますか？\n（既存の実績データは上書きされます）"


@dataclass
class WriteFailure:
    operation: str
    records: List[Record]
    error: str
    occurred_at: datetime.datetime = field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "records": [dict(record) for record in self.records],
            "error": self.error,
            "occurred_at": self.occurred_at.isoformat(),
        }


class ShiftStateManager:
    def __init__(
        self,
        store: RosterStore,
        year: int,
        month: int,
        *,
        default_staff: Optional[List[str]] = None,
        audit: Optional[AuditLogger] = None,
        rng: Optional[random.Random] = None,
        actor: str = "system",
    ) -> None:
        self.store = store
        self.year = year
        self.month = month
        self.default_staff = list(DEFAULT_STAFF if default_staff is None else default_staff)
        self.audit = audit or audit_logger
        self.rng = rng or random.Random()
        self.actor = actor
        self.staff_members: List[str] = list(self.default_staff)
        self.shifts: ShiftData = {}
        self.actual_shifts: ShiftData = {}
        self.loading = False
        self.failed_writes: List[WriteFailure] = []
        self.load()

    # ------------------------------------------------------------------
    # Keys and reads

    def shift_key(self, staff: str, day: int) -> str:
        return f"{self.year}-{self.month}-{staff}-{day}"

    def request_key(self, staff: str, day: int) -> str:
        return f"{self.shift_key(staff, day)}{REQUEST_SUFFIX}"

    @property
    def days_in_month(self) -> int:
        return days_in_month(self.year, self.month)

    def mapping_for(self, mode: str) -> ShiftData:
        return self.actual_shifts if normalize_mode(mode) == ACTUAL else self.shifts

    def get_shift(self, staff: str, day: int, mode: str = PLAN) -> str:
        return self.mapping_for(mode).get(self.shift_key(staff, day)) or UNASSIGNED

    def is_requested(self, staff: str, day: int) -> bool:
        return bool(self.shifts.get(self.request_key(staff, day), False))

    # ------------------------------------------------------------------
    # Loading

    def set_month(self, year: int, month: int) -> bool:
        """Switch the displayed month; returns True when a reload happened."""
        if (year, month) == (self.year, self.month):
            return False
        self.year = year
        self.month = month
        self.load()
        return True

    def reload(self) -> None:
        self.load()

    def load(self) -> None:
        self.loading = True
        try:
            self._load_month()
        finally:
            self.loading = False

    def _load_month(self) -> None:
        first, last = month_bounds(self.year, self.month)
        try:
            records = self.store.fetch_range(first, last)
        except RosterStoreError as exc:
            self._record_failure("load", [], exc)
            records = []

        shifts: ShiftData = {}
        actual_shifts: ShiftData = {}
        staff = list(dict.fromkeys(self.default_staff))
        for record in records:
            name = record["staff_name"]
            day = datetime.date.fromisoformat(record["date"]).day
            target = actual_shifts if record["is_actual"] else shifts
            target[self.shift_key(name, day)] = record["shift_type"] or UNASSIGNED
            if name not in staff:
                staff.append(name)

        self.shifts = shifts
        self.actual_shifts = actual_shifts
        self.staff_members = staff

    # ------------------------------------------------------------------
    # Cell edits

    def assign_cell(
        self,
        staff: str,
        day: int,
        value: str,
        mode: ViewMode = PLAN,
        requested: bool = False,
    ) -> bool:
        """Set one cell and write it through; returns False if the write failed.

        In plan mode a requested edit marks the cell as a staff request. A plain
        edit keeps whatever flag the cell already has.
        """
        mode = normalize_mode(mode)
        key = self.shift_key(staff, day)
        if mode == PLAN:
            flag_key = self.request_key(staff, day)
            self.shifts[key] = value
            self.shifts[flag_key] = True if requested else bool(self.shifts.get(flag_key, False))
        else:
            self.actual_shifts[key] = value
        record = self._record(staff, day, value, mode == ACTUAL)
        return self._write("assign_cell", [record])

    # ------------------------------------------------------------------
    # Staff

    def add_staff(self, name: str) -> str:
        cleaned = (name or "").strip()
        if not cleaned:
            raise ValueError("Staff name is required.")
        self.staff_members = [*self.staff_members, cleaned]
        self._log("STAFF_ADD", {"name": cleaned})
        return cleaned

    def remove_staff(self, name: str, confirm: Confirmation) -> bool:
        if not self._confirmed(confirm, f"{name}さんを削除しますか？"):
            return False
        updated = [member for member in self.staff_members if member != name]
        if len(updated) == len(self.staff_members):
            return False
        self.staff_members = updated
        self._log("STAFF_REMOVE", {"name": name})
        return True

    # ------------------------------------------------------------------
    # Bulk operations

    def reset_month(self, mode: ViewMode, confirm: Confirmation, day_count: Optional[int] = None) -> bool:
        mode = normalize_mode(mode)
        prompt = f"{self.year}年{self.month}月の【{mode_label(mode)}】をすべて消去しますか？"
        if not self._confirmed(confirm, prompt):
            return False
        first, last = month_bounds(self.year, self.month)
        removed = 0
        try:
            removed = self.store.delete_range(first, last, is_actual(mode))
        except RosterStoreError as exc:
            self._record_failure("reset_month", [], exc)

        days = self._day_count(day_count)
        target = dict(self.mapping_for(mode))
        for name in self.staff_members:
            for day in range(1, days + 1):
                target.pop(self.shift_key(name, day), None)
                target.pop(self.request_key(name, day), None)
        if mode == ACTUAL:
            self.actual_shifts = target
        else:
            self.shifts = target
        self._log("MONTH_RESET", {"mode": mode, "removed": removed})
        return True

    def auto_generate(self, day_count: Optional[int] = None) -> int:
        """Fill every empty plan cell and return how many cells were filled.

        The day after a night shift is always post-night; every other gap is a
        uniform draw from the auto-fill pool. Filled cells are never touched.
        """
        days = self._day_count(day_count)
        updated = dict(self.shifts)
        created: List[Record] = []
        for name in self.staff_members:
            for day in range(1, days + 1):
                key = self.shift_key(name, day)
                if updated.get(key):
                    continue
                if day > 1 and updated.get(self.shift_key(name, day - 1)) == NIGHT:
                    value = POST_NIGHT
                else:
                    value = self.rng.choice(AUTO_FILL_POOL)
                updated[key] = value
                created.append(self._record(name, day, value, False))
        self._write("auto_generate", created)
        self.shifts = updated
        self._log("AUTO_GENERATE", {"filled": len(created)})
        return len(created)

    def copy_to_actual(self, confirm: Confirmation, day_count: Optional[int] = None) -> bool:
        if not self._confirmed(confirm, COPY_PROMPT):
            return False
        days = self._day_count(day_count)
        updated = dict(self.actual_shifts)
        copied: List[Record] = []
        for name in self.staff_members:
            for day in range(1, days + 1):
                key = self.shift_key(name, day)
                value = self.shifts.get(key)
                if not value:
                    continue
                updated[key] = value
                copied.append(self._record(name, day, value, True))
        self.actual_shifts = updated
        self._write("copy_to_actual", copied)
        self._log("COPY_TO_ACTUAL", {"copied": len(copied)})
        return True

    # ------------------------------------------------------------------
    # Write-through bookkeeping

    def clear_failures(self) -> None:
        self.failed_writes = []

    def _record(self, staff: str, day: int, value: str, actual: bool) -> Record:
        return {
            "staff_name": staff,
            "date": record_date(self.year, self.month, day),
            "shift_type": value,
            "is_actual": actual,
        }

    def _write(self, operation: str, records: List[Record]) -> bool:
        if not records:
            return True
        try:
            self.store.upsert(records)
        except RosterStoreError as exc:
            self._record_failure(operation, records, exc)
            return False
        return True

    def _record_failure(self, operation: str, records: List[Record], exc: Exception) -> None:
        failure = WriteFailure(operation=operation, records=list(records), error=str(exc))
        self.failed_writes.append(failure)
        self._log("WRITE_FAILED", {"operation": operation, "records": len(records), "error": failure.error})

    def _log(self, event: str, details: Dict[str, Any]) -> None:
        self.audit.log(event, self.actor, month=(self.year, self.month), details=details)

    def _confirmed(self, confirm: Confirmation, prompt: str) -> bool:
        if callable(confirm):
            return bool(confirm(prompt))
        return bool(confirm)

    def _day_count(self, day_count: Optional[int]) -> int:
        return self.days_in_month if day_count is None else int(day_count)