from __future__ import annotations

import calendar
import datetime
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Tuple

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
    delete,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker


DATA_DIR = Path(__file__).resolve().parent / "data"
DATA_DIR.mkdir(parents=True, exist_ok=True)
ROSTER_DATABASE_URL = os.environ.get(
    "SHIFT_ROSTER_DATABASE_URL",
    f"sqlite:///{(DATA_DIR / 'roster.db').as_posix()}",
)
# "sql" (default) or "json" for a single-file local roster.
ROSTER_STORE_BACKEND = os.environ.get("SHIFT_ROSTER_STORE", "sql").strip().lower()
ROSTER_JSON_FILE = Path(os.environ.get("SHIFT_ROSTER_JSON_FILE", DATA_DIR / "roster.json"))
RECORD_KEYS = ("staff_name", "date", "shift_type", "is_actual")

Record = Dict[str, Any]


class RosterStoreError(Exception):
    """Raised when the roster store rejects or fails a request."""


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def month_bounds(year: int, month: int) -> Tuple[datetime.date, datetime.date]:
    """Return the first and last calendar date of the month."""
    first = datetime.date(year, month, 1)
    last = datetime.date(year, month, days_in_month(year, month))
    return first, last


def record_date(year: int, month: int, day: int) -> str:
    return datetime.date(year, month, day).isoformat()


def normalize_record(record: Record) -> Record:
    """Validate a record dict and return a clean copy with only contract keys."""
    if not isinstance(record, dict):
        raise RosterStoreError(f"Record must be a dict, got {type(record).__name__}")
    missing = [key for key in RECORD_KEYS if key not in record]
    if missing:
        raise RosterStoreError(f"Record is missing keys: {', '.join(missing)}")
    staff_name = record["staff_name"]
    if not isinstance(staff_name, str) or not staff_name:
        raise RosterStoreError("staff_name must be a non-empty string")
    shift_type = record["shift_type"]
    if shift_type is None:
        shift_type = ""
    if not isinstance(shift_type, str):
        raise RosterStoreError("shift_type must be a string")
    raw_date = record["date"]
    try:
        if isinstance(raw_date, datetime.date):
            date_value = raw_date
        else:
            date_value = datetime.date.fromisoformat(str(raw_date))
    except ValueError as exc:
        raise RosterStoreError(f"Invalid record date: {raw_date!r}") from exc
    return {
        "staff_name": staff_name,
        "date": date_value.isoformat(),
        "shift_type": shift_type,
        "is_actual": bool(record["is_actual"]),
    }


def normalize_batch(records: Record | Iterable[Record]) -> List[Record]:
    if isinstance(records, dict):
        records = [records]
    # Last occurrence of a key wins inside one batch.
    merged: Dict[Tuple[str, str, bool], Record] = {}
    for record in records:
        clean = normalize_record(record)
        merged[(clean["staff_name"], clean["date"], clean["is_actual"])] = clean
    return list(merged.values())


class Base(DeclarativeBase):
    """Metadata for roster tables living in roster.db."""

    pass


class ShiftRecord(Base):
    __tablename__ = "shift_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    staff_name: Mapped[str] = mapped_column(String(120), nullable=False)
    date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    shift_type: Mapped[str] = mapped_column(String(8), nullable=False, default="")
    is_actual: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.datetime.now(datetime.timezone.utc),
        onupdate=lambda: datetime.datetime.now(datetime.timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint("staff_name", "date", "is_actual", name="uq_shift_record_staff_date_mode"),
    )

    def to_dict(self) -> Record:
        return {
            "staff_name": self.staff_name,
            "date": self.date.isoformat(),
            "shift_type": self.shift_type or "",
            "is_actual": bool(self.is_actual),
        }


roster_engine = create_engine(
    ROSTER_DATABASE_URL,
    echo=False,
    future=True,
)
SessionLocal = sessionmaker(bind=roster_engine, expire_on_commit=False, future=True)


def init_database() -> None:
    Base.metadata.create_all(roster_engine)


class RosterStore:
    """Persistent table of shift records keyed on (staff_name, date, is_actual).

    Implementations exchange plain dicts shaped like::

        {"staff_name": "看護師A", "date": "2026-02-01", "shift_type": "夜", "is_actual": False}

    Failures are raised as RosterStoreError.
    """

    def fetch_range(self, start: datetime.date, end: datetime.date) -> List[Record]:
        raise NotImplementedError

    def upsert(self, records: Record | Iterable[Record]) -> int:
        raise NotImplementedError

    def delete_range(self, start: datetime.date, end: datetime.date, is_actual: bool) -> int:
        raise NotImplementedError

    def fetch_month(self, year: int, month: int) -> List[Record]:
        first, last = month_bounds(year, month)
        return self.fetch_range(first, last)


class SqlRosterStore(RosterStore):
    def __init__(self, session_factory=None) -> None:
        self.session_factory = session_factory or SessionLocal

    def fetch_range(self, start: datetime.date, end: datetime.date) -> List[Record]:
        stmt = (
            select(ShiftRecord)
            .where(ShiftRecord.date >= start, ShiftRecord.date <= end)
            .order_by(ShiftRecord.date, ShiftRecord.staff_name, ShiftRecord.is_actual)
        )
        try:
            with self.session_factory() as session:
                return [row.to_dict() for row in session.scalars(stmt)]
        except SQLAlchemyError as exc:
            raise RosterStoreError(f"fetch failed: {exc}") from exc

    def upsert(self, records: Record | Iterable[Record]) -> int:
        batch = normalize_batch(records)
        if not batch:
            return 0
        with self.session_factory() as session:
            try:
                for record in batch:
                    date_value = datetime.date.fromisoformat(record["date"])
                    stmt = select(ShiftRecord).where(
                        ShiftRecord.staff_name == record["staff_name"],
                        ShiftRecord.date == date_value,
                        ShiftRecord.is_actual == record["is_actual"],
                    )
                    existing = session.scalars(stmt).first()
                    if existing:
                        existing.shift_type = record["shift_type"]
                        continue
                    session.add(
                        ShiftRecord(
                            staff_name=record["staff_name"],
                            date=date_value,
                            shift_type=record["shift_type"],
                            is_actual=record["is_actual"],
                        )
                    )
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise RosterStoreError(f"upsert failed: {exc}") from exc
        return len(batch)

    def delete_range(self, start: datetime.date, end: datetime.date, is_actual: bool) -> int:
        stmt = delete(ShiftRecord).where(
            ShiftRecord.date >= start,
            ShiftRecord.date <= end,
            ShiftRecord.is_actual == bool(is_actual),
        )
        with self.session_factory() as session:
            try:
                result = session.execute(stmt)
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise RosterStoreError(f"delete failed: {exc}") from exc
        return result.rowcount or 0
