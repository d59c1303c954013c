from __future__ import annotations

from typing import Dict, List, Literal


ViewMode = Literal["plan", "actual"]

PLAN: ViewMode = "plan"
ACTUAL: ViewMode = "actual"
VIEW_MODES = (PLAN, ACTUAL)

MODE_LABELS: Dict[str, str] = {
    PLAN: "予定",
    ACTUAL: "実績",
}

UNASSIGNED = ""
DAY = "日"
EARLY = "早"
LATE = "遅"
NIGHT = "夜"
POST_NIGHT = "明"
REST = "休"

# Display order matters for tallies.
SHIFT_TYPES: Dict[str, str] = {
    DAY: "日勤",
    EARLY: "早番",
    LATE: "遅番",
    NIGHT: "夜勤",
    POST_NIGHT: "明け",
    REST: "休み",
}

# Post-night is only ever derived from a preceding night shift.
AUTO_FILL_POOL: List[str] = [DAY, EARLY, LATE, NIGHT, REST]

DEFAULT_STAFF: List[str] = ["看護師A", "看護師B", "看護師C"]


def shift_codes() -> List[str]:
    return list(SHIFT_TYPES)


def is_valid_code(value: str) -> bool:
    return value == UNASSIGNED or value in SHIFT_TYPES


def normalize_mode(mode: str) -> ViewMode:
    """Return the canonical view mode or raise ValueError."""
    cleaned = (mode or "").strip().lower()
    if cleaned not in VIEW_MODES:
        raise ValueError(f"Unknown view mode: {mode!r}")
    return cleaned  # type: ignore[return-value]


def is_actual(mode: str) -> bool:
    return normalize_mode(mode) == ACTUAL


def mode_label(mode: str) -> str:
    return MODE_LABELS[normalize_mode(mode)]
