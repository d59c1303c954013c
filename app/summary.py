from __future__ import annotations

from typing import Dict, List

from shift_manager import ShiftStateManager
from shift_types import PLAN, shift_codes


def staff_totals(manager: ShiftStateManager, mode: str = PLAN) -> Dict[str, Dict[str, int]]:
    """Per-staff count of each shift code across the month (zeros included)."""
    codes = shift_codes()
    totals: Dict[str, Dict[str, int]] = {}
    for name in manager.staff_members:
        row = {code: 0 for code in codes}
        for day in range(1, manager.days_in_month + 1):
            value = manager.get_shift(name, day, mode)
            if value in row:
                row[value] += 1
        totals[name] = row
    return totals


def day_totals(manager: ShiftStateManager, mode: str = PLAN) -> Dict[int, Dict[str, int]]:
    """Per-day count of each shift code across staff; only non-zero codes are listed."""
    codes = shift_codes()
    staff = list(dict.fromkeys(manager.staff_members))
    totals: Dict[int, Dict[str, int]] = {}
    for day in range(1, manager.days_in_month + 1):
        values = [manager.get_shift(name, day, mode) for name in staff]
        totals[day] = {code: values.count(code) for code in codes if values.count(code) > 0}
    return totals


def month_grid(manager: ShiftStateManager, mode: str = PLAN) -> Dict[str, Dict[int, str]]:
    grid: Dict[str, Dict[int, str]] = {}
    for name in manager.staff_members:
        row = grid.setdefault(name, {})
        for day in range(1, manager.days_in_month + 1):
            value = manager.get_shift(name, day, mode)
            if value:
                row[day] = value
    return grid


def requested_days(manager: ShiftStateManager) -> Dict[str, List[int]]:
    result: Dict[str, List[int]] = {}
    for name in manager.staff_members:
        days = [day for day in range(1, manager.days_in_month + 1) if manager.is_requested(name, day)]
        if days:
            result[name] = days
    return result
