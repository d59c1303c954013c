"""FastAPI wrapper around the shift state manager.

One module-level manager follows the month the display is looking at, the
same way a single open roster page would: asking for another month reloads
from the store and drops the previous month's in-memory state. Requests are
served one at a time under ``_manager_lock`` so a month switch can never land
in the middle of another request's edit.
"""

from __future__ import annotations

from contextlib import asynccontextmanager, contextmanager
import sys
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

APP_DIR = Path(__file__).resolve().parent
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from data_exchange import export_month, import_records  # noqa: E402
from database import (  # noqa: E402
    ROSTER_JSON_FILE,
    ROSTER_STORE_BACKEND,
    RosterStore,
    RosterStoreError,
    SessionLocal,
    SqlRosterStore,
    init_database,
)
from local_store import JsonRosterStore  # noqa: E402
from shift_manager import ShiftStateManager  # noqa: E402
from shift_types import ACTUAL, PLAN, is_valid_code, normalize_mode  # noqa: E402
from summary import day_totals, month_grid, requested_days, staff_totals  # noqa: E402


def build_store(backend: str = ROSTER_STORE_BACKEND, json_file: Path = ROSTER_JSON_FILE) -> RosterStore:
    if backend == "sql":
        return SqlRosterStore(SessionLocal)
    if backend == "json":
        return JsonRosterStore(json_file)
    raise ValueError(f"Unknown roster store backend: {backend!r}")


@asynccontextmanager
async def lifespan(_: FastAPI):
    if isinstance(default_store, SqlRosterStore):
        init_database()
    yield


app = FastAPI(title="Shift Roster API", version="0.1", lifespan=lifespan)

default_store: RosterStore = build_store()
_manager: Optional[ShiftStateManager] = None
_manager_lock = threading.Lock()


def get_store() -> RosterStore:
    return default_store


def _manager_for(year: int, month: int, store: RosterStore, actor: str = "api") -> ShiftStateManager:
    global _manager
    if not 1 <= month <= 12 or not 1 <= year <= 9999:
        raise HTTPException(status_code=400, detail="month must be 1-12 and year 1-9999")
    if _manager is None or _manager.store is not store:
        _manager = ShiftStateManager(store, year, month, actor=actor)
    else:
        _manager.set_month(year, month)
    _manager.actor = actor
    return _manager


@contextmanager
def _month_session(year: int, month: int, store: RosterStore, actor: str = "api") -> Iterator[ShiftStateManager]:
    with _manager_lock:
        yield _manager_for(year, month, store, actor)


def _actor(payload: Optional[Dict[str, Any]]) -> str:
    return str((payload or {}).get("actor") or "api").strip() or "api"


def _confirmation(confirmed: bool) -> Tuple[Callable[[str], bool], List[str]]:
    prompts: List[str] = []

    def confirm(prompt: str) -> bool:
        prompts.append(prompt)
        return confirmed

    return confirm, prompts


def _require_confirmation(prompts: List[str]) -> None:
    raise HTTPException(
        status_code=409,
        detail={"message": "confirmation required", "prompt": prompts[0] if prompts else ""},
    )


def _parse_mode(value: Any) -> str:
    try:
        return normalize_mode(str(value or ""))
    except ValueError:
        raise HTTPException(status_code=400, detail="mode must be 'plan' or 'actual'")


def _month_payload(manager: ShiftStateManager) -> Dict[str, Any]:
    return {
        "year": manager.year,
        "month": manager.month,
        "days_in_month": manager.days_in_month,
        "loading": manager.loading,
        "staff_members": list(manager.staff_members),
        "plan": month_grid(manager, PLAN),
        "actual": month_grid(manager, ACTUAL),
        "requested": requested_days(manager),
        "totals": {
            PLAN: {"staff": staff_totals(manager, PLAN), "day": day_totals(manager, PLAN)},
            ACTUAL: {"staff": staff_totals(manager, ACTUAL), "day": day_totals(manager, ACTUAL)},
        },
        "failed_writes": len(manager.failed_writes),
        "write_failures": [failure.to_dict() for failure in manager.failed_writes],
    }


def _respond(manager: ShiftStateManager, **extra: Any) -> JSONResponse:
    payload = _month_payload(manager)
    payload.update(extra)
    return JSONResponse(content=jsonable_encoder(payload))


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/api/v1/months/{year}/{month}")
def month_state(year: int, month: int, store=Depends(get_store)) -> JSONResponse:
    with _month_session(year, month, store) as manager:
        return _respond(manager)


@app.post("/api/v1/months/{year}/{month}/reload")
def reload_month(year: int, month: int, store=Depends(get_store)) -> JSONResponse:
    with _month_session(year, month, store) as manager:
        manager.reload()
        return _respond(manager)


@app.post("/api/v1/months/{year}/{month}/staff")
def add_staff(year: int, month: int, payload: Dict[str, Any], store=Depends(get_store)) -> JSONResponse:
    with _month_session(year, month, store, _actor(payload)) as manager:
        try:
            name = manager.add_staff(str(payload.get("name") or ""))
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return _respond(manager, added=name)


@app.delete("/api/v1/months/{year}/{month}/staff/{name}")
def remove_staff(
    year: int,
    month: int,
    name: str,
    confirm: bool = Query(False),
    actor: Optional[str] = Query(None),
    store=Depends(get_store),
) -> JSONResponse:
    with _month_session(year, month, store, actor or "api") as manager:
        confirm_fn, prompts = _confirmation(confirm)
        if not manager.remove_staff(name, confirm_fn):
            if not confirm:
                _require_confirmation(prompts)
            raise HTTPException(status_code=404, detail=f"{name} is not on the roster")
        return _respond(manager, removed=name)


@app.put("/api/v1/months/{year}/{month}/cells")
def assign_cell(
    year: int,
    month: int,
    payload: Dict[str, Any],
    user: Optional[str] = Query(None),
    store=Depends(get_store),
) -> JSONResponse:
    staff = str(payload.get("staff") or "").strip()
    value = payload.get("value")
    value = "" if value is None else str(value)
    mode = _parse_mode(payload.get("mode", PLAN))
    try:
        day = int(payload.get("day"))
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="day must be an integer")
    if not is_valid_code(value):
        raise HTTPException(status_code=400, detail=f"unknown shift type: {value!r}")
    with _month_session(year, month, store, user or _actor(payload)) as manager:
        if not 1 <= day <= manager.days_in_month:
            raise HTTPException(status_code=400, detail=f"day must be between 1 and {manager.days_in_month}")
        if staff not in manager.staff_members:
            raise HTTPException(status_code=404, detail=f"{staff} is not on the roster")
        # Request-entry mode: a staff member may only fill in their own row.
        if user is not None and user != staff:
            raise HTTPException(status_code=403, detail="requests can only be entered for your own row")
        persisted = manager.assign_cell(staff, day, value, mode, requested=user is not None)
        return _respond(manager, persisted=persisted)


@app.post("/api/v1/months/{year}/{month}/reset")
def reset_month(year: int, month: int, payload: Dict[str, Any], store=Depends(get_store)) -> JSONResponse:
    mode = _parse_mode(payload.get("mode"))
    with _month_session(year, month, store, _actor(payload)) as manager:
        confirm_fn, prompts = _confirmation(bool(payload.get("confirm")))
        if not manager.reset_month(mode, confirm_fn):
            _require_confirmation(prompts)
        return _respond(manager, reset=mode)


@app.post("/api/v1/months/{year}/{month}/auto-generate")
def auto_generate(
    year: int,
    month: int,
    payload: Optional[Dict[str, Any]] = None,
    store=Depends(get_store),
) -> JSONResponse:
    with _month_session(year, month, store, _actor(payload)) as manager:
        filled = manager.auto_generate()
        return _respond(manager, filled=filled)


@app.post("/api/v1/months/{year}/{month}/copy-to-actual")
def copy_to_actual(year: int, month: int, payload: Dict[str, Any], store=Depends(get_store)) -> JSONResponse:
    with _month_session(year, month, store, _actor(payload)) as manager:
        confirm_fn, prompts = _confirmation(bool(payload.get("confirm")))
        if not manager.copy_to_actual(confirm_fn):
            _require_confirmation(prompts)
        return _respond(manager, copied=True)


@app.post("/api/v1/months/{year}/{month}/export")
def export_roster(year: int, month: int, store=Depends(get_store)) -> JSONResponse:
    with _month_session(year, month, store) as manager:
        try:
            path = export_month(store, manager.year, manager.month)
        except RosterStoreError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return JSONResponse(content={"path": str(path)})


@app.post("/api/v1/months/{year}/{month}/import")
def import_roster(year: int, month: int, payload: Dict[str, Any], store=Depends(get_store)) -> JSONResponse:
    """Load an exported month document back into the store and reload the month."""
    with _month_session(year, month, store, _actor(payload)) as manager:
        try:
            imported = import_records(store, payload, year=year, month=month)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except RosterStoreError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        manager.reload()
        return _respond(manager, imported=imported)
