from __future__ import annotations

import datetime
import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple


DATA_DIR = Path(__file__).resolve().parent / "data"
AUDIT_FILE = Path(os.environ.get("SHIFT_ROSTER_AUDIT_FILE", DATA_DIR / "audit.log"))

AuditEntry = Dict[str, Any]


class AuditLogger:
    """JSON-lines trail of roster changes and failed store writes.

    Each line holds ``timestamp``, ``event`` and ``username``, plus the roster
    ``month`` ("YYYY-MM") it concerns and free-form ``details`` when given.
    The file and its directory are created on the first write.
    """

    def __init__(self, file_path: Path) -> None:
        self.file_path = Path(file_path)

    def log(
        self,
        event: str,
        username: Optional[str],
        *,
        month: Optional[Tuple[int, int]] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditEntry:
        entry: AuditEntry = {
            "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            "event": event,
            "username": username,
        }
        if month is not None:
            entry["month"] = f"{month[0]:04d}-{month[1]:02d}"
        if details:
            entry["details"] = details
        self._append(entry)
        return entry

    def entries(self, event: Optional[str] = None) -> List[AuditEntry]:
        """Read back logged entries, optionally only those of one event type."""
        if not self.file_path.exists():
            return []
        found: List[AuditEntry] = []
        for line in self.file_path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                continue
            if event is None or entry.get("event") == event:
                found.append(entry)
        return found

    def _append(self, entry: AuditEntry) -> None:
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        with self.file_path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(entry, ensure_ascii=False) + "\n")


audit_logger = AuditLogger(AUDIT_FILE)
