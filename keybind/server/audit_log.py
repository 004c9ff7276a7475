"""
Append-only audit log of activation, verification and piracy events.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from keybind.common.exceptions import StoreError
from keybind.server.persistence import DataPersistence

if TYPE_CHECKING:
    from pathlib import Path

    from keybind.common.models import AuditLogEntry


class AuditLog:
    """Audit trail keyed by license id. Entries are never updated or removed."""

    def __init__(self, file_path: Path | None = None):
        self.file_path = file_path
        self.logger = logging.getLogger(__name__)
        self._entries: list[AuditLogEntry] = (
            DataPersistence.load_audit_log(file_path) if file_path else []
        )
        self._entries.sort(key=lambda e: e.created_at)
        self._lock = threading.Lock()

    def append(self, entry: AuditLogEntry) -> None:
        with self._lock:
            if self.file_path is not None:
                try:
                    DataPersistence.append_audit_entry(self.file_path, entry)
                except OSError as e:
                    msg = f"Failed to append audit entry to {self.file_path}"
                    raise StoreError(msg) from e
            self._entries.append(entry)
        self.logger.debug(
            "Audit %s for license %s (piracy=%s)",
            entry.action.value,
            entry.license_id,
            entry.is_piracy,
        )

    def _snapshot(self) -> list[AuditLogEntry]:
        with self._lock:
            return list(self._entries)

    def for_license(
        self, license_id: str, limit: int | None = None
    ) -> list[AuditLogEntry]:
        """Entries for one license, newest first."""
        entries = [e for e in reversed(self._snapshot()) if e.license_id == license_id]
        return entries[:limit] if limit is not None else entries

    def piracy_entries(self, limit: int = 100) -> list[AuditLogEntry]:
        """Piracy-flagged entries across all licenses, newest first."""
        entries = [e for e in reversed(self._snapshot()) if e.is_piracy]
        return entries[:limit]

    def count(self, is_piracy: bool | None = None) -> int:
        entries = self._snapshot()
        if is_piracy is None:
            return len(entries)
        return sum(1 for e in entries if e.is_piracy == is_piracy)
