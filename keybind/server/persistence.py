"""
Data persistence utilities.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path  # noqa: TC003

from keybind.common.models import AuditLogEntry, License


class DataPersistence:
    """Handles loading and saving persistent data."""

    @staticmethod
    def _atomic_write(file_path: Path, content: str) -> None:
        """Write to a temp file in the same directory, then replace."""
        file_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=file_path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                f.write(content)
            os.replace(tmp_name, file_path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    @staticmethod
    def load_licenses(file_path: Path) -> dict[str, License]:
        """Load licenses from file, keyed by id."""
        try:
            with file_path.open() as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        licenses = (License.model_validate(item) for item in data)
        return {lic.id: lic for lic in licenses}

    @staticmethod
    def save_licenses(file_path: Path, licenses: dict[str, License]) -> None:
        """Save licenses to file."""
        data = [lic.model_dump(mode="json") for lic in licenses.values()]
        DataPersistence._atomic_write(file_path, json.dumps(data, indent=2))

    @staticmethod
    def load_audit_log(file_path: Path) -> list[AuditLogEntry]:
        """Load audit entries from a JSON-lines file."""
        try:
            with file_path.open() as f:
                return [
                    AuditLogEntry.model_validate_json(line)
                    for line in f
                    if line.strip()
                ]
        except FileNotFoundError:
            return []

    @staticmethod
    def append_audit_entry(file_path: Path, entry: AuditLogEntry) -> None:
        """Append one audit entry as a JSON line."""
        file_path.parent.mkdir(parents=True, exist_ok=True)
        with file_path.open("a") as f:
            f.write(entry.model_dump_json() + "\n")
