"""
Interfaces and protocols for dependency injection.
"""

from __future__ import annotations

from typing import Any, Callable, Protocol

from keybind.common.models import AuditLogEntry, License, PiracyAlert


class ILicenseStore(Protocol):
    """Protocol for the license store."""

    def create(self, license: License) -> License: ...

    def find_by_key(self, key: str) -> License | None: ...

    def find_by_id(self, license_id: str) -> License | None: ...

    def update(self, license_id: str, patch: dict[str, Any]) -> License: ...

    def compare_and_update(
        self, license_id: str, expected_version: int, patch: dict[str, Any]
    ) -> License | None: ...

    def all(self) -> list[License]: ...

    def count(self, predicate: Callable[[License], bool] | None = None) -> int: ...

    def count_by_package(self) -> dict[str, int]: ...


class IAuditLog(Protocol):
    """Protocol for the append-only audit log."""

    def append(self, entry: AuditLogEntry) -> None: ...

    def for_license(
        self, license_id: str, limit: int | None = None
    ) -> list[AuditLogEntry]: ...

    def piracy_entries(self, limit: int = 100) -> list[AuditLogEntry]: ...

    def count(self, is_piracy: bool | None = None) -> int: ...


class IPiracyNotifier(Protocol):
    """Protocol for piracy alert delivery. Must never raise."""

    def notify(self, alert: PiracyAlert) -> None: ...
