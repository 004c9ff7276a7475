"""
License store: the single source of truth for license records.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from typing import TYPE_CHECKING, Any, Callable

from keybind.common.exceptions import (
    DuplicateKeyError,
    LicenseNotFoundError,
    StoreError,
)
from keybind.common.models import PackageType
from keybind.server.keygen import canonicalize_key
from keybind.server.persistence import DataPersistence

if TYPE_CHECKING:
    from pathlib import Path

    from keybind.common.models import License

# Fields fixed at creation
IMMUTABLE_FIELDS = frozenset({"id", "key", "created_at", "version"})


class LicenseStore:
    """Versioned license records with per-license atomic updates.

    Every write replaces the stored record with a copy carrying the next
    version, so readers never see a half-applied patch. Callers that
    read-modify-write use compare_and_update with the version they read.
    Passing a file path persists the whole store as JSON after each write.
    """

    def __init__(self, file_path: Path | None = None):
        self.file_path = file_path
        self.logger = logging.getLogger(__name__)
        self._licenses: dict[str, License] = (
            DataPersistence.load_licenses(file_path) if file_path else {}
        )
        self._key_index: dict[str, str] = {
            canonicalize_key(lic.key): lic.id for lic in self._licenses.values()
        }
        self._index_lock = threading.Lock()
        self._save_lock = threading.Lock()
        self._license_locks: dict[str, threading.Lock] = {
            license_id: threading.Lock() for license_id in self._licenses
        }
        if file_path:
            self.logger.info(
                "Loaded %d licenses from %s", len(self._licenses), file_path
            )

    def _lock_for(self, license_id: str) -> threading.Lock:
        with self._index_lock:
            lock = self._license_locks.get(license_id)
        if lock is None:
            raise LicenseNotFoundError(f"License not found: {license_id}")
        return lock

    def _save(self) -> None:
        if self.file_path is None:
            return
        with self._save_lock:
            with self._index_lock:
                snapshot = dict(self._licenses)
            try:
                DataPersistence.save_licenses(self.file_path, snapshot)
            except OSError as e:
                msg = f"Failed to persist licenses to {self.file_path}"
                raise StoreError(msg) from e

    def _save_or_rollback(self, previous: License, written: License) -> None:
        """Persist, or put previous back if the write cannot be saved.

        The rollback only happens while written is still the stored record;
        a later writer has already built on it otherwise.
        """
        try:
            self._save()
        except StoreError:
            with self._lock_for(written.id):
                if self._licenses.get(written.id) is written:
                    self._licenses[written.id] = previous
                else:
                    self.logger.error(
                        "Cannot roll back license %s, it changed again", written.id
                    )
            raise

    @staticmethod
    def _check_patch(patch: dict[str, Any]) -> None:
        forbidden = IMMUTABLE_FIELDS.intersection(patch)
        if forbidden:
            msg = f"Immutable license fields: {', '.join(sorted(forbidden))}"
            raise StoreError(msg)

    def create(self, license: License) -> License:
        """Insert a new license. Raises DuplicateKeyError if the key exists."""
        key = canonicalize_key(license.key)
        stored = license.model_copy(update={"key": key, "version": 0})
        with self._index_lock:
            if key in self._key_index:
                raise DuplicateKeyError(key)
            if stored.id in self._licenses:
                msg = f"License id already exists: {stored.id}"
                raise StoreError(msg)
            self._licenses[stored.id] = stored
            self._key_index[key] = stored.id
            self._license_locks[stored.id] = threading.Lock()
        try:
            self._save()
        except StoreError:
            with self._index_lock:
                self._licenses.pop(stored.id, None)
                self._key_index.pop(key, None)
                self._license_locks.pop(stored.id, None)
            raise
        return stored.model_copy()

    def find_by_key(self, key: str) -> License | None:
        with self._index_lock:
            license_id = self._key_index.get(canonicalize_key(key))
            lic = self._licenses.get(license_id) if license_id else None
        return lic.model_copy() if lic else None

    def find_by_id(self, license_id: str) -> License | None:
        with self._index_lock:
            lic = self._licenses.get(license_id)
        return lic.model_copy() if lic else None

    def update(self, license_id: str, patch: dict[str, Any]) -> License:
        """Apply a partial patch to the current record."""
        self._check_patch(patch)
        with self._lock_for(license_id):
            current = self._licenses[license_id]
            updated = current.model_copy(
                update={**patch, "version": current.version + 1}
            )
            self._licenses[license_id] = updated
        self._save_or_rollback(current, updated)
        return updated.model_copy()

    def compare_and_update(
        self, license_id: str, expected_version: int, patch: dict[str, Any]
    ) -> License | None:
        """Apply a patch only if the record is still at expected_version.

        Returns the updated license, or None when another writer got there
        first and the caller has to re-read and decide again.
        """
        self._check_patch(patch)
        with self._lock_for(license_id):
            current = self._licenses[license_id]
            if current.version != expected_version:
                self.logger.debug(
                    "Version conflict on license %s: expected %d, found %d",
                    license_id,
                    expected_version,
                    current.version,
                )
                return None
            updated = current.model_copy(
                update={**patch, "version": current.version + 1}
            )
            self._licenses[license_id] = updated
        self._save_or_rollback(current, updated)
        return updated.model_copy()

    def all(self) -> list[License]:
        with self._index_lock:
            return [lic.model_copy() for lic in self._licenses.values()]

    def count(self, predicate: Callable[[License], bool] | None = None) -> int:
        licenses = self.all()
        if predicate is None:
            return len(licenses)
        return sum(1 for lic in licenses if predicate(lic))

    def count_by_package(self) -> dict[str, int]:
        counts = Counter(PackageType(lic.package_type).value for lic in self.all())
        return dict(counts)
