"""
Admin request handler for license service.
"""

from __future__ import annotations

import hmac
from datetime import datetime
from typing import TYPE_CHECKING, Callable

from keybind.common.exceptions import (
    AdminAuthError,
    InvalidLicenseDataError,
    LicenseNotFoundError,
    StoreConflictError,
)
from keybind.common.models import (
    AuditAction,
    License,
    LicenseBrief,
    LicenseListItem,
    LicenseStats,
    PackageType,
    PiracyLog,
    PiracyReport,
    utcnow,
)
from keybind.server.domain.base_handler import LicenseEventHandler
from keybind.server.keygen import mask_license_key

if TYPE_CHECKING:
    from keybind.common.interfaces import IAuditLog, ILicenseStore
    from keybind.common.models import CreateLicenseRequest, UpdateLicenseRequest
    from keybind.server.keygen import KeyGenerator

RECENT_LOGS_PER_LICENSE = 3
PIRACY_LOG_LIMIT = 100
HOTSPOT_LIMIT = 5


def check_admin_password(provided: str | None, expected: str | None) -> None:
    """Raise AdminAuthError unless the provided password matches."""
    if expected is None or provided is None:
        raise AdminAuthError
    if not hmac.compare_digest(provided.encode(), expected.encode()):
        raise AdminAuthError


def _brief(lic: License) -> LicenseBrief:
    return LicenseBrief(
        id=lic.id,
        key=lic.key,
        holder_name=lic.holder_name,
        office_name=lic.office_name,
        holder_phone=lic.holder_phone,
        bound_domain=lic.bound_domain,
        piracy_attempts=lic.piracy_attempts,
        last_piracy_at=lic.last_piracy_at,
        is_active=lic.is_active,
    )


class AdminHandler(LicenseEventHandler):
    """Handles admin requests: create, patch, unbind and reporting."""

    def __init__(  # noqa: PLR0913
        self,
        store: ILicenseStore,
        audit_log: IAuditLog,
        key_generator: KeyGenerator,
        max_retries: int = 5,
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__(store, audit_log, max_retries=max_retries, clock=clock)
        self.key_generator = key_generator

    @staticmethod
    def _package_type(value: str) -> PackageType:
        try:
            return PackageType(value)
        except ValueError as e:
            msg = f"Invalid package type: {value}"
            raise InvalidLicenseDataError(msg) from e

    def _get(self, license_id: str) -> License:
        lic = self.store.find_by_id(license_id)
        if lic is None:
            raise LicenseNotFoundError(f"License not found: {license_id}")
        return lic

    def create_license(self, req: CreateLicenseRequest) -> License:
        """Create a license with a fresh key.

        A key collision surfaces as DuplicateKeyError from the store.
        """
        if not req.package_type or not req.holder_name:
            msg = "packageType and holderName are required"
            raise InvalidLicenseDataError(msg)

        lic = License(
            key=self.key_generator.generate_key(),
            package_type=self._package_type(req.package_type),
            holder_name=req.holder_name,
            office_name=req.office_name or None,
            holder_email=req.holder_email or None,
            holder_phone=req.holder_phone or None,
            address=req.address or None,
            bound_domain=req.bound_domain or None,
            expires_at=req.expires_at,
            notes=req.notes or None,
            created_at=self.clock(),
        )
        created = self.store.create(lic)
        self.logger.info(
            "Created %s license %s for %s",
            created.package_type.value,
            mask_license_key(created.key),
            created.holder_name,
        )
        return created

    def update_license(self, license_id: str, req: UpdateLicenseRequest) -> License:
        """Apply the fields the admin actually sent."""
        patch = req.model_dump(exclude_unset=True)
        if "package_type" in patch:
            patch["package_type"] = self._package_type(patch["package_type"] or "")
        if "is_active" in patch and patch["is_active"] is None:
            msg = "isActive cannot be null"
            raise InvalidLicenseDataError(msg)
        if "holder_name" in patch and not patch["holder_name"]:
            msg = "holderName cannot be empty"
            raise InvalidLicenseDataError(msg)
        if not patch:
            return self._get(license_id)

        updated = self.store.update(license_id, patch)
        self.logger.info(
            "Updated license %s: %s", license_id, ", ".join(sorted(patch))
        )
        return updated

    def unbind(self, license_id: str) -> License:
        """Release the domain binding so the key can be activated again.

        The piracy counter is left as it is.
        """
        for _ in range(self.max_retries):
            lic = self._get(license_id)
            updated = self.store.compare_and_update(
                lic.id,
                lic.version,
                {"bound_domain": None, "server_hash": None, "activated_at": None},
            )
            if updated is None:
                continue
            self.logger.info(
                "Unbound license %s from %s",
                mask_license_key(lic.key),
                lic.bound_domain or "none",
            )
            self._log_event(
                updated,
                AuditAction.UNBIND,
                None,
                None,
                None,
                None,
                f"Domain unbound by admin. Previous: {lic.bound_domain or 'none'}",
            )
            return updated

        msg = f"Gave up unbinding license after {self.max_retries} conflicts"
        raise StoreConflictError(msg)

    def unbind_key(self, key: str) -> License:
        lic = self.store.find_by_key(key)
        if lic is None:
            raise LicenseNotFoundError(f"License key not found: {key}")
        return self.unbind(lic.id)

    def list_licenses(self) -> list[LicenseListItem]:
        """All licenses, newest first, each with its latest log entries."""
        licenses = sorted(self.store.all(), key=lambda lic: lic.created_at, reverse=True)
        return [
            LicenseListItem(
                **lic.model_dump(),
                recent_logs=self.audit_log.for_license(
                    lic.id, limit=RECENT_LOGS_PER_LICENSE
                ),
            )
            for lic in licenses
        ]

    def _suspicious(self) -> list[License]:
        return sorted(
            (lic for lic in self.store.all() if lic.piracy_attempts > 0),
            key=lambda lic: lic.piracy_attempts,
            reverse=True,
        )

    def stats(self) -> LicenseStats:
        return LicenseStats(
            total=self.store.count(),
            active=self.store.count(lambda lic: lic.is_active),
            bound=self.store.count(lambda lic: lic.is_bound),
            total_piracy_attempts=self.audit_log.count(is_piracy=True),
            by_package=self.store.count_by_package(),
            piracy_hotspots=[_brief(lic) for lic in self._suspicious()[:HOTSPOT_LIMIT]],
        )

    def piracy_report(self) -> PiracyReport:
        licenses = {lic.id: lic for lic in self.store.all()}
        logs = []
        for entry in self.audit_log.piracy_entries(limit=PIRACY_LOG_LIMIT):
            lic = licenses.get(entry.license_id)
            logs.append(
                PiracyLog(**entry.model_dump(), license=_brief(lic) if lic else None)
            )
        return PiracyReport(
            piracy_logs=logs,
            suspicious_licenses=[_brief(lic) for lic in self._suspicious()],
        )
