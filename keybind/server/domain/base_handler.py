"""
Shared plumbing for the activation and verification handlers.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Callable

from keybind.common.models import AuditAction, AuditLogEntry, License, utcnow

if TYPE_CHECKING:
    from keybind.common.interfaces import IAuditLog, ILicenseStore


class LicenseEventHandler:
    """Base for handlers that read a license, decide, and record the event."""

    def __init__(
        self,
        store: ILicenseStore,
        audit_log: IAuditLog,
        max_retries: int = 5,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.audit_log = audit_log
        self.max_retries = max_retries
        self.clock = clock
        self.logger = logging.getLogger(self.__class__.__module__)

    def _log_event(  # noqa: PLR0913
        self,
        lic: License,
        action: AuditAction,
        domain: str | None,
        server_hash: str | None,
        client_ip: str | None,
        user_agent: str | None,
        details: str,
        *,
        is_piracy: bool = False,
    ) -> None:
        """Append an audit entry. The store write already happened and stands
        even if this fails, so failures are only reported."""
        entry = AuditLogEntry(
            license_id=lic.id,
            action=action,
            domain=domain,
            server_hash=server_hash,
            ip=client_ip,
            user_agent=user_agent,
            details=details,
            is_piracy=is_piracy,
            created_at=self.clock(),
        )
        try:
            self.audit_log.append(entry)
        except Exception:
            self.logger.exception(
                "Failed to write %s audit entry for license %s",
                action.value,
                lic.id,
            )
