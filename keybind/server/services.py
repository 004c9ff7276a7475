"""Business logic services for the license server.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable

from keybind.common.models import (
    ActivateResponse,
    Outcome,
    VerifyResponse,
    utcnow,
)
from keybind.server.domain.activate_handler import ACTIVATE_ERRORS, ActivateHandler
from keybind.server.domain.admin_handler import AdminHandler
from keybind.server.domain.verify_handler import VERIFY_ERRORS, VerifyHandler

if TYPE_CHECKING:
    from keybind.common.config import Config
    from keybind.common.interfaces import IAuditLog, ILicenseStore, IPiracyNotifier
    from keybind.common.models import (
        ActivateRequest,
        CreateLicenseRequest,
        License,
        LicenseListItem,
        LicenseStats,
        PiracyReport,
        UpdateLicenseRequest,
        VerifyRequest,
    )
    from keybind.server.keygen import KeyGenerator


class LicenseService:
    """Handles business logic for the license server."""

    def __init__(  # noqa: PLR0913
        self,
        config: Config,
        store: ILicenseStore,
        audit_log: IAuditLog,
        notifier: IPiracyNotifier,
        key_generator: KeyGenerator,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config = config
        self.store = store
        self.audit_log = audit_log
        self.notifier = notifier

        # Initialize handlers
        self.activate_handler = ActivateHandler(
            store=store,
            audit_log=audit_log,
            notifier=notifier,
            max_retries=config.STORE_MAX_RETRIES,
            clock=clock,
        )
        self.verify_handler = VerifyHandler(
            store=store,
            audit_log=audit_log,
            max_retries=config.STORE_MAX_RETRIES,
            clock=clock,
        )
        self.admin_handler = AdminHandler(
            store=store,
            audit_log=audit_log,
            key_generator=key_generator,
            max_retries=config.STORE_MAX_RETRIES,
            clock=clock,
        )

    def health(self) -> dict[str, Any]:
        """Health check endpoint."""
        return {"status": "ok", "timestamp": int(time.time())}

    def activate(
        self, req: ActivateRequest, client_ip: str, user_agent: str
    ) -> tuple[int, ActivateResponse]:
        """Handle /api/licenses/activate business logic.

        Returns the HTTP status together with the response body.
        """
        result = self.activate_handler.handle_activate(
            key=req.license_key or "",
            domain=req.domain or "",
            server_hash=req.server_hash,
            client_ip=client_ip,
            user_agent=user_agent,
        )
        if result.outcome is Outcome.OK:
            return 200, ActivateResponse(success=True, license=result.license)
        status_code, message = ACTIVATE_ERRORS[result.outcome]
        return status_code, ActivateResponse(success=False, error=message)

    def verify(
        self, req: VerifyRequest, client_ip: str, user_agent: str
    ) -> VerifyResponse:
        """Handle /api/licenses/verify business logic."""
        result = self.verify_handler.handle_verify(
            key=req.license_key or "",
            domain=req.domain or "",
            server_hash=req.server_hash,
            client_ip=client_ip,
            user_agent=user_agent,
        )
        if result.outcome is Outcome.OK:
            return VerifyResponse(
                valid=True,
                package_type=result.package_type,
                expires_at=result.expires_at,
            )
        return VerifyResponse(valid=False, error=VERIFY_ERRORS[result.outcome])

    def list_licenses(self) -> list[LicenseListItem]:
        return self.admin_handler.list_licenses()

    def create_license(self, req: CreateLicenseRequest) -> License:
        return self.admin_handler.create_license(req)

    def update_license(self, license_id: str, req: UpdateLicenseRequest) -> License:
        return self.admin_handler.update_license(license_id, req)

    def unbind(self, license_id: str) -> License:
        return self.admin_handler.unbind(license_id)

    def stats(self) -> LicenseStats:
        return self.admin_handler.stats()

    def piracy_report(self) -> PiracyReport:
        return self.admin_handler.piracy_report()
