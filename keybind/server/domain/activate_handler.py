"""
Activate request handler: binds a license to the first domain that presents it.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Callable

from keybind.common.exceptions import StoreConflictError
from keybind.common.models import (
    ActivateResult,
    AuditAction,
    License,
    LicenseSummary,
    Outcome,
    PiracyAlert,
    utcnow,
)
from keybind.server.domain.base_handler import LicenseEventHandler
from keybind.server.keygen import canonicalize_key, mask_license_key

if TYPE_CHECKING:
    from keybind.common.interfaces import IAuditLog, ILicenseStore, IPiracyNotifier

# Status code and client message per failed outcome
ACTIVATE_ERRORS: dict[Outcome, tuple[int, str]] = {
    Outcome.NOT_FOUND: (404, "License key not found"),
    Outcome.INACTIVE: (403, "License key is no longer active"),
    Outcome.EXPIRED: (403, "License key has expired"),
    Outcome.DOMAIN_CONFLICT: (
        403,
        "License key is already bound to another domain. "
        "This attempt has been logged.",
    ),
}


class ActivateHandler(LicenseEventHandler):
    """Handles activation: reject, bind, or record a piracy attempt.

    Activation from the domain a license is already bound to succeeds again
    without touching the original activation time or the piracy counter.
    Activation from any other domain is a piracy attempt: the counter goes up
    by exactly one, the attempt is audited, and the notifier is told.
    """

    def __init__(  # noqa: PLR0913
        self,
        store: ILicenseStore,
        audit_log: IAuditLog,
        notifier: IPiracyNotifier,
        max_retries: int = 5,
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__(store, audit_log, max_retries=max_retries, clock=clock)
        self.notifier = notifier

    def handle_activate(
        self,
        key: str,
        domain: str,
        server_hash: str | None = None,
        client_ip: str = "unknown",
        user_agent: str = "unknown",
    ) -> ActivateResult:
        """Handle activation of ``key`` for ``domain``."""
        for _ in range(self.max_retries):
            lic = self.store.find_by_key(key)
            if lic is None:
                self.logger.info(
                    "Activation with unknown key %s",
                    mask_license_key(canonicalize_key(key)),
                )
                return ActivateResult(outcome=Outcome.NOT_FOUND)

            now = self.clock()
            if not lic.is_active:
                self._log_event(
                    lic,
                    AuditAction.REJECT,
                    domain,
                    server_hash,
                    client_ip,
                    user_agent,
                    "Key deactivated",
                )
                return ActivateResult(outcome=Outcome.INACTIVE)

            if lic.is_expired(now):
                self._log_event(
                    lic,
                    AuditAction.REJECT,
                    domain,
                    server_hash,
                    client_ip,
                    user_agent,
                    "Key expired",
                )
                return ActivateResult(outcome=Outcome.EXPIRED)

            if lic.is_bound and lic.bound_domain != domain:
                result = self._record_piracy(
                    lic, now, domain, server_hash, client_ip, user_agent
                )
            else:
                result = self._bind(
                    lic, now, domain, server_hash, client_ip, user_agent
                )
            if result is not None:
                return result

        msg = f"Gave up activating license after {self.max_retries} conflicts"
        raise StoreConflictError(msg)

    def _bind(  # noqa: PLR0913
        self,
        lic: License,
        now: datetime,
        domain: str,
        server_hash: str | None,
        client_ip: str,
        user_agent: str,
    ) -> ActivateResult | None:
        updated = self.store.compare_and_update(
            lic.id,
            lic.version,
            {
                "bound_domain": domain,
                "server_hash": server_hash or None,
                "activated_at": lic.activated_at or now,
                "last_verified": now,
            },
        )
        if updated is None:
            return None

        self.logger.info(
            "License %s activated for %s", mask_license_key(lic.key), domain
        )
        self._log_event(
            updated,
            AuditAction.ACTIVATE,
            domain,
            server_hash,
            client_ip,
            user_agent,
            f"Activation OK. Holder: {lic.holder_name} ({lic.office_name or '-'})",
        )
        return ActivateResult(
            outcome=Outcome.OK,
            license=LicenseSummary(
                key=updated.key,
                package_type=updated.package_type,
                holder_name=updated.holder_name,
                office_name=updated.office_name,
                domain=domain,
                expires_at=updated.expires_at,
                activated_at=updated.activated_at or now,
            ),
        )

    def _record_piracy(  # noqa: PLR0913
        self,
        lic: License,
        now: datetime,
        domain: str,
        server_hash: str | None,
        client_ip: str,
        user_agent: str,
    ) -> ActivateResult | None:
        attempts = lic.piracy_attempts + 1
        updated = self.store.compare_and_update(
            lic.id,
            lic.version,
            {"piracy_attempts": attempts, "last_piracy_at": now},
        )
        if updated is None:
            return None

        masked = mask_license_key(lic.key)
        self.logger.warning(
            "Piracy attempt #%d on %s: bound to %s, tried from %s (%s)",
            attempts,
            masked,
            lic.bound_domain,
            domain,
            client_ip,
        )
        self._log_event(
            updated,
            AuditAction.PIRACY_ATTEMPT,
            domain,
            server_hash,
            client_ip,
            user_agent,
            f"PIRACY! Key of {lic.holder_name} ({lic.office_name or '-'}) "
            f"is bound to {lic.bound_domain}, tried from {domain}. "
            f"IP: {client_ip}. Attempt #{attempts}.",
            is_piracy=True,
        )
        self._send_alert(
            PiracyAlert(
                license_key=masked,
                holder_name=lic.holder_name,
                office_name=lic.office_name,
                bound_domain=lic.bound_domain or "",
                attempted_domain=domain,
                attempted_ip=client_ip,
                user_agent=user_agent,
                attempt_count=attempts,
                timestamp=now.isoformat(),
            )
        )
        return ActivateResult(
            outcome=Outcome.DOMAIN_CONFLICT, piracy_attempts=attempts
        )

    def _send_alert(self, alert: PiracyAlert) -> None:
        try:
            self.notifier.notify(alert)
        except Exception:
            self.logger.exception(
                "Piracy notifier failed for %s", alert.license_key
            )
