"""
Verify request handler: periodic checks from already activated installs.
"""

from __future__ import annotations

from keybind.common.exceptions import StoreConflictError
from keybind.common.models import AuditAction, Outcome, VerifyResult
from keybind.server.domain.base_handler import LicenseEventHandler
from keybind.server.keygen import mask_license_key

# Client message per failed outcome; verify failures are reported with 200
VERIFY_ERRORS: dict[Outcome, str] = {
    Outcome.NOT_FOUND: "License not found",
    Outcome.INACTIVE: "License is not active",
    Outcome.EXPIRED: "License has expired",
    Outcome.DOMAIN_MISMATCH: "Domain does not match",
}


class VerifyHandler(LicenseEventHandler):
    """Handles verification.

    Verification never binds: an unbound license verifies as valid from any
    domain but stays unbound until activated. Inactive and expired rejections
    are not audited here, and a domain mismatch is audited and counted but
    does not notify; only activation alerts.
    """

    def handle_verify(
        self,
        key: str,
        domain: str,
        server_hash: str | None = None,
        client_ip: str = "unknown",
        user_agent: str = "unknown",
    ) -> VerifyResult:
        """Handle verification of ``key`` from ``domain``."""
        for _ in range(self.max_retries):
            lic = self.store.find_by_key(key)
            if lic is None:
                return VerifyResult(outcome=Outcome.NOT_FOUND)
            if not lic.is_active:
                return VerifyResult(outcome=Outcome.INACTIVE)

            now = self.clock()
            if lic.is_expired(now):
                return VerifyResult(outcome=Outcome.EXPIRED)

            if lic.is_bound and lic.bound_domain != domain:
                attempts = lic.piracy_attempts + 1
                updated = self.store.compare_and_update(
                    lic.id,
                    lic.version,
                    {"piracy_attempts": attempts, "last_piracy_at": now},
                )
                if updated is None:
                    continue
                self.logger.warning(
                    "Verify domain mismatch on %s: bound to %s, tried from %s",
                    mask_license_key(lic.key),
                    lic.bound_domain,
                    domain,
                )
                self._log_event(
                    updated,
                    AuditAction.PIRACY_ATTEMPT,
                    domain,
                    server_hash,
                    client_ip,
                    user_agent,
                    f"Verify domain mismatch. Bound: {lic.bound_domain}, "
                    f"Tried: {domain}",
                    is_piracy=True,
                )
                return VerifyResult(
                    outcome=Outcome.DOMAIN_MISMATCH, piracy_attempts=attempts
                )

            updated = self.store.compare_and_update(
                lic.id, lic.version, {"last_verified": now}
            )
            if updated is None:
                continue
            return VerifyResult(
                outcome=Outcome.OK,
                package_type=updated.package_type,
                expires_at=updated.expires_at,
            )

        msg = f"Gave up verifying license after {self.max_retries} conflicts"
        raise StoreConflictError(msg)
