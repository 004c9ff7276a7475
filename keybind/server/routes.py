"""
Routes for the license server.
"""

import logging
from typing import Any

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from keybind.common.exceptions import LicenseError
from keybind.common.models import (
    ActivateRequest,
    CreateLicenseRequest,
    UpdateLicenseRequest,
    VerifyRequest,
)
from keybind.server.domain.admin_handler import check_admin_password

from .services import LicenseService

logger = logging.getLogger(__name__)


def client_ip(request: Request) -> str:
    """Caller address, preferring proxy headers."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def user_agent(request: Request) -> str:
    return request.headers.get("user-agent") or "unknown"


def _http_error(e: LicenseError) -> HTTPException:
    if e.status_code >= 500:  # noqa: PLR2004
        logger.error("Admin request failed: %s", e)
        return HTTPException(e.status_code, "Internal server error")
    return HTTPException(e.status_code, str(e))


def _dump(model: Any, exclude_unset: bool = False) -> dict[str, Any]:  # noqa: FBT001, FBT002
    return model.model_dump(mode="json", by_alias=True, exclude_unset=exclude_unset)


class LicenseRoutes:
    """Handles FastAPI routes for the license server.

    Activate, verify and admin endpoints are plain ``def`` so FastAPI runs
    them in its threadpool; the store does its own locking.
    """

    def __init__(self, service: LicenseService, admin_password: str | None):
        self.service = service
        self.admin_password = admin_password

    def setup_routes(self, app: FastAPI) -> None:
        """Setup API routes on the FastAPI app."""

        app.get("/health")(self.health)
        app.post("/api/licenses/activate")(self.activate)
        app.post("/api/licenses/verify")(self.verify)
        if self.admin_password:
            app.get("/api/admin/licenses")(self.list_licenses)
            app.post("/api/admin/licenses")(self.create_license)
            app.patch("/api/admin/licenses/{license_id}")(self.update_license)
            app.delete("/api/admin/licenses/{license_id}")(self.unbind)
            app.get("/api/admin/stats")(self.stats)
            app.get("/api/admin/piracy")(self.piracy)
        else:
            logger.info("No admin password configured, admin routes disabled")

    async def health(self) -> dict[str, Any]:
        """Handle /health endpoint."""
        return self.service.health()

    def activate(self, req: ActivateRequest, request: Request) -> JSONResponse:
        """Handle /api/licenses/activate endpoint."""
        if not req.license_key or not req.domain:
            return JSONResponse(
                {"success": False, "error": "licenseKey and domain are required"},
                status_code=400,
            )
        try:
            status_code, response = self.service.activate(
                req, client_ip(request), user_agent(request)
            )
        except Exception:
            logger.exception("Activation error")
            return JSONResponse(
                {"success": False, "error": "Internal server error"},
                status_code=500,
            )
        return JSONResponse(
            _dump(response, exclude_unset=True), status_code=status_code
        )

    def verify(self, req: VerifyRequest, request: Request) -> JSONResponse:
        """Handle /api/licenses/verify endpoint."""
        if not req.license_key or not req.domain:
            return JSONResponse(
                {"valid": False, "error": "Missing parameters"}, status_code=400
            )
        try:
            response = self.service.verify(
                req, client_ip(request), user_agent(request)
            )
        except Exception:
            logger.exception("Verify error")
            return JSONResponse(
                {"valid": False, "error": "Server error"}, status_code=500
            )
        return JSONResponse(_dump(response, exclude_unset=True))

    def _authorize(self, password: str | None) -> None:
        try:
            check_admin_password(password, self.admin_password)
        except LicenseError as e:
            raise HTTPException(e.status_code, str(e)) from e

    def list_licenses(
        self, x_admin_password: str | None = Header(default=None)
    ) -> dict[str, Any]:
        """Handle GET /api/admin/licenses endpoint."""
        self._authorize(x_admin_password)
        licenses = self.service.list_licenses()
        return {"licenses": [_dump(item) for item in licenses]}

    def create_license(
        self,
        req: CreateLicenseRequest,
        x_admin_password: str | None = Header(default=None),
    ) -> dict[str, Any]:
        """Handle POST /api/admin/licenses endpoint."""
        self._authorize(x_admin_password)
        try:
            lic = self.service.create_license(req)
        except LicenseError as e:
            raise _http_error(e) from e
        return {"success": True, "license": _dump(lic)}

    def update_license(
        self,
        license_id: str,
        req: UpdateLicenseRequest,
        x_admin_password: str | None = Header(default=None),
    ) -> dict[str, Any]:
        """Handle PATCH /api/admin/licenses/{license_id} endpoint."""
        self._authorize(x_admin_password)
        try:
            lic = self.service.update_license(license_id, req)
        except LicenseError as e:
            raise _http_error(e) from e
        return {"success": True, "license": _dump(lic)}

    def unbind(
        self, license_id: str, x_admin_password: str | None = Header(default=None)
    ) -> dict[str, Any]:
        """Handle DELETE /api/admin/licenses/{license_id} endpoint."""
        self._authorize(x_admin_password)
        try:
            lic = self.service.unbind(license_id)
        except LicenseError as e:
            raise _http_error(e) from e
        return {"success": True, "license": _dump(lic)}

    def stats(
        self, x_admin_password: str | None = Header(default=None)
    ) -> dict[str, Any]:
        """Handle GET /api/admin/stats endpoint."""
        self._authorize(x_admin_password)
        return _dump(self.service.stats())

    def piracy(
        self, x_admin_password: str | None = Header(default=None)
    ) -> dict[str, Any]:
        """Handle GET /api/admin/piracy endpoint."""
        self._authorize(x_admin_password)
        return _dump(self.service.piracy_report())
