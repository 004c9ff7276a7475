"""
License client used by licensed application instances.
"""

from __future__ import annotations

import logging
from typing import Any

import requests
from pydantic import BaseModel, ValidationError

from keybind.common.config import Config
from keybind.common.models import (
    ActivateRequest,
    ActivateResponse,
    VerifyRequest,
    VerifyResponse,
)

logger = logging.getLogger(__name__)


class LicenseClientError(Exception):
    """Raised when the license server cannot be reached or answers garbage."""


class LicenseClient:
    """Activates once at install time, then verifies periodically.

    Business rejections (unknown key, expired, foreign domain...) come back
    as responses with ``success``/``valid`` set to False. Only transport and
    server failures raise LicenseClientError.
    """

    def __init__(  # noqa: PLR0913
        self,
        license_key: str,
        domain: str,
        server_url: str | None = None,
        server_hash: str | None = None,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ):
        self.server_url = (server_url or Config().SERVER_URL).rstrip("/")
        self.license_key = license_key
        self.domain = domain
        self.server_hash = server_hash
        self.timeout = timeout
        self.session = session or requests.Session()

    def _post(self, path: str, req: BaseModel) -> dict[str, Any]:
        url = f"{self.server_url}{path}"
        try:
            response = self.session.post(
                url,
                json=req.model_dump(by_alias=True, exclude_none=True),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            msg = f"License server unreachable: {e}"
            raise LicenseClientError(msg) from e

        if response.status_code >= 500:  # noqa: PLR2004
            msg = f"License server error ({response.status_code})"
            raise LicenseClientError(msg)
        try:
            return response.json()
        except ValueError as e:
            msg = "License server returned invalid JSON"
            raise LicenseClientError(msg) from e

    def _request_fields(self) -> dict[str, Any]:
        return {
            "license_key": self.license_key,
            "domain": self.domain,
            "server_hash": self.server_hash,
        }

    def activate(self) -> ActivateResponse:
        """Bind the license to this domain."""
        data = self._post(
            "/api/licenses/activate", ActivateRequest(**self._request_fields())
        )
        try:
            response = ActivateResponse.model_validate(data)
        except ValidationError as e:
            msg = "Unexpected activation response"
            raise LicenseClientError(msg) from e
        if response.success:
            logger.info("License activated for %s", self.domain)
        else:
            logger.warning("License activation failed: %s", response.error)
        return response

    def verify(self) -> VerifyResponse:
        """Check that the license is still valid for this domain."""
        data = self._post(
            "/api/licenses/verify", VerifyRequest(**self._request_fields())
        )
        try:
            response = VerifyResponse.model_validate(data)
        except ValidationError as e:
            msg = "Unexpected verification response"
            raise LicenseClientError(msg) from e
        if not response.valid:
            logger.warning("License verification failed: %s", response.error)
        return response

    def is_license_valid(self) -> bool:
        """Verify, treating an unreachable server as invalid."""
        try:
            return self.verify().valid
        except LicenseClientError:
            logger.exception("License verification error")
            return False
