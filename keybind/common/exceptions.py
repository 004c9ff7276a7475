"""
Custom exceptions for the license system.
"""

from __future__ import annotations


class LicenseError(Exception):
    """Base exception carrying the HTTP status it maps to."""

    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.status_code = status_code


class LicenseNotFoundError(LicenseError):
    """Exception for an unknown license id or key."""

    def __init__(self, message: str = "License not found") -> None:
        super().__init__(message, 404)


class DuplicateKeyError(LicenseError):
    """Exception for a license key that already exists in the store."""

    def __init__(self, key: str) -> None:
        super().__init__(f"License key already exists: {key}", 409)
        self.key = key


class InvalidLicenseDataError(LicenseError):
    """Exception for rejected administrative input."""


class AdminAuthError(LicenseError):
    """Exception for a missing or wrong admin password."""

    def __init__(self, message: str = "Invalid admin password") -> None:
        super().__init__(message, 403)


class StoreError(LicenseError):
    """Exception for store or audit log failures."""

    def __init__(self, message: str) -> None:
        super().__init__(message, 500)


class StoreConflictError(StoreError):
    """Exception for a compare-and-update that kept losing the race."""
