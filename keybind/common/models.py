"""
Pydantic models for licenses, audit entries and request/response validation.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class PackageType(str, Enum):
    COMPLETE = "complete"
    NO_AI = "no_ai"
    LIMITED_AI = "limited_ai"


class AuditAction(str, Enum):
    ACTIVATE = "activate"
    REJECT = "reject"
    PIRACY_ATTEMPT = "piracy_attempt"
    UNBIND = "unbind"


class Outcome(str, Enum):
    """Result of an activation or verification request."""

    OK = "ok"
    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    EXPIRED = "expired"
    DOMAIN_CONFLICT = "domain_conflict"  # activate on a foreign domain
    DOMAIN_MISMATCH = "domain_mismatch"  # verify on a foreign domain


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class License(CamelModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    key: str
    package_type: PackageType
    holder_name: str
    office_name: str | None = None
    holder_email: str | None = None
    holder_phone: str | None = None
    address: str | None = None
    notes: str | None = None
    is_active: bool = True
    bound_domain: str | None = None
    server_hash: str | None = None
    activated_at: datetime | None = None
    expires_at: datetime | None = None
    last_verified: datetime | None = None
    piracy_attempts: int = Field(default=0, ge=0)
    last_piracy_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    # Store revision for compare-and-update, never serialized
    version: int = Field(default=0, exclude=True)

    @field_validator(
        "activated_at",
        "expires_at",
        "last_verified",
        "last_piracy_at",
        "created_at",
    )
    @classmethod
    def _timestamps_are_utc(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    @property
    def is_bound(self) -> bool:
        return self.bound_domain is not None

    def is_expired(self, now: datetime) -> bool:
        """Expiry is strict: a license expiring exactly at ``now`` is valid."""
        return self.expires_at is not None and now > self.expires_at


class AuditLogEntry(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    license_id: str
    action: AuditAction
    domain: str | None = None
    server_hash: str | None = None
    ip: str | None = None
    user_agent: str | None = None
    details: str = ""
    is_piracy: bool = False
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("created_at")
    @classmethod
    def _created_at_is_utc(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)


class PiracyAlert(CamelModel):
    """Payload handed to piracy notifiers."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    license_key: str  # masked
    holder_name: str
    office_name: str | None = None
    bound_domain: str
    attempted_domain: str
    attempted_ip: str
    user_agent: str
    attempt_count: int
    timestamp: str


class LicenseSummary(CamelModel):
    """Client-facing view of a bound license, without internal fields."""

    key: str
    package_type: PackageType
    holder_name: str
    office_name: str | None = None
    domain: str
    expires_at: datetime | None = None
    activated_at: datetime


class ActivateResult(BaseModel):
    outcome: Outcome
    license: LicenseSummary | None = None
    piracy_attempts: int | None = None

    @property
    def success(self) -> bool:
        return self.outcome is Outcome.OK


class VerifyResult(BaseModel):
    outcome: Outcome
    package_type: PackageType | None = None
    expires_at: datetime | None = None
    piracy_attempts: int | None = None

    @property
    def valid(self) -> bool:
        return self.outcome is Outcome.OK


class LicenseRequest(CamelModel):
    license_key: str | None = None
    domain: str | None = None
    server_hash: str | None = None


class ActivateRequest(LicenseRequest):
    pass


class VerifyRequest(LicenseRequest):
    pass


class ActivateResponse(CamelModel):
    success: bool
    error: str | None = None
    license: LicenseSummary | None = None


class VerifyResponse(CamelModel):
    valid: bool
    error: str | None = None
    package_type: PackageType | None = None
    expires_at: datetime | None = None


class CreateLicenseRequest(CamelModel):
    package_type: str | None = None
    holder_name: str | None = None
    office_name: str | None = None
    holder_email: str | None = None
    holder_phone: str | None = None
    address: str | None = None
    bound_domain: str | None = None
    expires_at: datetime | None = None
    notes: str | None = None


class UpdateLicenseRequest(CamelModel):
    """Whitelisted admin patch; only fields explicitly sent are applied."""

    is_active: bool | None = None
    expires_at: datetime | None = None
    notes: str | None = None
    package_type: str | None = None
    holder_name: str | None = None
    office_name: str | None = None
    holder_email: str | None = None
    holder_phone: str | None = None
    address: str | None = None

    @field_validator("expires_at")
    @classmethod
    def _expires_at_is_utc(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)


class LicenseListItem(License):
    recent_logs: list[AuditLogEntry] = Field(default_factory=list)


class LicenseBrief(CamelModel):
    id: str
    key: str
    holder_name: str
    office_name: str | None = None
    holder_phone: str | None = None
    bound_domain: str | None = None
    piracy_attempts: int
    last_piracy_at: datetime | None = None
    is_active: bool


class PiracyLog(AuditLogEntry):
    license: LicenseBrief | None = None


class PiracyReport(CamelModel):
    piracy_logs: list[PiracyLog]
    suspicious_licenses: list[LicenseBrief]


class LicenseStats(CamelModel):
    total: int
    active: int
    bound: int
    total_piracy_attempts: int
    by_package: dict[str, int]
    piracy_hotspots: list[LicenseBrief]
