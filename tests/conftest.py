from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from keybind.common.models import License, PackageType, PiracyAlert
from keybind.server.audit_log import AuditLog
from keybind.server.domain.activate_handler import ActivateHandler
from keybind.server.domain.verify_handler import VerifyHandler
from keybind.server.store import LicenseStore

START = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Controllable replacement for utcnow."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class RecordingNotifier:
    def __init__(self) -> None:
        self.alerts: list[PiracyAlert] = []

    def notify(self, alert: PiracyAlert) -> None:
        self.alerts.append(alert)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> LicenseStore:
    return LicenseStore()


@pytest.fixture
def audit_log() -> AuditLog:
    return AuditLog()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def activate_handler(
    store: LicenseStore,
    audit_log: AuditLog,
    notifier: RecordingNotifier,
    clock: FakeClock,
) -> ActivateHandler:
    return ActivateHandler(store, audit_log, notifier, clock=clock)


@pytest.fixture
def verify_handler(
    store: LicenseStore, audit_log: AuditLog, clock: FakeClock
) -> VerifyHandler:
    return VerifyHandler(store, audit_log, clock=clock)


@pytest.fixture
def fresh_license(store: LicenseStore) -> License:
    """Unbound license from the reference scenario."""
    return store.create(
        License(
            key="NTRS-0001-0001-0001-0001",
            package_type=PackageType.COMPLETE,
            holder_name="Budi",
            office_name="Kantor Notaris Budi",
        )
    )


@pytest.fixture
def make_license(store: LicenseStore):
    """Factory creating licenses in the store with overridable fields."""
    counter = iter(range(1, 10_000))

    def _make(**fields: object) -> License:
        n = next(counter)
        data: dict[str, object] = {
            "key": f"NTRS-TEST-{n:04d}-AAAA-BBBB",
            "package_type": PackageType.COMPLETE,
            "holder_name": f"Holder {n}",
        }
        data.update(fields)
        return store.create(License(**data))

    return _make
