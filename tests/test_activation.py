import threading
from datetime import timedelta

import pytest

from keybind.common.exceptions import StoreConflictError, StoreError
from keybind.common.models import AuditAction, License, Outcome
from keybind.server.audit_log import AuditLog
from keybind.server.domain.activate_handler import ActivateHandler
from keybind.server.domain.verify_handler import VerifyHandler
from keybind.server.persistence import DataPersistence
from keybind.server.store import LicenseStore


def test_reference_scenario(
    activate_handler: ActivateHandler,
    verify_handler: VerifyHandler,
    store: LicenseStore,
    fresh_license: License,
    clock,
) -> None:
    """Bind to a.com, then b.com is refused on activate and on verify."""
    key = fresh_license.key

    result = activate_handler.handle_activate(key, "a.com")
    assert result.success
    lic = store.find_by_key(key)
    assert lic.bound_domain == "a.com"
    assert lic.activated_at == clock.now

    result = activate_handler.handle_activate(key, "b.com")
    assert result.outcome is Outcome.DOMAIN_CONFLICT
    assert store.find_by_key(key).piracy_attempts == 1

    assert verify_handler.handle_verify(key, "a.com").valid

    result = verify_handler.handle_verify(key, "b.com")
    assert result.outcome is Outcome.DOMAIN_MISMATCH
    lic = store.find_by_key(key)
    assert lic.piracy_attempts == 2  # noqa: PLR2004
    assert lic.bound_domain == "a.com"


def test_activation_success_summary(
    activate_handler: ActivateHandler, fresh_license: License, clock
) -> None:
    result = activate_handler.handle_activate(
        " ntrs-0001-0001-0001-0001 ", "a.com", server_hash="abc123"
    )
    summary = result.license
    assert summary is not None
    assert summary.key == "NTRS-0001-0001-0001-0001"
    assert summary.domain == "a.com"
    assert summary.holder_name == "Budi"
    assert summary.office_name == "Kantor Notaris Budi"
    assert summary.activated_at == clock.now
    assert summary.expires_at is None
    dumped = summary.model_dump()
    assert "id" not in dumped
    assert "server_hash" not in dumped


def test_activation_stores_binding_and_logs(
    activate_handler: ActivateHandler,
    store: LicenseStore,
    audit_log: AuditLog,
    fresh_license: License,
    clock,
) -> None:
    activate_handler.handle_activate(
        fresh_license.key, "a.com", server_hash="abc123", client_ip="1.2.3.4", user_agent="ua"
    )
    lic = store.find_by_id(fresh_license.id)
    assert lic.server_hash == "abc123"
    assert lic.last_verified == clock.now

    (entry,) = audit_log.for_license(fresh_license.id)
    assert entry.action is AuditAction.ACTIVATE
    assert entry.is_piracy is False
    assert entry.domain == "a.com"
    assert entry.ip == "1.2.3.4"
    assert entry.user_agent == "ua"
    assert "Budi" in entry.details


def test_reactivation_same_domain_is_idempotent(
    activate_handler: ActivateHandler,
    store: LicenseStore,
    notifier,
    fresh_license: License,
    clock,
) -> None:
    activate_handler.handle_activate(fresh_license.key, "a.com")
    first_activated_at = clock.now
    clock.advance(days=3)

    result = activate_handler.handle_activate(fresh_license.key, "a.com")
    assert result.success
    assert result.license.activated_at == first_activated_at
    lic = store.find_by_id(fresh_license.id)
    assert lic.activated_at == first_activated_at
    assert lic.last_verified == clock.now
    assert lic.piracy_attempts == 0
    assert notifier.alerts == []


def test_unknown_key_is_not_logged(
    activate_handler: ActivateHandler, audit_log: AuditLog
) -> None:
    result = activate_handler.handle_activate("NTRS-ZZZZ-ZZZZ-ZZZZ-ZZZZ", "a.com")
    assert result.outcome is Outcome.NOT_FOUND
    assert not result.success
    assert audit_log.count() == 0


def test_inactive_license_is_rejected_and_logged(
    activate_handler: ActivateHandler, audit_log: AuditLog, store: LicenseStore, make_license
) -> None:
    lic = make_license(is_active=False, bound_domain="a.com")
    result = activate_handler.handle_activate(lic.key, "a.com")
    assert result.outcome is Outcome.INACTIVE

    (entry,) = audit_log.for_license(lic.id)
    assert entry.action is AuditAction.REJECT
    assert entry.details == "Key deactivated"
    assert entry.is_piracy is False
    assert store.find_by_id(lic.id).piracy_attempts == 0


def test_inactive_wins_over_domain_mismatch(
    activate_handler: ActivateHandler, notifier, make_license
) -> None:
    lic = make_license(is_active=False, bound_domain="a.com")
    result = activate_handler.handle_activate(lic.key, "b.com")
    assert result.outcome is Outcome.INACTIVE
    assert notifier.alerts == []


def test_expired_license_is_rejected_even_on_bound_domain(
    activate_handler: ActivateHandler, audit_log: AuditLog, make_license, clock
) -> None:
    lic = make_license(bound_domain="a.com", expires_at=clock.now - timedelta(seconds=1))
    result = activate_handler.handle_activate(lic.key, "a.com")
    assert result.outcome is Outcome.EXPIRED
    (entry,) = audit_log.for_license(lic.id)
    assert entry.action is AuditAction.REJECT
    assert entry.details == "Key expired"


def test_license_expiring_now_is_still_valid(
    activate_handler: ActivateHandler, make_license, clock
) -> None:
    lic = make_license(expires_at=clock.now)
    result = activate_handler.handle_activate(lic.key, "a.com")
    assert result.success
    assert result.license.expires_at == clock.now


def test_piracy_attempt_records_and_notifies(
    activate_handler: ActivateHandler,
    store: LicenseStore,
    audit_log: AuditLog,
    notifier,
    make_license,
    clock,
) -> None:
    lic = make_license(
        key="NTRS-AB12-CD34-EF56-GH78",
        holder_name="Budi",
        office_name="Kantor Budi",
        bound_domain="a.com",
        piracy_attempts=4,
    )
    result = activate_handler.handle_activate(
        lic.key, "pirate.com", client_ip="6.6.6.6", user_agent="evil/1.0"
    )
    assert result.outcome is Outcome.DOMAIN_CONFLICT
    assert result.piracy_attempts == 5  # noqa: PLR2004

    stored = store.find_by_id(lic.id)
    assert stored.piracy_attempts == 5  # noqa: PLR2004
    assert stored.last_piracy_at == clock.now
    assert stored.bound_domain == "a.com"

    (entry,) = audit_log.for_license(lic.id)
    assert entry.action is AuditAction.PIRACY_ATTEMPT
    assert entry.is_piracy is True
    for fragment in ("Budi", "Kantor Budi", "a.com", "pirate.com", "6.6.6.6", "#5"):
        assert fragment in entry.details

    (alert,) = notifier.alerts
    assert alert.license_key == "NTRS-AB12-****-****-GH78"
    assert alert.holder_name == "Budi"
    assert alert.office_name == "Kantor Budi"
    assert alert.bound_domain == "a.com"
    assert alert.attempted_domain == "pirate.com"
    assert alert.attempted_ip == "6.6.6.6"
    assert alert.user_agent == "evil/1.0"
    assert alert.attempt_count == 5  # noqa: PLR2004
    assert alert.timestamp == clock.now.isoformat()


def test_notifier_failure_does_not_fail_activation(
    store: LicenseStore, audit_log: AuditLog, make_license
) -> None:
    class BrokenNotifier:
        def notify(self, alert: object) -> None:
            raise RuntimeError("webhook down")

    handler = ActivateHandler(store, audit_log, BrokenNotifier())
    lic = make_license(bound_domain="a.com")
    result = handler.handle_activate(lic.key, "b.com")
    assert result.outcome is Outcome.DOMAIN_CONFLICT
    assert store.find_by_id(lic.id).piracy_attempts == 1


def test_audit_failure_does_not_change_decision(
    store: LicenseStore, notifier, fresh_license: License
) -> None:
    class BrokenAuditLog(AuditLog):
        def append(self, entry: object) -> None:
            raise OSError("disk full")

    handler = ActivateHandler(store, BrokenAuditLog(), notifier)
    result = handler.handle_activate(fresh_license.key, "a.com")
    assert result.success
    assert store.find_by_id(fresh_license.id).bound_domain == "a.com"


def test_gives_up_after_repeated_conflicts(
    audit_log: AuditLog, notifier, fresh_license: License, store: LicenseStore
) -> None:
    class AlwaysConflictingStore(LicenseStore):
        def compare_and_update(self, license_id, expected_version, patch):  # noqa: ANN001
            return None

    conflicting = AlwaysConflictingStore()
    conflicting.create(fresh_license)
    handler = ActivateHandler(conflicting, audit_log, notifier, max_retries=3)
    with pytest.raises(StoreConflictError):
        handler.handle_activate(fresh_license.key, "a.com")
    assert audit_log.count() == 0


def test_racing_activations_bind_exactly_one_domain(
    store: LicenseStore, audit_log: AuditLog, notifier, make_license
) -> None:
    handler = ActivateHandler(store, audit_log, notifier, max_retries=10)
    for _ in range(20):
        lic = make_license()
        barrier = threading.Barrier(2)
        results = {}

        def activate(domain: str, key: str = lic.key, barrier=barrier, results=results) -> None:  # noqa: ANN001
            barrier.wait()
            results[domain] = handler.handle_activate(key, domain)

        threads = [
            threading.Thread(target=activate, args=(domain,)) for domain in ("a.com", "b.com")
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        outcomes = sorted(r.outcome.value for r in results.values())
        assert outcomes == ["domain_conflict", "ok"]
        stored = store.find_by_id(lic.id)
        winner = next(d for d, r in results.items() if r.success)
        assert stored.bound_domain == winner
        assert stored.piracy_attempts == 1


def test_concurrent_piracy_attempts_all_counted(
    store: LicenseStore, audit_log: AuditLog, notifier, make_license
) -> None:
    handler = ActivateHandler(store, audit_log, notifier, max_retries=100)
    lic = make_license(bound_domain="a.com")
    attempts = 12
    barrier = threading.Barrier(attempts)

    def attack(n: int) -> None:
        barrier.wait()
        handler.handle_activate(lic.key, f"pirate{n}.com")

    threads = [threading.Thread(target=attack, args=(n,)) for n in range(attempts)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert store.find_by_id(lic.id).piracy_attempts == attempts
    assert audit_log.count(is_piracy=True) == attempts
    assert sorted(a.attempt_count for a in notifier.alerts) == list(range(1, attempts + 1))


def test_unsaved_piracy_attempt_leaves_no_trace(
    tmp_path, monkeypatch: pytest.MonkeyPatch, audit_log: AuditLog, notifier, clock
) -> None:
    store = LicenseStore(tmp_path / "licenses.json")
    lic = store.create(
        License(
            key="NTRS-0001-0001-0001-0001",
            package_type="complete",
            holder_name="Budi",
            bound_domain="a.com",
        )
    )
    handler = ActivateHandler(store, audit_log, notifier, clock=clock)

    def broken_save(file_path, licenses) -> None:
        raise OSError("disk full")

    monkeypatch.setattr(DataPersistence, "save_licenses", staticmethod(broken_save))
    with pytest.raises(StoreError):
        handler.handle_activate(lic.key, "b.com")
    with pytest.raises(StoreError):
        VerifyHandler(store, audit_log, clock=clock).handle_verify(lic.key, "b.com")

    assert store.find_by_id(lic.id).piracy_attempts == 0
    assert audit_log.count() == 0
    assert notifier.alerts == []

    monkeypatch.undo()
    assert handler.handle_activate(lic.key, "b.com").piracy_attempts == 1
    assert LicenseStore(tmp_path / "licenses.json").find_by_id(lic.id).piracy_attempts == 1
