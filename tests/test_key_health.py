import sys, pathlib; sys.path.insert(0, str(pathlib.Path(__file__).resolve().parents[1]))
import threading

from llm_quiz_forge.core.key_health import KeyHealthRegistry
from llm_quiz_forge.core.types import (
    Credential,
    CredentialOrigin,
    FailureKind,
    KeyStatus,
    mask_credential,
)

SECRET = "AIzaSyD-very-secret-value-123456"


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_mask_never_reveals_whole_key():
    assert mask_credential(SECRET) == "...123456"
    assert mask_credential("ab") == "..."
    assert mask_credential("abcdef") == "...ef"
    assert SECRET not in repr(Credential(SECRET))
    assert SECRET not in str(Credential(SECRET, CredentialOrigin.USER))


def test_ensure_creates_single_active_record():
    registry = KeyHealthRegistry()
    cred = Credential(SECRET)
    registry.ensure(cred)
    registry.ensure(cred)
    assert len(registry) == 1
    record = registry.get(cred)
    assert record.status is KeyStatus.ACTIVE
    assert record.usage_count == 0 and record.error_count == 0


def test_failure_kinds_map_to_status():
    registry = KeyHealthRegistry()
    throttled = Credential("key-throttled-0000000000")
    broken = Credential("key-broken-00000000000000")
    registry.record_failure(throttled, FailureKind.THROTTLED)
    registry.record_failure(broken, FailureKind.TRANSPORT)
    assert registry.get(throttled).status is KeyStatus.RATE_LIMITED
    assert registry.get(broken).status is KeyStatus.ERROR
    assert registry.get(broken).error_count == 1


def test_success_restores_active_and_counts_usage():
    clock = FakeClock()
    registry = KeyHealthRegistry(clock=clock)
    cred = Credential(SECRET)
    registry.record_failure(cred, FailureKind.THROTTLED)
    clock.now += 5
    registry.record_success(cred)
    record = registry.get(cred)
    assert record.status is KeyStatus.ACTIVE
    assert record.usage_count == 1
    assert record.last_used_at == clock.now


def test_cooldown_window():
    clock = FakeClock()
    registry = KeyHealthRegistry(cooldown_seconds=60, clock=clock)
    cred = Credential(SECRET)
    assert not registry.is_cooling_down(cred)

    registry.record_failure(cred, FailureKind.THROTTLED)
    clock.now += 59
    assert registry.is_cooling_down(cred)
    clock.now += 1
    assert not registry.is_cooling_down(cred)
    assert registry.is_cooling_down(cred, window=120)


def test_non_throttle_errors_do_not_cool_down():
    registry = KeyHealthRegistry(clock=FakeClock())
    cred = Credential(SECRET)
    registry.record_failure(cred, FailureKind.ERROR)
    assert not registry.is_cooling_down(cred)


def test_snapshot_is_masked_and_summarised():
    registry = KeyHealthRegistry(clock=FakeClock())
    user = Credential("user-key-abcdefghijklmnop", CredentialOrigin.USER)
    system = Credential(SECRET)
    registry.record_success(user)
    registry.record_failure(system, FailureKind.THROTTLED)

    rows = registry.snapshot()
    assert len(rows) == 2
    for row in rows:
        assert row["masked_id"].startswith("...")
    assert SECRET not in str(rows)
    by_origin = {row["origin"]: row for row in rows}
    assert by_origin["USER"]["usage_count"] == 1
    assert by_origin["SYSTEM"]["status"] == "RATE_LIMITED"
    assert by_origin["SYSTEM"]["last_error_at"].startswith("1970-01-01")

    summary = registry.summary()
    assert summary["pool_size"] == 2
    assert summary["total_usage"] == 1
    assert summary["total_errors"] == 1
    assert summary["by_status"] == {"ACTIVE": 1, "RATE_LIMITED": 1, "ERROR": 0}


def test_get_returns_a_copy():
    registry = KeyHealthRegistry()
    cred = Credential(SECRET)
    registry.record_success(cred)
    copy = registry.get(cred)
    copy.usage_count = 99
    assert registry.get(cred).usage_count == 1
    assert registry.get(Credential("never-seen-key-000000000")) is None


def test_concurrent_updates_are_not_lost():
    registry = KeyHealthRegistry()
    cred = Credential(SECRET)

    def hammer():
        for _ in range(500):
            registry.record_success(cred)

    threads = [threading.Thread(target=hammer) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert registry.get(cred).usage_count == 4000
