from __future__ import annotations

import threading
import time
from datetime import datetime, timedelta, timezone

import pytest

from tenant_drive.config import TenantDriveConfig
from tenant_drive.errors import InvalidPath
from tenant_drive.services.capability_registry import CapabilityRegistry, CapabilitySweeper
from tenant_drive.telemetry import TelemetryCollector


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def _registry(clock=None):
    cfg = TenantDriveConfig.default()
    telemetry = TelemetryCollector(cfg.observability)
    kwargs = {"clock": clock} if clock is not None else {}
    return CapabilityRegistry(config=cfg, telemetry=telemetry, **kwargs)


def test_zero_ttl_defaults_to_24_hours_and_expires_lazily():
    clock = FakeClock()
    registry = _registry(clock)
    link = registry.create("u1", "/", "read", ttl_hours=0)

    assert link.expires_at - link.created_at == timedelta(hours=24)

    clock.now = link.expires_at - timedelta(seconds=1)
    assert registry.validate(link.token) == link

    clock.now = link.expires_at
    assert registry.validate(link.token) is None

    clock.now = link.expires_at + timedelta(seconds=1)
    assert registry.validate(link.token) is None
    # validate never prunes; the entry is still stored.
    assert len(registry) == 1


def test_negative_ttl_uses_default_and_positive_ttl_is_honoured():
    registry = _registry(FakeClock())
    assert registry.create("u1", "/", "read", ttl_hours=-5).expires_at - registry.clock() == timedelta(hours=24)
    assert registry.create("u1", "/", "read", ttl_hours=1).expires_at - registry.clock() == timedelta(hours=1)


def test_tokens_are_long_random_and_distinct_from_ids():
    registry = _registry()
    first = registry.create("u1", "/", "read")
    second = registry.create("u1", "/", "read")

    assert len(first.token) == 64
    int(first.token, 16)
    assert len(first.id) == 8
    assert first.token != second.token
    assert first.id != first.token


def test_unknown_and_empty_tokens_are_invalid():
    registry = _registry()
    registry.create("u1", "/", "write")
    assert registry.validate("nope") is None
    assert registry.validate("") is None
    assert registry.validate(None) is None


def test_permission_outside_read_write_becomes_empty():
    registry = _registry()
    assert registry.create("u1", "/", "admin").permission == ""
    assert registry.create("u1", "/", "write").permission == "write"


def test_scoped_path_is_cleaned_and_traversal_rejected():
    registry = _registry()
    assert registry.create("u1", "docs/", "read").path == "/docs"
    with pytest.raises(InvalidPath):
        registry.create("u1", "/docs/../../etc", "read")


def test_list_for_only_returns_callers_live_links():
    clock = FakeClock()
    registry = _registry(clock)
    mine = registry.create("u1", "/a", "read", ttl_hours=10)
    short = registry.create("u1", "/b", "read", ttl_hours=1)
    registry.create("u2", "/c", "write", ttl_hours=10)

    assert {link.id for link in registry.list_for("u1")} == {mine.id, short.id}

    clock.advance(hours=2)
    assert [link.id for link in registry.list_for("u1")] == [mine.id]
    assert registry.list_for("nobody") == []


def test_revoke_requires_matching_owner():
    registry = _registry()
    link = registry.create("ownerB", "/", "read")

    assert registry.revoke("ownerA", link.id) is False
    assert registry.validate(link.token) == link

    assert registry.revoke("ownerB", link.id) is True
    assert registry.validate(link.token) is None
    assert registry.revoke("ownerB", link.id) is False


def test_sweep_removes_only_expired_links():
    clock = FakeClock()
    registry = _registry(clock)
    registry.create("u1", "/", "read", ttl_hours=1)
    keep = registry.create("u1", "/", "read", ttl_hours=5)

    clock.advance(hours=2)
    assert registry.sweep_expired() == 1
    assert len(registry) == 1
    assert registry.validate(keep.token) == keep
    assert "shares.swept" in [metric["name"] for metric in registry.telemetry.metrics]


def test_sweeper_thread_prunes_in_background():
    clock = FakeClock()
    registry = _registry(clock)
    registry.create("u1", "/", "read", ttl_hours=1)
    clock.advance(hours=3)

    sweeper = CapabilitySweeper(registry, interval_seconds=0.01)
    sweeper.start()
    try:
        deadline = time.monotonic() + 2.0
        while len(registry) and time.monotonic() < deadline:
            time.sleep(0.01)
    finally:
        sweeper.stop()
    assert len(registry) == 0
    assert not sweeper.running


def test_sweeper_disabled_with_zero_interval():
    sweeper = CapabilitySweeper(_registry(), interval_seconds=0)
    sweeper.start()
    assert not sweeper.running


def test_concurrent_creates_are_all_recorded():
    registry = _registry()

    def worker(owner: str) -> None:
        for _ in range(50):
            registry.create(owner, "/", "read")

    threads = [threading.Thread(target=worker, args=(f"u{i}",)) for i in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(registry) == 400
    assert len(registry.list_for("u3")) == 50


def test_lifecycle_events_are_emitted():
    registry = _registry()
    link = registry.create("u1", "/", "read")
    registry.revoke("u1", link.id)
    names = registry.telemetry.event_names()
    assert names[:2] == ["share_created", "share_revoked"]
