from __future__ import annotations

import threading
from datetime import timedelta

import pytest

from windscribe_port_sync.application.use_cases.run_loop import RunLoop
from windscribe_port_sync.application.use_cases.sync_forwarded_port import SyncDelays, SyncForwardedPortUseCase, SyncResult
from windscribe_port_sync.domain.model import ForwardedPort
from windscribe_port_sync.infrastructure.adapters.cache.memory_cache import InMemoryCache
from windscribe_port_sync.infrastructure.adapters.windscribe.reconciler import PORT_CACHE_KEY, PortForwardingReconciler
from windscribe_port_sync.infrastructure.adapters.windscribe.session import LOGIN_TOKEN_URL, CredentialSession
from tests.unit._fakes import (
    NOW,
    FakeAntiBot,
    FakeExporter,
    FakeHttp,
    FakeRestarter,
    FakeTorrentClient,
    FakeWindscribe,
    FixedClock,
    resp,
)

LEASE = ForwardedPort(port=10583, expires_at=NOW + timedelta(days=6))


def make_use_case(windscribe, client, **kwargs) -> SyncForwardedPortUseCase:
    return SyncForwardedPortUseCase(windscribe, client, clock=FixedClock(), **kwargs)


def test_in_sync_schedules_renewal_after_lease():
    uc = make_use_case(FakeWindscribe(LEASE), FakeTorrentClient(10583))
    res = uc.execute()
    assert res.status == "IN_SYNC"
    assert res.next_run == LEASE.expires_at + timedelta(minutes=1)
    assert res.next_retry is None


def test_mismatch_updates_client_then_exports_and_restarts():
    client = FakeTorrentClient(6881)
    exporter, restarter = FakeExporter(), FakeRestarter()
    uc = make_use_case(FakeWindscribe(LEASE), client, exporter=exporter, restarter=restarter, container_name="gluetun")
    res = uc.execute()
    assert res.status == "UPDATED"
    assert client.updates == [10583]
    assert exporter.written == [10583]
    assert restarter.restarted == ["gluetun"]


def test_restart_failure_does_not_fail_the_run():
    uc = make_use_case(
        FakeWindscribe(LEASE), FakeTorrentClient(6881), restarter=FakeRestarter(fail=True), container_name="gluetun"
    )
    assert uc.execute().status == "UPDATED"


def test_client_ignoring_update_schedules_client_retry():
    client = FakeTorrentClient(6881, sticky=True)
    exporter = FakeExporter()
    uc = make_use_case(FakeWindscribe(LEASE), client, exporter=exporter, delays=SyncDelays(client_retry=timedelta(minutes=5)))
    res = uc.execute()
    assert res.status == "ERROR"
    assert res.next_retry == NOW + timedelta(minutes=5)
    assert exporter.written == []
    assert "Unable to set torrent port" in res.message


def test_windscribe_failure_falls_back_to_cached_port():
    cached = ForwardedPort(port=10011, expires_at=NOW + timedelta(days=2))
    client = FakeTorrentClient(6881)
    uc = make_use_case(FakeWindscribe(fail=True, cached=cached), client)
    res = uc.execute()
    assert res.status == "UPDATED"
    assert res.from_cache
    assert client.updates == [10011]
    assert res.next_retry == NOW + timedelta(hours=1)
    assert res.next_run is None


def test_windscribe_failure_without_cache_leaves_client_alone():
    client = FakeTorrentClient(6881)
    res = make_use_case(FakeWindscribe(fail=True), client).execute()
    assert res.status == "UNKNOWN_PORT"
    assert client.updates == []
    assert res.next_retry == NOW + timedelta(hours=1)


def test_unreachable_client():
    res = make_use_case(FakeWindscribe(LEASE), FakeTorrentClient(fail=True)).execute()
    assert res.status == "ERROR"
    assert res.next_run == LEASE.expires_at + timedelta(minutes=1)
    assert res.next_retry == NOW + timedelta(minutes=5)


def login_failing_use_case(token_body: dict, totp_secret: str = "") -> tuple[SyncForwardedPortUseCase, FakeTorrentClient]:
    clock = FixedClock()
    cache = InMemoryCache(clock=clock)
    cache.set(PORT_CACHE_KEY, "10011", timedelta(days=2))
    http = FakeHttp().on("POST", LOGIN_TOKEN_URL, resp(json=token_body))
    session = CredentialSession(
        http, FakeAntiBot(), cache, username="u", password="p", signing_secret="s", totp_secret=totp_secret, clock=clock
    )
    reconciler = PortForwardingReconciler(session, http, cache, clock=clock)
    client = FakeTorrentClient(6881)
    return SyncForwardedPortUseCase(reconciler, client, clock=clock), client


@pytest.mark.parametrize(
    "token_body, totp_secret",
    [
        ({"token": "tok"}, "not base32 !!"),
        ({"token": "tok", "captcha": {"background": "QUJD", "top": "40px"}}, ""),
    ],
)
def test_login_misconfiguration_falls_back_to_cached_port(token_body, totp_secret):
    uc, client = login_failing_use_case(token_body, totp_secret)
    res = uc.execute()
    assert res.from_cache
    assert client.updates == [10011]
    assert res.next_retry == NOW + timedelta(hours=1)
    assert "Failed to log into windscribe" in res.message


def test_unexpected_error_still_schedules_retry():
    class Exploding(FakeWindscribe):
        def update_port(self):
            raise KeyError("epf")

    res = make_use_case(Exploding(), FakeTorrentClient(6881)).execute()
    assert res.status == "UNKNOWN_PORT"
    assert res.next_retry == NOW + timedelta(hours=1)


# ---------- run loop ----------
def make_loop(cron: str = "") -> RunLoop:
    uc = make_use_case(FakeWindscribe(LEASE), FakeTorrentClient(10583))
    return RunLoop(uc, clock=FixedClock(), cron=cron)


def test_next_wakeup_prefers_retry():
    res = SyncResult("ERROR", LEASE, NOW + timedelta(days=6), NOW + timedelta(minutes=5), "x")
    assert make_loop().next_wakeup(res) == ("retry", NOW + timedelta(minutes=5))


def test_next_wakeup_normal():
    res = SyncResult("IN_SYNC", LEASE, NOW + timedelta(days=6), None, "ok")
    assert make_loop().next_wakeup(res) == ("normal", NOW + timedelta(days=6))


def test_next_wakeup_without_any_date():
    with pytest.raises(RuntimeError):
        make_loop().next_wakeup(SyncResult("ERROR", None, None, None, "x"))


def test_cron_tick_before_renewal_wins():
    res = SyncResult("IN_SYNC", LEASE, NOW + timedelta(days=6), None, "ok")
    assert make_loop("0 */6 * * *").next_wakeup(res) == ("schedule", NOW + timedelta(hours=6))


def test_renewal_before_cron_tick_wins():
    res = SyncResult("IN_SYNC", LEASE, NOW + timedelta(hours=1), None, "ok")
    assert make_loop("0 0 1 1 *").next_wakeup(res) == ("normal", NOW + timedelta(hours=1))


def test_cron_is_paused_while_retry_pending():
    res = SyncResult("ERROR", LEASE, None, NOW + timedelta(hours=1), "x")
    assert make_loop("*/5 * * * *").next_wakeup(res) == ("retry", NOW + timedelta(hours=1))


def test_invalid_cron_rejected():
    with pytest.raises(ValueError):
        make_loop("every tuesday")


def test_run_forever_stops_on_event():
    stop = threading.Event()
    seen = []

    def on_result(result):
        seen.append(result)
        stop.set()

    uc = make_use_case(FakeWindscribe(LEASE), FakeTorrentClient(10583))
    RunLoop(uc, clock=FixedClock(), on_result=on_result).run_forever(stop)
    assert [r.status for r in seen] == ["IN_SYNC"]
