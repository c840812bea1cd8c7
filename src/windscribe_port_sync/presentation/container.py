from __future__ import annotations

import functools
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from windscribe_port_sync.application.ports.cache_port import CachePort
from windscribe_port_sync.application.use_cases.sync_forwarded_port import SyncDelays, SyncForwardedPortUseCase
from windscribe_port_sync.config import Settings
from windscribe_port_sync.infrastructure.adapters.cache.memory_cache import InMemoryCache
from windscribe_port_sync.infrastructure.adapters.cache.sqlite_cache import SQLiteCache
from windscribe_port_sync.infrastructure.adapters.captcha.slider_solver import solve_captcha
from windscribe_port_sync.infrastructure.adapters.docker.restarter import DockerSocketRestarter
from windscribe_port_sync.infrastructure.adapters.flaresolverr.client import FlareSolverrClient
from windscribe_port_sync.infrastructure.adapters.gluetun.exporter import GluetunPortExporter
from windscribe_port_sync.infrastructure.adapters.http.httpx_client import HttpxClient
from windscribe_port_sync.infrastructure.adapters.qbittorrent.client import QBittorrentClient
from windscribe_port_sync.infrastructure.adapters.windscribe.reconciler import PortForwardingReconciler
from windscribe_port_sync.infrastructure.adapters.windscribe.session import CredentialSession


@dataclass
class Services:
    cache: CachePort
    session: CredentialSession
    reconciler: PortForwardingReconciler
    use_case: SyncForwardedPortUseCase


def build_cache(settings: Settings) -> CachePort:
    if not settings.cache_dir:
        return InMemoryCache()
    return SQLiteCache(str(Path(settings.cache_dir) / "cache.sqlite"))


def build_services(settings: Settings) -> Services:
    # One HttpxClient and one CredentialSession shared by everything so the
    # session lock really covers every login
    http = HttpxClient(timeout=settings.http_timeout)
    cache = build_cache(settings)

    session = CredentialSession(
        http=http,
        antibot=FlareSolverrClient(http, settings.flaresolverr_url),
        cache=cache,
        username=settings.ws_username,
        password=settings.ws_password,
        signing_secret=settings.ws_signing_secret,
        totp_secret=settings.ws_totp_secret,
        antibot_timeout_ms=settings.flaresolverr_timeout_ms,
        fallback_ttl=timedelta(hours=settings.session_ttl_hours),
        captcha_solver=functools.partial(solve_captcha, debug_dir=settings.captcha_debug_dir or None),
    )
    reconciler = PortForwardingReconciler(session, http, cache)

    use_case = SyncForwardedPortUseCase(
        windscribe=reconciler,
        client=QBittorrentClient(http, settings.client_url, settings.client_username, settings.client_password),
        delays=SyncDelays(
            windscribe_retry=timedelta(milliseconds=settings.windscribe_retry_delay_ms),
            windscribe_extra=timedelta(milliseconds=settings.windscribe_extra_delay_ms),
            client_retry=timedelta(milliseconds=settings.client_retry_delay_ms),
        ),
        exporter=GluetunPortExporter(settings.gluetun_cfg_path, settings.gluetun_iface) if settings.gluetun_cfg_path else None,
        restarter=DockerSocketRestarter(settings.docker_socket) if settings.gluetun_container_name else None,
        container_name=settings.gluetun_container_name,
    )
    return Services(cache=cache, session=session, reconciler=reconciler, use_case=use_case)
