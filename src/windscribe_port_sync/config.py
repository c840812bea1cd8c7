from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

# Load .env if present
load_dotenv()


@dataclass(frozen=True)
class Settings:
    ws_username: str = os.getenv("WS_USERNAME", "")
    ws_password: str = os.getenv("WS_PASSWORD", "")
    ws_totp_secret: str = os.getenv("WS_TOTP_SECRET", "")
    # Provider-owned value, override when it rotates
    ws_signing_secret: str = os.getenv("WS_SIGNING_SECRET", "windscribe-login-v2")
    flaresolverr_url: str = os.getenv("FLARESOLVERR_URL", "http://localhost:8191/v1")
    flaresolverr_timeout_ms: int = int(os.getenv("FLARESOLVERR_TIMEOUT_MS", "60000"))
    http_timeout: float = float(os.getenv("HTTP_TIMEOUT", "45"))
    session_ttl_hours: int = int(os.getenv("SESSION_TTL_HOURS", "12"))
    cache_dir: str = os.getenv("CACHE_DIR", "")

    client_url: str = os.getenv("CLIENT_URL", "http://localhost:8080")
    client_username: str = os.getenv("CLIENT_USERNAME", "")
    client_password: str = os.getenv("CLIENT_PASSWORD", "")

    windscribe_retry_delay_ms: int = int(os.getenv("WINDSCRIBE_RETRY_DELAY_MS", str(60 * 60 * 1000)))
    windscribe_extra_delay_ms: int = int(os.getenv("WINDSCRIBE_EXTRA_DELAY_MS", str(60 * 1000)))
    client_retry_delay_ms: int = int(os.getenv("CLIENT_RETRY_DELAY_MS", str(5 * 60 * 1000)))

    gluetun_container_name: str = os.getenv("GLUETUN_CONTAINER_NAME", "")
    docker_socket: str = os.getenv("DOCKER_SOCKET", "/var/run/docker.sock")
    gluetun_cfg_path: str = os.getenv("GLUETUN_CFG_PATH", "")
    gluetun_iface: str = os.getenv("GLUETUN_IFACE", "tun0")

    captcha_debug_dir: str = os.getenv("CAPTCHA_DEBUG_DIR", "")
    # Extra runs on top of the lease timer, paused while a retry is pending
    cron_schedule: str = os.getenv("CRON_SCHEDULE", "")

    log_level: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
