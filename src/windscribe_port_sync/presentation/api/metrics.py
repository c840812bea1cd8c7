from __future__ import annotations

from dataclasses import dataclass

from prometheus_client import CollectorRegistry, Counter, Gauge

from windscribe_port_sync.application.use_cases.sync_forwarded_port import SyncResult


@dataclass(frozen=True)
class SyncMetrics:
    runs: Counter
    port: Gauge
    lease_expiry: Gauge


def build_metrics(registry: CollectorRegistry) -> SyncMetrics:
    return SyncMetrics(
        runs=Counter("port_sync_runs", "Reconciliation passes by outcome", ["status"], registry=registry),
        port=Gauge("forwarded_port", "Port currently forwarded by the VPN provider", registry=registry),
        lease_expiry=Gauge("forwarded_port_expiry_timestamp_seconds", "When the current lease needs renewal", registry=registry),
    )


def record_result(metrics: SyncMetrics, result: SyncResult) -> None:
    metrics.runs.labels(status=result.status).inc()
    if result.port is not None:
        metrics.port.set(result.port.port)
        metrics.lease_expiry.set(result.port.expires_at.timestamp())
