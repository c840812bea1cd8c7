from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.concurrency import run_in_threadpool

from windscribe_port_sync.presentation.api.metrics import record_result

router = APIRouter(prefix="/v1/port", tags=["port"])


@router.get("")
def get_port(request: Request) -> dict[str, Any]:  # type: ignore[misc]
    cached = request.app.state.services.reconciler.get_port()
    if cached is None:
        raise HTTPException(status_code=404, detail="No cached port")
    return {"port": cached.port, "expires_at": cached.expires_at.isoformat()}


@router.post("/sync")
async def sync_port(request: Request) -> dict[str, Any]:  # type: ignore[misc]
    services = request.app.state.services
    # Serialized so overlapping requests don't race the same reconciliation
    async with request.app.state.sync_lock:
        result = await run_in_threadpool(services.use_case.execute)
    record_result(request.app.state.registry_metrics, result)
    return {
        "status": result.status,
        "port": result.port.port if result.port else None,
        "expires_at": result.port.expires_at.isoformat() if result.port else None,
        "from_cache": result.from_cache,
        "next_run": result.next_run.isoformat() if result.next_run else None,
        "next_retry": result.next_retry.isoformat() if result.next_retry else None,
        "message": result.message,
    }
