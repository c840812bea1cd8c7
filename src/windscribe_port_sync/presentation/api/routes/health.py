from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
def health(request: Request) -> dict[str, object]:  # type: ignore[misc]
    # Liveness only, never touches the provider
    cached = request.app.state.services.reconciler.get_port()
    return {"status": "ok", "port_known": cached is not None}
