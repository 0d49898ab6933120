from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/healthz", summary="Service health check")
async def service_health(request: Request) -> dict[str, object]:
    registry = getattr(request.app.state, "approval_registry", None)
    return {
        "status": "ok",
        "open_sessions": len(registry) if registry is not None else 0,
    }
