from fastapi import APIRouter, Request, Response

router = APIRouter()


@router.get("/health")
async def health():
    return {"status": "ok"}


@router.get("/ready")
async def ready(request: Request):
    container = request.app.state.container
    try:
        await container.guard.ensure_ready()
    except Exception as e:
        return Response(status_code=503, content=str(e))
    consumer_ready = getattr(request.app.state, "consumer_ready", None)
    if consumer_ready is not None and not consumer_ready.is_set():
        return Response(status_code=503, content="change events not flowing")
    return {"status": "ready", "cached_users": len(container.cache)}
