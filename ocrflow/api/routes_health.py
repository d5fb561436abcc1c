from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/")
def root(request: Request):
    return {"service": "ocrflow", "version": request.app.version}


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/ready")
def ready(request: Request):
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        return {"ready": False}
    return {
        "ready": True,
        "transport": type(engine.transport).__name__,
        "jobs": len(engine.jobs),
        "busy": engine.busy,
    }
