from __future__ import annotations

from dotenv import load_dotenv

load_dotenv()

from contextlib import asynccontextmanager  # noqa: E402

from fastapi import FastAPI  # noqa: E402

from ocrflow.api.routes_health import router as health_router  # noqa: E402
from ocrflow.api.routes_jobs import router as jobs_router  # noqa: E402
from ocrflow.core.config import Settings, settings as default_settings  # noqa: E402
from ocrflow.core.logging import configure_logging  # noqa: E402
from ocrflow.runtime.engine import JobEngine  # noqa: E402
from ocrflow.transport.base import OcrTransport  # noqa: E402
from ocrflow.transport.init_transport import build_transport  # noqa: E402


def create_app(settings: Settings | None = None, transport: OcrTransport | None = None) -> FastAPI:
    settings = settings or default_settings
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = JobEngine(settings=settings, transport=transport or build_transport(settings))
        app.state.engine = engine
        try:
            yield
        finally:
            await engine.shutdown()
            await engine.transport.aclose()

    app = FastAPI(title="OCR Job Engine", version="0.1.0", lifespan=lifespan)
    app.include_router(health_router)
    app.include_router(jobs_router)
    return app


app = create_app()
