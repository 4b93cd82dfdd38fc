import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from .. import __version__
from ..config.settings import Settings, settings as default_settings
from ..exceptions import GenerationFailed, NotFoundError, StateError, StateReason
from ..scheduler import create_scheduler
from ..services import Services, build_services
from .story_arcs import create_story_arc_api, get_services

logger = logging.getLogger(__name__)


def _register_error_handlers(app: FastAPI):

    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc), "kind": exc.kind})

    @app.exception_handler(StateError)
    async def state_error(request: Request, exc: StateError):
        status = 429 if exc.reason == StateReason.DAILY_QUOTA_EXCEEDED else 409
        return JSONResponse(status_code=status, content={"detail": str(exc), "reason": exc.reason.value})

    @app.exception_handler(GenerationFailed)
    async def generation_failed(request: Request, exc: GenerationFailed):
        logger.error("%s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=503,
            content={"detail": "Story generation is temporarily unavailable, please try again later"},
        )


def create_app(services: Optional[Services] = None, settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        services: prebuilt object graph (tests); built from settings on startup otherwise
        settings: defaults to the process settings

    Returns:
        FastAPI
    """
    settings = settings or (services.settings if services else default_settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        scheduler = None
        if getattr(app.state, "services", None) is None:
            app.state.services = build_services(settings)
        if settings.scheduler_enabled:
            scheduler = create_scheduler(app.state.services)
            scheduler.start()
            logger.info("Daily delivery scheduled: %s", settings.episode_schedule)
        yield
        if scheduler is not None:
            scheduler.shutdown(wait=False)
        await app.state.services.aclose()

    app = FastAPI(title="Daily Protagonist", version=__version__, lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        logger.info("%s %s - Status: %d - Time: %.2fs",
                    request.method, request.url.path, response.status_code, time.time() - start_time)
        return response

    _register_error_handlers(app)
    create_story_arc_api(app)

    @app.get("/api/health")
    def health(services: Services = Depends(get_services)):
        return {"status": "ok", "version": __version__, "templates": len(services.catalog)}

    @app.get("/api/admin/metrics")
    def provider_metrics(services: Services = Depends(get_services)):
        snapshot = services.metrics.snapshot()
        return {
            "providers": {name: entry.to_dict() for name, entry in snapshot.items()},
            "cost_summary": services.metrics.cost_summary(),
            "budget": services.metrics.check_budget(services.settings.daily_budget_usd),
        }

    os.makedirs(settings.media_root, exist_ok=True)
    app.mount("/media", StaticFiles(directory=settings.media_root), name="media")

    return app
