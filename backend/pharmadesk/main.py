"""
PharmaDesk - FastAPI application entry point.
CORS enabled; health check at GET /health; DB initialized (and optionally seeded) on startup.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pharmadesk.api.routes import router as api_router
from pharmadesk.config import Settings
from pharmadesk.db import build_engine, build_session_factory, init_db
from pharmadesk.errors import PharmacyError
from pharmadesk.services.catalog import seed_medications, seed_users

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()
    logging.basicConfig(level=settings.log_level)
    engine = build_engine(settings)
    session_factory = build_session_factory(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Initialize DB and seed the catalog and starter accounts."""
        init_db(engine)
        if settings.seed_on_startup:
            with session_factory() as db:
                seed_medications(db, settings.data_dir)
            with session_factory() as db:
                seed_users(db, settings.data_dir)
        yield
        engine.dispose()

    app = FastAPI(
        title="PharmaDesk",
        description="Pharmacy backend: prescription fulfillment with stock reservation and order tracking.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PharmacyError)
    async def pharmacy_error_handler(request: Request, exc: PharmacyError):
        logger.info("request_failed", extra={"path": request.url.path, "error": exc.code})
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    app.include_router(api_router, prefix="/api", tags=["api"])

    @app.get("/health")
    def health():
        """Health check for load balancers and readiness probes."""
        return {"status": "ok"}

    return app


app = create_app()
