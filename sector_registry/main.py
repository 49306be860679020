# sector_registry/main.py

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sector_registry.api.routes import router as api_router
from sector_registry.core.config import settings
from sector_registry.core.db import Database
from sector_registry.core.exceptions import NotFound, TransactionFailure, ValidationError

logger = logging.getLogger(__name__)


def configure_logging():
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def register_exception_handlers(app: FastAPI):
    @app.exception_handler(ValidationError)
    async def validation_error(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"success": False, "message": exc.message})

    @app.exception_handler(NotFound)
    async def not_found(request: Request, exc: NotFound):
        return JSONResponse(status_code=404, content={"success": False, "message": exc.message})

    @app.exception_handler(TransactionFailure)
    async def transaction_failure(request: Request, exc: TransactionFailure):
        # diagnostics were logged where the rollback happened
        return JSONResponse(status_code=500, content={"success": False, "message": exc.message})

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500, content={"success": False, "message": "Internal server error"}
        )


def create_app(database: Optional[Database] = None) -> FastAPI:
    app = FastAPI(
        title="Sector Registry API",
        version="1.0.0",
        description="Irrigation sector polygons with filtered queries, audited edits and change history.",
    )

    # ---------------------------------------------------------
    # CORS SETTINGS - map front-end
    # ---------------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/api")
    register_exception_handlers(app)

    # store handle; built from settings at startup unless one is injected
    app.state.db = database
    owns_database = database is None

    @app.get("/")
    async def root():
        return {
            "status": "running",
            "service": "Sector Registry API",
            "timestamp": datetime.now(timezone.utc),
        }

    @app.on_event("startup")
    async def on_startup():
        configure_logging()
        logger.info("Starting Sector Registry backend...")

        if app.state.db is None:
            app.state.db = Database.from_settings()

        # Create DB tables if not already
        await app.state.db.create_all()
        logger.info("API started successfully.")

    @app.on_event("shutdown")
    async def on_shutdown():
        logger.info("Shutting down Sector Registry backend...")
        if owns_database and app.state.db is not None:
            await app.state.db.dispose()

    return app


app = create_app()
