"""FastAPI application entry point."""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routes import catalog, sessions, target
from ..models.config import TransferConfig
from ..orchestrator import TransferOrchestrator

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "DBMIGRATE_CONFIG"


def create_app(orchestrator: Optional[TransferOrchestrator] = None) -> FastAPI:
    """
    Create the API application.

    Without an orchestrator, one is built at startup from the JSON config
    named by the ``DBMIGRATE_CONFIG`` environment variable.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.orchestrator is None and os.environ.get(CONFIG_ENV_VAR):
            config = TransferConfig.from_json_file(os.environ[CONFIG_ENV_VAR])
            app.state.orchestrator = TransferOrchestrator.from_config(config)
            logger.info(f"Loaded transfer config {config.name}")
        yield
        if app.state.orchestrator is not None:
            await app.state.orchestrator.shutdown()

    app = FastAPI(
        title="Database Transfer API",
        description="API for transferring Access databases to MySQL",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator

    # CORS middleware for frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://127.0.0.1:5173", "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(catalog.router, prefix="/api/catalog", tags=["catalog"])
    app.include_router(sessions.router, prefix="/api/sessions", tags=["sessions"])
    app.include_router(target.router, prefix="/api/target", tags=["target"])

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "configured": app.state.orchestrator is not None}

    return app


app = create_app()
