"""ManchAI Studio API - FastAPI Application

Serves the scene turn endpoint. Scene state lives with the client and is
sent with every request, so the server holds nothing between turns.

Run with:
    uvicorn manchai.server.app:create_app --factory
"""

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..core.config import StudioConfig
from ..core.turn_orchestrator import TurnOrchestrator, close_orchestrator, create_orchestrator
from .routers import scene

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def create_app(
    config: Optional[StudioConfig] = None,
    orchestrator: Optional[TurnOrchestrator] = None,
) -> FastAPI:
    """Build the API application.

    Args:
        config: Studio configuration (defaults to ``StudioConfig.from_env()``)
        orchestrator: Pre-built orchestrator, mainly for tests

    Returns:
        FastAPI app
    """
    config = config or StudioConfig.from_env()

    app = FastAPI(
        title="ManchAI Studio API",
        description="Real-time scriptwriting and multi-voice improv studio",
        version=VERSION,
    )

    # CORS middleware for the browser frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            "http://localhost:5173",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.config = config
    app.state.orchestrator = orchestrator or create_orchestrator(config)

    app.include_router(scene.router, prefix="/api/scene", tags=["scene"])

    @app.on_event("startup")
    async def startup():
        """Report which collaborators are live."""
        orch = app.state.orchestrator
        logger.info("Starting ManchAI Studio API...")
        logger.info(f"Director Agent: {'enabled' if orch.director else 'offline (fallback director)'}")
        logger.info(f"Speech synthesis: {'enabled' if orch.synthesizer else 'disabled'}")

    @app.on_event("shutdown")
    async def shutdown():
        """Close outbound HTTP sessions."""
        logger.info("Shutting down ManchAI Studio API...")
        await close_orchestrator(app.state.orchestrator)

    @app.get("/")
    async def root():
        return {"status": "ok", "service": "manchai-studio-api", "version": VERSION}

    @app.get("/health")
    async def health():
        """Health check for container orchestration."""
        return {"status": "healthy"}

    @app.get("/api/usage")
    async def usage():
        """Speech synthesis usage for this process."""
        synthesizer = app.state.orchestrator.synthesizer
        client = getattr(synthesizer, "client", None)
        if client is None:
            return {"enabled": False}
        return {"enabled": True, "dry_run": client.dry_run, **client.get_usage_stats()}

    return app
