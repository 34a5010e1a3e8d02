"""
FastAPI application initialization and configuration.
"""
import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from blocker import FilteringAgent
from version import __version__

from .config import Settings

logger = logging.getLogger(__name__)


def create_app(agent: Optional[FilteringAgent] = None,
               settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    The agent is booted on startup unless it already was.
    """
    from .agent import build_agent

    settings = settings or Settings()
    agent = agent or build_agent(settings)

    app = FastAPI(
        title=settings.api_title,
        description=f"Bridge into the blocker agent (Version {__version__})",
        version=settings.api_version,
        debug=settings.debug,
    )
    app.state.agent = agent
    app.state.settings = settings

    logger.info(f"Configuring CORS with origins: {settings.cors_origins}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from .messages import router as messages_router
    from .websocket import router as websocket_router

    app.include_router(messages_router)
    app.include_router(websocket_router)

    @app.on_event("startup")
    async def startup_event():
        """Boot the agent."""
        outcome = await app.state.agent.boot()
        logger.info(f"Agent boot outcome: {outcome.value}")

    return app


__all__ = ['create_app', 'Settings']
