"""Main application module."""
import logging

import uvicorn

from api import create_app
from api.config import Settings
from version import __version__

logger = logging.getLogger(__name__)


def create_and_configure_app():
    """Create the FastAPI application from environment settings."""
    logger.info(f"Starting application creation (v{__version__})")
    settings = Settings()
    logger.info(f"Loaded settings: {settings.model_dump()}")
    return create_app(settings=settings)


app = create_and_configure_app()

if __name__ == "__main__":
    settings = app.state.settings
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_config={
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
                }
            },
            "handlers": {
                "default": {
                    "formatter": "default",
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stderr"
                }
            },
            "loggers": {
                "": {"handlers": ["default"], "level": "INFO"},
                "api": {"level": "DEBUG" if settings.debug else "INFO"},
                "uvicorn": {"level": "INFO"}
            }
        }
    )
