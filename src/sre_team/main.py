"""Entry point for the Autonomous SRE Team service.

Creates the FastAPI application, configures logging, and starts the
uvicorn server.
"""

from __future__ import annotations

import structlog
import uvicorn
from fastapi import FastAPI

from sre_team.api import create_app
from sre_team.config import Settings, get_settings
from sre_team.logging_setup import setup_logging

logger = structlog.get_logger(__name__)


def build_app(settings: Settings | None = None) -> FastAPI:
    """Construct the fully-configured application.

    Returns the FastAPI application ready to serve requests.
    """
    settings = settings or get_settings()
    setup_logging(settings.log_level, settings.environment)

    app = create_app(settings)

    logger.info(
        "application_ready",
        service=settings.service_name,
        version=settings.service_version,
        backend=settings.generation_backend,
        port=settings.port,
        docs_url=f"http://localhost:{settings.port}/docs",
    )

    return app


def main() -> None:
    """Launch the Autonomous SRE Team server."""
    settings = get_settings()
    app = build_app(settings)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
