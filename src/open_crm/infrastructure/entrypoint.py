"""
Application Entrypoint
======================

Entrypoint for running the CRM API server.
"""

from __future__ import annotations

import logging
import sys

import uvicorn
import uvloop

from open_crm.infrastructure.config import get_settings
from open_crm.infrastructure.logging import configure_logging

logger = logging.getLogger(__name__)


def serve(host: str | None = None, port: int | None = None) -> None:
    """Run the API server using uvicorn, serving the configured database."""
    uvloop.install()

    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info("Starting %s v%s", settings.api.title, settings.api.version)
    logger.info("Environment: %s", settings.environment)
    if not settings.api.api_key:
        logger.warning("API_API_KEY is not set: authentication is disabled")

    # IPv6 all-interfaces is served on IPv4
    api_host = host or settings.api.host
    if api_host == "::":
        api_host = "0.0.0.0"

    uvicorn.run(
        "open_crm.api.app:create_app",
        factory=True,
        host=api_host,
        port=port or settings.api.port,
        reload=settings.api.debug,
        log_level=settings.log_level.lower(),
    )


def main() -> None:
    serve()


if __name__ == "__main__":
    sys.exit(main() or 0)
