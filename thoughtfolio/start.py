"""
ThoughtFolio server startup script
"""

import logging

import uvicorn

from .config import settings
from .config.log import configure_logging
from .db import create_db_and_tables

log = logging.getLogger(__name__)


def main():
    configure_logging()
    log.info("Starting ThoughtFolio server...")

    try:
        create_db_and_tables()
        log.info("Database initialized")
    except Exception:
        log.exception("Database initialization failed")
        raise

    log.info("Serving on http://%s:%d", settings.host, settings.port)
    uvicorn.run(
        "thoughtfolio.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
