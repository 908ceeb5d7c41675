"""Clip Audio API - Server entry point.

Run with:
    python -m services.convert_api
"""

from __future__ import annotations

import logging

import uvicorn

from app.config import Settings
from services.convert_api.main import create_app

logger = logging.getLogger(__name__)


def main() -> None:
    """Start the HTTP listener with settings from the environment."""
    settings = Settings.from_env()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )

    app = create_app(settings)
    logger.info("Server running on http://%s:%d", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
