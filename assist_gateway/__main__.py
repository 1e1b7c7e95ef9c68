"""Entry point for running the gateway."""

import logging
import uvicorn

from .core.config import get_settings

logger = logging.getLogger(__name__)


def main():
    """Run the gateway under uvicorn."""
    settings = get_settings()

    logger.info(f"Starting assist gateway on {settings.APP_HOST}:{settings.APP_PORT}")

    uvicorn.run(
        "assist_gateway.main:app",
        host=settings.APP_HOST,
        port=settings.APP_PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
