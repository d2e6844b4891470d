"""Run the SEO report service with uvicorn."""

import structlog
import uvicorn

from seoreport.config import get_settings
from seoreport.logging import setup_logging

logger = structlog.get_logger()


def main() -> None:
    settings = get_settings()
    setup_logging()

    if not (settings.dataforseo_login and settings.dataforseo_password):
        # Reports will answer 500 until credentials are provided
        logger.warning("dataforseo_credentials_missing")

    logger.info("seoreport_serving", host=settings.host, port=settings.port, backend=settings.rate_limit_backend)
    uvicorn.run(
        "seoreport.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=False,
    )


if __name__ == "__main__":
    main()
