"""API server entry point."""

import uvicorn

from blockmarket.api.app import create_app
from blockmarket.config import load_settings
from blockmarket.logging import get_logger, setup_logging


def main() -> None:
    """Load settings, configure logging and serve the API."""
    settings = load_settings()
    setup_logging(settings.log_level)
    logger = get_logger(__name__)

    logger.info("Starting Blockmarket API", environment=settings.environment)

    app = create_app(settings)
    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
