#!/usr/bin/env python3
"""Main entry point for TrustGate."""

import uvicorn

from trustgate.common.config import get_config
from trustgate.common.logging import configure_logging, get_logger

logger = get_logger(__name__)


def main():
    """Serve the session decision API."""
    config = get_config()
    configure_logging(config.log_level.value)
    logger.info(f"TrustGate starting in {config.environment.value} mode")
    logger.info(f"Project root: {config.project_root}")

    uvicorn.run(
        "trustgate.api.gateway:app",
        host=config.api_host,
        port=config.api_port,
        reload=config.debug,
        log_level=config.log_level.value.lower(),
    )


if __name__ == "__main__":
    main()
