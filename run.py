"""
Run script for starting the Call Assistant server.

Usage:
    python run.py [--port PORT] [--host HOST] [--log-level LEVEL]
"""

import argparse
import os
import sys

import uvicorn

from call_assistant.config.logging_config import configure_logging
from call_assistant.config.settings import AssistantSettings
from call_assistant.errors import ConfigurationError


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Start the Call Assistant server")
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to run the server on (default: 8000 or PORT env var)",
    )
    parser.add_argument(
        "--host",
        default=None,
        help="Host to bind the server to (default: 0.0.0.0 or HOST env var)",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO or LOG_LEVEL env var)",
    )
    return parser.parse_args(argv)


def main(argv=None):
    """Main entry point for starting the server."""
    args = parse_args(argv)
    logger = configure_logging(args.log_level)

    try:
        settings = AssistantSettings.from_env()
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    # Sessions can still be refused later; the webhook relay works without them
    for problem in settings.session_problems():
        logger.warning(f"Call sessions will be refused: {problem}")
    if not settings.webhook_secret:
        logger.warning("JUSTCALL_WEBHOOK_SECRET not set; every webhook will be rejected")

    host = args.host or settings.host
    port = args.port or settings.port
    logger.info(f"Starting server on http://{host}:{port}")

    uvicorn.run(
        "call_assistant.main:app",
        host=host,
        port=port,
        log_level=args.log_level.lower(),
        http="h11",
        access_log=False,
        reload=os.getenv("ENV", "production").lower() == "development",
    )


if __name__ == "__main__":
    main()
