"""
Veterinary chat backend entry point.

Serves the HTTP API with uvicorn, or runs the offline console demo for
development.

Usage:
    HTTP server:  python main.py serve
    Console mode: python main.py console
"""

import logging
import sys

from vetchat.config import settings

logger = logging.getLogger(__name__)


def _run_server() -> None:
    """Start the HTTP API (requires OPENAI_API_KEY for open questions)."""
    import uvicorn

    from vetchat.api.app import create_app

    app = create_app()
    logger.info("Serving on %s:%d", settings.server.host, settings.server.port)
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.log_level.lower(),
    )


def _run_console_mode() -> None:
    """Start the offline console demo (no API keys required)."""
    from console_demo import ConsoleSession

    session = ConsoleSession()
    session.run()


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "console":
        _run_console_mode()
    else:
        _run_server()
