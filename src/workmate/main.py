"""
Workmate entry point.

This file handles startup concerns (arg-parsing, logging) and launches the appropriate interface
(API server, or API server plus interactive CLI).
"""

import argparse
import logging
import sys

from workmate.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _init_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        stream=sys.stdout,
    )
    # Provider SDKs log every request at INFO
    for noisy in ("httpx", "httpcore", "openai", "anthropic", "google_genai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the Workmate Gmail and Teams assistant")
    parser.add_argument(
        "--mode",
        choices=["api", "cli"],
        type=str.lower,
        default="api",
        help="Launch the REST API only, or the API plus an interactive shell (default: api)",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        type=str.lower,
        default=settings.LOG_LEVEL,
        help="Logging level (default from env: %(default)s)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.API_PORT,
        help="Port for the API server (default from env: %(default)s)",
    )
    parser.add_argument(
        "--llm-backend",
        choices=["openai", "anthropic", "gemini", "tgi"],
        type=str.lower,
        default=None,
        help="Override LLM_BACKEND for this run",
    )
    return parser


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def main(argv: list[str] | None = None) -> None:
    """
    Main entry point for the Workmate application.

    Parses the command line, initializes logging, and starts the API server, optionally with the
    interactive CLI client in the foreground.
    """
    if argv is None:
        argv = sys.argv[1:]

    args = build_parser().parse_args(argv)

    # Command-line arguments win over environment settings
    settings.LOG_LEVEL = args.log_level
    settings.API_PORT = args.port
    if args.llm_backend:
        settings.LLM_BACKEND = args.llm_backend

    _init_logging(settings.LOG_LEVEL)

    logger.info("Starting Workmate [%s mode, %s backend]", args.mode, settings.LLM_BACKEND)
    logger.debug("Settings: %s", settings.public_dump())

    # Lazy import so --help works without the server stack
    from workmate.api.app import run_api  # pylint: disable=import-outside-toplevel

    if args.mode == "api":
        run_api(host="0.0.0.0", port=settings.API_PORT, reload=settings.DEBUG)
        return

    import threading  # pylint: disable=import-outside-toplevel

    # Start API server in a separate thread
    api_thread = threading.Thread(
        target=run_api,
        kwargs={
            "host": "0.0.0.0",
            "port": settings.API_PORT,
            "reload": False,  # Reload doesn't work well with threading
            "log_level": "warning",
        },
        daemon=True,
    )
    api_thread.start()

    from workmate.client.cli import run_cli  # pylint: disable=import-outside-toplevel

    run_cli()


if __name__ == "__main__":
    main()
