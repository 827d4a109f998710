"""
Main entry point for the Event-Driven Chat server.

Can be called with: python -m event_chat
"""

import argparse
import logging

import uvicorn

from .app import create_app
from .config import Settings


def main():
    """Main entry point for the Event-Driven Chat server."""
    parser = argparse.ArgumentParser(
        description="Event-Driven Chat - streaming chat with UI-driving tools"
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Interface to bind (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to run the server on (default: 8000)",
    )
    parser.add_argument(
        "--log-level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="Logging level (default: info)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = Settings.from_env()
    logging.getLogger(__name__).info("Starting chat server...")
    logging.getLogger(__name__).info(
        f"Connect a client to ws://{args.host}:{args.port}/ws (model: {settings.model})"
    )

    uvicorn.run(create_app(settings), host=args.host, port=args.port, log_level=args.log_level)


if __name__ == "__main__":
    main()
