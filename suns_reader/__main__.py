from __future__ import annotations

import argparse
import logging
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

from suns_reader.api.app import create_app
from suns_reader.config import load_config
from suns_reader.logging_setup import setup_logging


logger = logging.getLogger(__name__)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="suns-reader")
    parser.add_argument(
        "--env",
        default=".env",
        help="Path to .env file (default: .env).",
    )
    parser.add_argument("--host", default=None, help="Bind address (overrides HTTP_BIND).")
    parser.add_argument("--port", type=int, default=None, help="Port (overrides HTTP_PORT).")
    return parser.parse_args()


def main() -> None:
    args = _parse_args()
    env_path = Path(args.env)
    if env_path.exists():
        load_dotenv(env_path)
    else:
        load_dotenv()

    config = load_config()
    setup_logging(config.log_level, config.log_file)

    host = args.host or config.http_bind
    port = args.port or config.http_port
    logger.info("serving on %s:%s", host, port)

    uvicorn.run(create_app(config), host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()
