"""
SeedStream entry point: python -m seedstream
"""

import argparse
import json
import logging
import sys
from typing import Optional

import uvicorn

from . import __version__
from .config import LoggingConfig, get_config, load_config, set_config


class JsonFormatter(logging.Formatter):
    """One JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def setup_logging(config: LoggingConfig) -> None:
    """Configure root logging from the logging section of the config."""
    if config.format == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s %(levelname)-8s %(name)s: %(message)s")

    handlers = [logging.StreamHandler(sys.stdout)]
    if config.file:
        handlers.append(logging.FileHandler(config.file, encoding="utf-8"))

    root = logging.getLogger()
    root.handlers.clear()
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(config.level.upper())


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description="SeedStream - torrent to HLS publishing service")
    parser.add_argument("--config", "-c", help="Path to seedstream.yaml")
    parser.add_argument("--host", help="Override server host")
    parser.add_argument("--port", type=int, help="Override server port")
    parser.add_argument("--log-level", help="Override log level (DEBUG, INFO, ...)")
    parser.add_argument("--version", action="version", version=f"SeedStream {__version__}")
    args = parser.parse_args(argv)

    config = load_config(args.config) if args.config else get_config()
    if args.host:
        config.server.host = args.host
    if args.port:
        config.server.port = args.port
    if args.log_level:
        config.logging.level = args.log_level
    set_config(config)

    setup_logging(config.logging)

    from .api import app

    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level=config.logging.level.lower(),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
