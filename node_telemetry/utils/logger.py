"""Structured JSON logging configuration."""

import logging
import socket
import sys
from typing import IO, Optional

from pythonjsonlogger import jsonlogger

LOG_FORMAT = '%(asctime)s %(name)s %(levelname)s %(message)s'


def setup_logger(
    name: str = "node_telemetry",
    level: str = "INFO",
    stream: Optional[IO[str]] = None,
    node: Optional[str] = None
) -> logging.Logger:
    """
    Configure structured JSON logging for the acquisition layer.

    Every line carries the name of the node the agent runs on, so logs of
    many nodes can be merged. Collectors and receivers log through child
    loggers (``node_telemetry.<ClassName>``) and inherit this handler.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        stream: Output stream (default: stdout)
        node: Node name added to every record (default: local host name)

    Returns:
        logging.Logger: Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))

    # Remove existing handlers to avoid duplicates
    logger.handlers = []

    handler = logging.StreamHandler(stream or sys.stdout)
    formatter = jsonlogger.JsonFormatter(
        LOG_FORMAT,
        rename_fields={"levelname": "level", "name": "logger"},
        static_fields={"node": node or socket.gethostname()},
        timestamp=True
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    # Records go to the JSON handler only
    logger.propagate = False

    return logger
