"""Logging setup for the CLI and server entry points."""

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_NOISY_LOGGERS = ("urllib3", "botocore", "boto3", "httpx", "anthropic")


def configure_logging(verbose=False):
    """Install a single stream handler on the root logger (idempotent)."""
    root = logging.getLogger()
    level = logging.DEBUG if verbose else logging.INFO
    root.setLevel(level)

    if not any(getattr(h, "_agentsforge", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._agentsforge = True
        root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
