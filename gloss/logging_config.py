"""
Logging configuration for gloss.

Quiet by default: warnings go to stderr, debug output on request.
"""

import logging
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path

_QUIET_HANDLER = "gloss-quiet"


def configure_quiet_mode(quiet: bool = True):
    """
    Keep library chatter out of CLI output.

    Args:
        quiet: If True, only warnings and errors from gloss reach stderr
            and httpx request logging is silenced.
    """
    if quiet:
        warnings.filterwarnings("ignore", category=DeprecationWarning)
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    gloss_logger = logging.getLogger("gloss")
    if not any(h.get_name() == _QUIET_HANDLER for h in gloss_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.set_name(_QUIET_HANDLER)
        handler.setLevel(logging.WARNING)
        handler.setFormatter(logging.Formatter("warning: %(message)s"))
        gloss_logger.addHandler(handler)


def enable_debug_mode():
    """Enable debug-level logging to stderr."""
    warnings.filterwarnings("default")

    gloss_logger = logging.getLogger("gloss")
    for h in [h for h in gloss_logger.handlers if h.get_name() == _QUIET_HANDLER]:
        gloss_logger.removeHandler(h)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Add stderr handler if not already present
    if not any(isinstance(h, logging.StreamHandler) and h.stream == sys.stderr
               for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S"
        ))
        root_logger.addHandler(handler)

    for name in ("gloss", "httpx"):
        logging.getLogger(name).setLevel(logging.DEBUG)


OPS_LOG_FILENAME = "gloss-ops.log"
OPS_LOG_MAX_BYTES = 1_000_000
OPS_LOG_BACKUPS = 3


def configure_ops_log(store_path) -> RotatingFileHandler:
    """Record appends, retractions and skipped versions for a local store.

    INFO and up from every ``gloss.*`` logger go to <store>/gloss-ops.log,
    rotated at OPS_LOG_MAX_BYTES. The logger name is kept in each line so
    chain writes and reconstruction warnings can be told apart. The
    caller owns the returned handler and removes it on close.
    """
    log_path = Path(store_path) / OPS_LOG_FILENAME
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_path,
        maxBytes=OPS_LOG_MAX_BYTES,
        backupCount=OPS_LOG_BACKUPS,
        encoding="utf-8",
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)-7s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    ))

    gloss_logger = logging.getLogger("gloss")
    gloss_logger.addHandler(handler)
    if gloss_logger.getEffectiveLevel() > logging.INFO:
        gloss_logger.setLevel(logging.INFO)
    return handler
