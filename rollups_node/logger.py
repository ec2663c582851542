"""
Logging setup for node entry points.
"""
import logging
import sys


LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def init(level: str = "info", timestamp: bool = False) -> None:
    """
    Configure the root logger.

    Args:
        level: One of debug, info, warning, error
        timestamp: Prefix each line with the time
    """
    fmt = "%(levelname)s %(name)s: %(message)s"
    if timestamp:
        fmt = "%(asctime)s " + fmt

    logging.basicConfig(
        level=LEVELS[level],
        format=fmt,
        stream=sys.stderr,
        force=True
    )
