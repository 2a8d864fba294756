"""
Logging configuration for the command line entry point.
"""
import logging

LOG_FORMAT = '[%(levelname)s] %(name)s: %(message)s'


def configure_logging(log_level: str = "INFO") -> None:
    """
    Configure the root logger with the given level name.
    Unknown names fall back to INFO.
    """
    level = getattr(logging, log_level.upper(), None)
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)

    # The docker SDK and urllib3 are chatty at DEBUG
    for noisy in ("urllib3", "docker"):
        logging.getLogger(noisy).setLevel(max(level, logging.INFO))
