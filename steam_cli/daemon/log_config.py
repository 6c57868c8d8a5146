"""Logging configuration for the daemon and the foreground CLI."""
import logging
import sys


def _formatter():
    return logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def setup_daemon_logging(log_file=None):
    """Set up logging for daemon process.

    Args:
        log_file: Optional path to log file. If None, defaults to the daemon log directory.

    Returns:
        str: The log file path being used, or None when logging to stderr.

    """
    from .utils import get_daemon_log_path

    logger = logging.getLogger()
    logger.setLevel(logging.INFO)

    try:
        if log_file is None:
            log_file = get_daemon_log_path()
        handler = logging.FileHandler(log_file)
        handler.setFormatter(_formatter())
        logger.addHandler(handler)
        logger.info("Logging to %s", log_file)
        return log_file
    except OSError as e:
        # Fall back to stderr if we can't write to file
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(_formatter())
        logger.addHandler(handler)
        logger.error("Failed to open log file %s: %s. Logging to stderr.", log_file, e)
        return None


def setup_cli_logging(verbose=False):
    """Log warnings (or everything with `verbose`) of a foreground invocation to stderr."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))
    logger = logging.getLogger()
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
