"""
logging_config.py — Centralized Logging Configuration for the Storefront

This module configures unified logging behavior for the whole package.
It ensures that all modules log messages consistently to the console and,
when configured, to a file.

Features:
    • Console output (stdout) plus optional file output
    • Process ID tagging for multi-process visibility
    • Standardized log format for all modules
    • Reduced verbosity for HTTP client libraries (httpx, httpcore)
"""

import logging
import os
import sys

LOG_FILE = os.environ.get("FOTOFACIL_LOG_FILE")
LOG_LEVEL = os.environ.get("FOTOFACIL_LOG_LEVEL", "INFO")


def setup_logging(level=None, log_file=None):
    """
    Configures the global logging system for the storefront.

    The configuration includes:
        - Log level: FOTOFACIL_LOG_LEVEL (INFO by default)
        - Log format: timestamp, log level, process ID, and message
        - Output destinations:
            1. Console (stdout): real-time logs, container compatible
            2. File: FOTOFACIL_LOG_FILE, only when set
        - Reduced verbosity for httpx/httpcore, which log every request at INFO

    Args:
        level (str | int, optional): Overrides FOTOFACIL_LOG_LEVEL.
        log_file (str, optional): Overrides FOTOFACIL_LOG_FILE.
    """
    log_format = '%(asctime)s - %(levelname)s - [PID:%(process)d] - %(name)s - %(message)s'

    handlers = [logging.StreamHandler(sys.stdout)]
    log_file = log_file or LOG_FILE
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level or LOG_LEVEL,
        format=log_format,
        handlers=handlers,
    )

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name):
    """
    Returns a logger for a given module or component name.

    Args:
        name (str): The logger name, typically the module's __name__.

    Returns:
        logging.Logger: A logger that follows the global format and handlers.
    """
    return logging.getLogger(name)
