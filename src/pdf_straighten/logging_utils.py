"""
Logging setup for the command-line tools.
Library modules only use module loggers; handlers are configured here.
"""

import logging
import sys
from pathlib import Path
from typing import Any, Callable, Dict, Optional


def setup_script_logging(
    script_name: str,
    config: Dict[str, Any],
    output_dir: Optional[Path] = None,
    verbose: bool = False,
) -> logging.Logger:
    """
    Set up logging for a script based on configuration.

    Args:
        script_name: Name of the script (used for log file naming)
        config: Configuration dictionary with debug settings
        output_dir: Directory where log files should be written (default: cwd)
        verbose: Whether to enable verbose console output

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(script_name)

    # Clear any existing handlers to avoid duplicates
    logger.handlers.clear()

    log_target = config.get("debug", {}).get("log_target", "stdout")

    # Library loggers follow the script's verbosity
    package_logger = logging.getLogger("pdf_straighten")
    package_logger.handlers.clear()

    if log_target == "file":
        log_file = (output_dir or Path.cwd()) / f"{script_name}.log"

        file_handler = logging.FileHandler(log_file, mode="w")
        file_handler.setLevel(logging.DEBUG)
        file_formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)
        package_logger.addHandler(file_handler)

        # Add console handler if verbose
        if verbose:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(logging.DEBUG)
            console_handler.setFormatter(logging.Formatter("%(message)s"))
            logger.addHandler(console_handler)

        logger.setLevel(logging.DEBUG)
        package_logger.setLevel(logging.DEBUG)
        print(f"Detailed logging to: {log_file}")

    else:
        level = logging.DEBUG if verbose else logging.INFO
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(console_handler)
        logger.setLevel(level)
        if verbose:
            package_logger.addHandler(console_handler)
        package_logger.setLevel(level)

    package_logger.propagate = False
    return logger


def page_event_logger(logger: logging.Logger) -> Callable:
    """Observer for ``Document.page_angles`` that logs one line per page."""

    def observe(event):
        logger.info("page %s: %8s %.1f", event.page + 1, event.raw_size, event.angle)

    return observe
