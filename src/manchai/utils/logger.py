"""Logging configuration for ManchAI."""

import logging
import sys
from datetime import datetime
from pathlib import Path


def setup_logger(verbose: bool = False, save_to_file: bool = False, log_dir: str = "data/logs") -> logging.Logger:
    """
    Configure logging for the application.

    Args:
        verbose: If True, show DEBUG records on the console, otherwise INFO
        save_to_file: If True, also log everything to a timestamped file
        log_dir: Directory for log files

    Returns:
        Configured root logger
    """
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)

    # Clear any existing handlers
    logger.handlers.clear()

    detailed_formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt="%H:%M:%S"
    )
    console_formatter = logging.Formatter("%(levelname)s %(name)s: %(message)s")

    # stderr keeps the studio's stdout free for dialogue
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(console_formatter)

    # Only show our own records on the console
    console_handler.addFilter(lambda record: record.name.startswith("manchai"))

    logger.addHandler(console_handler)

    if save_to_file:
        try:
            path = Path(log_dir)
            path.mkdir(parents=True, exist_ok=True)

            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            log_file = path / f"studio_{timestamp}.log"

            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(detailed_formatter)
            logger.addHandler(file_handler)

            logger.info(f"Logging to file: {log_file}")
        except OSError as e:
            logger.error(f"Failed to create file handler: {e}")

    return logger
