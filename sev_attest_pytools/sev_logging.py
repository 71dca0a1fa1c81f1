# Copyright 2025 Hewlett Packard Enterprise Development LP.
# SPDX-License-Identifier: MIT
#
# Logging configuration and helpers for the SEV attestation protocol tools.

import logging
import sys
from typing import Optional

ROOT_LOGGER_NAME = "sev_attest_pytools"

DEFAULT_FORMAT = "%(message)s"
VERBOSE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s [%(filename)s:%(lineno)d]: %(message)s"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    get_logger
    Description: Get a logger namespaced under the package root logger
    Input: name (str): Module name, usually __name__
    Output: logging.Logger
    """
    if not name:
        return logging.getLogger(ROOT_LOGGER_NAME)
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    fmt: str = DEFAULT_FORMAT,
) -> logging.Logger:
    """
    setup_logging
    Description: Configure the package root logger with a console handler and an optional file handler
    Inputs:
        level (int): Logging level for the console handler
        log_file (str): Optional path of a file that receives all records at DEBUG level
        fmt (str): Format string for console output
    Output: logging.Logger: The configured root logger of the package
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)

    # Re-running setup must not stack handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(logging.DEBUG if log_file else level)
    logger.propagate = False

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(logging.Formatter(fmt))
    logger.addHandler(console)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)

    return logger


def setup_cli_logging(
    verbose: bool = False, quiet: bool = False, log_file: Optional[str] = None
) -> logging.Logger:
    """
    setup_cli_logging
    Description: Configure logging for command-line tools
    Inputs:
        verbose (bool): Show debug output
        quiet (bool): Show warnings and errors only (wins over verbose)
        log_file (str): Optional log file path
    Output: logging.Logger
    """
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    fmt = VERBOSE_FORMAT if verbose and not quiet else DEFAULT_FORMAT
    return setup_logging(level=level, log_file=log_file, fmt=fmt)


def setup_library_logging() -> logging.Logger:
    """Install a NullHandler so library use stays silent unless the application configures logging."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    if not any(isinstance(h, logging.NullHandler) for h in logger.handlers):
        logger.addHandler(logging.NullHandler())
    return logger


def log_section_header(title: str) -> None:
    logger = get_logger()
    logger.info("=" * 60)
    logger.info(title.center(60))
    logger.info("=" * 60)


def log_subsection_header(title: str) -> None:
    logger = get_logger()
    logger.info("")
    logger.info(title)
    logger.info("-" * len(title))


def log_verification_step(step: str, status: str, details: Optional[str] = None) -> None:
    """
    log_verification_step
    Description: Log the outcome of a single verification or validation step
    Inputs:
        step (str): Step description
        status (str): PASS, OK, FAIL, ...
        details (str): Optional extra detail logged at debug level
    Output: None
    """
    logger = get_logger()
    if status.upper() in ("FAIL", "FAILED", "ERROR"):
        logger.error(f"[{status}] {step}")
    else:
        logger.info(f"[{status}] {step}")
    if details:
        logger.debug(f"  {details}")


def log_network_request(url: str, method: str, status_code: Optional[int] = None) -> None:
    logger = get_logger()
    if status_code is None:
        logger.debug(f"{method} {url}")
    else:
        logger.debug(f"{method} {url} -> HTTP {status_code}")
