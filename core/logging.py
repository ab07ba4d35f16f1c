"""
Unified Logging Configuration

This module sets up a centralized logging system for the entire application.
All modules should import and use the logger from this module instead of
using print() statements.

Usage:
    from core.logging import logger, get_logger

    logger.info("Dashboard started")
    log = get_logger(__name__)
    log.debug("Fetching pair overview")

Log Levels (from most to least verbose):
    DEBUG    - Request/response details, discarded stale results
    INFO     - State transitions, selection changes
    WARNING  - Failed fetches surfaced as Error states
    ERROR    - Transport failures inside the clients
    CRITICAL - Startup failures

Configuration:
    Log level is controlled by the LOG_LEVEL setting in .env file.
"""

import logging
import sys
from typing import Optional


def setup_logging(
    log_level: str = "INFO",
    log_format: Optional[str] = None,
    include_timestamp: bool = True,
    include_module: bool = True
) -> logging.Logger:
    """
    Configure and return the application logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Custom log format string (uses default if None)
        include_timestamp: Include timestamp in log messages
        include_module: Include module name in log messages

    Returns:
        logging.Logger: Configured logger instance

    Example:
        >>> logger = setup_logging(log_level="DEBUG")
        >>> logger.info("Application started")
        2024-01-01 12:00:00 [INFO] pairdash: Application started
    """
    if log_format is None:
        format_parts = []

        if include_timestamp:
            format_parts.append("%(asctime)s")

        format_parts.append("[%(levelname)s]")

        if include_module:
            format_parts.append("%(name)s")

        format_parts.append("%(message)s")

        log_format = " ".join(format_parts)

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format=log_format,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True
    )

    logger = logging.getLogger("pairdash")
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    return logger


# ============================================
# Initialize Logger with Settings
# ============================================

try:
    from core.config import settings
    log_level = settings.log_level if hasattr(settings, 'log_level') else "INFO"
except ImportError:
    log_level = "INFO"

logger = setup_logging(log_level=log_level)


# ============================================
# Convenience Functions
# ============================================

def get_logger(name: str) -> logging.Logger:
    """
    Get a child logger of the application logger.

    Example:
        >>> from core.logging import get_logger
        >>> log = get_logger(__name__)  # "pairdash.services.orchestrator"
    """
    return logging.getLogger(f"pairdash.{name}")


def set_log_level(level: str) -> None:
    """Change the log level at runtime."""
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logging.getLogger().setLevel(getattr(logging, level.upper(), logging.INFO))


# ============================================
# Log Helper Functions
# ============================================

def log_api_request(source: str, operation: str, params: dict = None) -> None:
    """
    Log an outgoing remote call with consistent formatting.

    Example:
        >>> log_api_request("subgraph", "pair", {"id": "0xabc"})
        [DEBUG] API Request: subgraph pair | Params: {'id': '0xabc'}
    """
    if params:
        logger.debug(f"API Request: {source} {operation} | Params: {params}")
    else:
        logger.debug(f"API Request: {source} {operation}")


def log_api_response(source: str, operation: str, status: int, response_time: float = None) -> None:
    """
    Log a remote response with status and timing information.

    Example:
        >>> log_api_response("rpc", "eth_call", 200, 0.120)
        [DEBUG] API Response: rpc eth_call | Status: 200 | Time: 0.120s
    """
    time_str = f" | Time: {response_time:.3f}s" if response_time else ""
    logger.debug(f"API Response: {source} {operation} | Status: {status}{time_str}")


def log_state_transition(group: str, previous: str, current: str, generation: int, reason: str = None) -> None:
    """
    Log a committed FetchState transition.

    Errors are logged at WARNING so they stand out; every other
    transition is INFO.

    Example:
        >>> log_state_transition("pair", "loading", "ready", 3)
        [INFO] State: pair loading -> ready | Generation: 3
    """
    reason_str = f" | Reason: {reason}" if reason else ""
    level = logging.WARNING if current == "error" else logging.INFO
    logger.log(level, f"State: {group} {previous} -> {current} | Generation: {generation}{reason_str}")


def log_stale_result(group: str, generation: int, current_generation: int, sequence: int = None) -> None:
    """
    Log a result discarded by the staleness guard.

    Example:
        >>> log_stale_result("pair", 2, 3)
        [DEBUG] Stale result discarded: pair | Generation: 2 (current 3)
    """
    seq_str = f" | Cycle: {sequence}" if sequence is not None else ""
    logger.debug(
        f"Stale result discarded: {group} | Generation: {generation} (current {current_generation}){seq_str}"
    )


logger.debug("Logging system initialized")
