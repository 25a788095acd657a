"""
Utility Module

Exceptions, logging setup, random selection and formatting helpers.

- Secure logging that redacts secret keys
- Exception hierarchy shared by the clients and the orchestrator
"""

import os
import re
import logging
import random
from typing import Optional, Sequence, TypeVar

from rich.logging import RichHandler
from rich.console import Console

from .constants import LAMPORTS_PER_SOL

T = TypeVar("T")

# Global console for Rich output
console = Console()


class VolumeBotError(Exception):
    """Base exception for the bot."""
    pass


class FatalError(VolumeBotError):
    """Error that the workflow loops never retry."""
    pass


class InvalidBlockhashError(FatalError):
    """Missing or malformed recent blockhash at transaction construction."""
    pass


class SwapError(VolumeBotError):
    """Aggregator could not produce a usable swap."""
    pass


class NoRouteFoundError(SwapError):
    """Aggregator returned an empty route set."""
    pass


class SwapBuildFailedError(SwapError):
    """Aggregator could not build a transaction for a route."""
    pass


class AggregatorError(SwapError):
    """Aggregator answered with a non-success HTTP status."""
    pass


class BundleError(VolumeBotError):
    """Relay did not accept a bundle."""
    pass


class BundleRejectedError(BundleError):
    """Relay response carried no bundle id."""
    pass


class InvalidBundleError(FatalError, BundleError):
    """Bundle transactions are inconsistent with each other."""
    pass


class SwapFailedError(BundleError):
    """One-shot swap bundle was not acknowledged."""
    pass


class SecureLogger:
    """
    Logger that sanitizes sensitive data from log messages.

    Base58 secret keys are 64 bytes, i.e. 86-88 base58 characters.
    Public keys (32-44 chars) stay readable. Transaction signatures have
    the same length and get redacted as well.
    """

    SENSITIVE_PATTERNS = [
        (r'\b[1-9A-HJ-NP-Za-km-z]{86,88}\b', '[SECRET_KEY_REDACTED]'),
        (r'\[(\s*\d{1,3}\s*,){63}\s*\d{1,3}\s*\]', '[SECRET_KEY_REDACTED]'),
        (r'password["\']?\s*[:=]\s*["\'][^"\']+["\']', 'password=[REDACTED]'),
        (r'api[_-]?key["\']?\s*[:=]\s*["\'][^"\']+["\']', 'api_key=[REDACTED]'),
    ]

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    def _sanitize(self, msg: str) -> str:
        """Remove sensitive data from log message."""
        if not isinstance(msg, str):
            msg = str(msg)

        sanitized = msg
        for pattern, replacement in self.SENSITIVE_PATTERNS:
            sanitized = re.sub(pattern, replacement, sanitized)
        return sanitized

    @property
    def name(self) -> str:
        return self._logger.name

    def debug(self, msg: str, *args, **kwargs):
        self._logger.debug(self._sanitize(msg), *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self._logger.info(self._sanitize(msg), *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self._logger.warning(self._sanitize(msg), *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self._logger.error(self._sanitize(msg), *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        self._logger.exception(self._sanitize(msg), *args, **kwargs)

    def critical(self, msg: str, *args, **kwargs):
        self._logger.critical(self._sanitize(msg), *args, **kwargs)


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> SecureLogger:
    """
    Setup logging with rich console output and an optional log file.

    Returns a SecureLogger that sanitizes sensitive data.
    """
    logger = logging.getLogger("solana_volume_bot")
    logger.setLevel(getattr(logging, log_level.upper()))

    # Remove existing handlers
    logger.handlers = []

    rich_handler = RichHandler(
        console=console,
        show_time=True,
        show_path=False,
        rich_tracebacks=True
    )
    rich_handler.setLevel(getattr(logging, log_level.upper()))
    rich_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(rich_handler)

    if log_file:
        log_path = os.path.abspath(log_file)
        os.makedirs(os.path.dirname(log_path) or ".", exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(getattr(logging, log_level.upper()))
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))
        logger.addHandler(file_handler)

    return SecureLogger(logger)


# Initialize global secure logger
logger = setup_logging()


def pick_random(items: Sequence[T], rng: Optional[random.Random] = None) -> T:
    """Pick one element uniformly at random."""
    if not items:
        raise ValueError("Cannot pick from an empty sequence")
    rng = rng or random
    return items[rng.randrange(len(items))]


# Formatting utilities

def sol_to_lamports(amount_sol: float) -> int:
    """Convert SOL to lamports, rounding to the nearest lamport."""
    return int(round(amount_sol * LAMPORTS_PER_SOL))


def lamports_to_sol(lamports: int) -> float:
    return lamports / LAMPORTS_PER_SOL


def format_sol(amount_sol: float) -> str:
    """Format SOL amount with appropriate precision."""
    if abs(amount_sol) < 0.001:
        return f"{amount_sol:.6f} SOL"
    return f"{amount_sol:.4f} SOL"


def format_duration(seconds: int) -> str:
    """Format duration in seconds to human-readable string."""
    if seconds < 60:
        return f"{seconds}s"
    elif seconds < 3600:
        minutes = seconds // 60
        secs = seconds % 60
        return f"{minutes}m {secs}s" if secs > 0 else f"{minutes}m"
    else:
        hours = seconds // 3600
        minutes = (seconds % 3600) // 60
        return f"{hours}h {minutes}m" if minutes > 0 else f"{hours}h"


def format_address(address: str, length: int = 4) -> str:
    """Format a base58 address with ellipsis."""
    address = str(address)
    if len(address) <= length * 2 + 3:
        return address
    return f"{address[:length]}...{address[-length:]}"
