"""
Solana Volume Bot

Maker-order and trading-volume generation for Solana tokens. Swaps are
routed through the Jupiter aggregator and submitted as atomic Jito bundles.

Usage:
    from solana_volume_bot import AMM, Config, SecureKeyManager

    amm = AMM(connection, payer)
    await amm.makers(mint, 100)
"""

__version__ = "1.0.0"
__license__ = "MIT"

from .amm import AMM
from .bundles import Bundle, FundingInstruction, build_funding_tx
from .config import Config, ConfigManager, RetryPolicy
from .jito import BundleResponse, JitoClient
from .jupiter import Direction, JupiterRouter, SwapMode, SwapRequest, Workflow
from .session import MakerStats, SessionState, TradeOutcome, VolumeStats
from .strategy import TradePlan, VolumePlanner
from .wallet import SecureKeyManager, generate_signers
from .utils import (
    logger,
    setup_logging,
    format_sol,
    format_duration,
    VolumeBotError,
    FatalError,
    InvalidBlockhashError,
    InvalidBundleError,
    SwapError,
    NoRouteFoundError,
    SwapBuildFailedError,
    AggregatorError,
    BundleError,
    BundleRejectedError,
    SwapFailedError,
)

__all__ = [
    "AMM",
    "Bundle",
    "FundingInstruction",
    "build_funding_tx",
    "Config",
    "ConfigManager",
    "RetryPolicy",
    "BundleResponse",
    "JitoClient",
    "Direction",
    "JupiterRouter",
    "SwapMode",
    "SwapRequest",
    "Workflow",
    "MakerStats",
    "SessionState",
    "TradeOutcome",
    "VolumeStats",
    "TradePlan",
    "VolumePlanner",
    "SecureKeyManager",
    "generate_signers",
    "logger",
    "setup_logging",
    "format_sol",
    "format_duration",
    "VolumeBotError",
    "FatalError",
    "InvalidBlockhashError",
    "InvalidBundleError",
    "SwapError",
    "NoRouteFoundError",
    "SwapBuildFailedError",
    "AggregatorError",
    "BundleError",
    "BundleRejectedError",
    "SwapFailedError",
]
