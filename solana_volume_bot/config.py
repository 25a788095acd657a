"""
Configuration Management Module

Bot settings in a YAML file plus the retry policy the workflow loops run
under. The funding key lives in a separate encrypted key file (see wallet.py).
"""

import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass, asdict, field

import yaml
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    stop_after_delay,
    stop_never,
    wait_fixed,
)

from .constants import (
    DEFAULT_MAKER_PROBE_AMOUNT,
    DEFAULT_MAKER_TIP_LAMPORTS,
    DEFAULT_RPC_URL,
    DEFAULT_SLIPPAGE_BPS,
    DEFAULT_VOLUME_TIP_LAMPORTS,
    JUPITER_API_URL,
    RETRY_DELAY_SECONDS,
)
from .utils import FatalError

import logging
logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    """
    How a workflow iteration is retried after a failure.

    None for both limits keeps retrying forever. FatalError is never retried.
    """
    delay_seconds: float = RETRY_DELAY_SECONDS
    max_attempts: Optional[int] = None
    max_duration_seconds: Optional[float] = None

    def _stop(self):
        stop = None
        if self.max_attempts is not None:
            stop = stop_after_attempt(self.max_attempts)
        if self.max_duration_seconds is not None:
            by_delay = stop_after_delay(self.max_duration_seconds)
            stop = by_delay if stop is None else stop | by_delay
        return stop or stop_never

    def retrying(
        self,
        sleep: Optional[Callable] = None,
        before_sleep: Optional[Callable] = None,
    ) -> AsyncRetrying:
        kwargs: Dict[str, Any] = {
            "stop": self._stop(),
            "wait": wait_fixed(self.delay_seconds),
            "retry": retry_if_exception_type(Exception) & retry_if_not_exception_type(FatalError),
            "reraise": True,
        }
        if sleep is not None:
            kwargs["sleep"] = sleep
        if before_sleep is not None:
            kwargs["before_sleep"] = before_sleep
        return AsyncRetrying(**kwargs)


@dataclass
class Config:
    """Bot configuration settings."""

    # Network
    rpc_url: str = DEFAULT_RPC_URL
    jupiter_api_url: str = JUPITER_API_URL
    jito_urls: List[str] = field(default_factory=list)  # empty = built-in block engines

    # Token
    token_mint: Optional[str] = None
    fee_account: Optional[str] = None

    # Bundles
    maker_tip_lamports: int = DEFAULT_MAKER_TIP_LAMPORTS
    volume_tip_lamports: int = DEFAULT_VOLUME_TIP_LAMPORTS
    include_dexes: List[str] = field(default_factory=list)
    slippage_bps: int = DEFAULT_SLIPPAGE_BPS
    maker_probe_amount: int = DEFAULT_MAKER_PROBE_AMOUNT
    max_concurrent_quotes: int = 4

    # Volume settings
    min_sol_per_swap: float = 0.01
    max_sol_per_swap: float = 0.05
    mcap_factor: float = 2.0
    speed_factor: float = 1.0

    # Makers
    makers_count: int = 100

    # Retry / transport
    retry_delay_seconds: float = RETRY_DELAY_SECONDS
    max_retries: Optional[int] = None
    max_retry_duration_seconds: Optional[float] = None
    request_timeout_seconds: Optional[float] = None

    # Operation
    disable_logs: bool = False
    log_level: str = "INFO"
    log_file: str = "./bot.log"
    key_file: str = ".bot_wallet.enc"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create Config from dictionary."""
        # Filter only valid fields
        valid_fields = {k: v for k, v in (data or {}).items() if k in cls.__dataclass_fields__}
        return cls(**valid_fields)

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            delay_seconds=self.retry_delay_seconds,
            max_attempts=self.max_retries,
            max_duration_seconds=self.max_retry_duration_seconds,
        )

    def validate(self):
        """Raise ValueError for settings the workflows cannot run with."""
        if self.min_sol_per_swap <= 0:
            raise ValueError("min_sol_per_swap must be positive")
        if self.max_sol_per_swap < self.min_sol_per_swap:
            raise ValueError("max_sol_per_swap must be >= min_sol_per_swap")
        if self.mcap_factor < 1:
            raise ValueError("mcap_factor must be >= 1")
        if self.speed_factor <= 0:
            raise ValueError("speed_factor must be positive")
        if self.max_retries is not None and self.max_retries < 1:
            raise ValueError("max_retries must be >= 1 when set")
        if self.max_concurrent_quotes < 1:
            raise ValueError("max_concurrent_quotes must be >= 1")
        if not 0 < self.slippage_bps <= 10_000:
            raise ValueError("slippage_bps must be in (0, 10000]")


class ConfigManager:
    """Manages the YAML configuration file."""

    def __init__(self, config_path: Path = Path("./bot_config.yaml")):
        self.config_path = Path(config_path)

    def exists(self) -> bool:
        return self.config_path.exists()

    def load_config(self) -> Config:
        """Load configuration."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        with open(self.config_path, 'r') as f:
            data = yaml.safe_load(f)

        config = Config.from_dict(data)
        logger.info("Configuration loaded successfully")
        return config

    def read_raw_config(self) -> Dict[str, Any]:
        """Read config file as a plain dictionary."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        with open(self.config_path, 'r') as f:
            return yaml.safe_load(f) or {}

    def save_config(self, config: Config):
        """Save configuration to YAML file."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.config_path, 'w') as f:
            yaml.dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)

        # Set restrictive permissions (owner read/write only)
        os.chmod(self.config_path, 0o600)

        logger.info(f"Configuration saved to {self.config_path}")

    def create_default(self) -> Config:
        """Write the default template and return it parsed."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        self.config_path.write_text(DEFAULT_CONFIG + "\n")
        os.chmod(self.config_path, 0o600)
        return self.load_config()

    def update_config(self, updates: Dict[str, Any]) -> Config:
        """Update configuration values."""
        data = self.read_raw_config()
        data.update(updates)

        config = Config.from_dict(data)
        self.save_config(config)

        logger.info("Configuration updated")
        return config


# Default configuration template
DEFAULT_CONFIG = """
# Solana Volume Bot Configuration

rpc_url: https://api.mainnet-beta.solana.com
jupiter_api_url: https://quote-api.jup.ag/v4
jito_urls: []

# Token
token_mint: null
fee_account: null

# Bundles (tips in lamports)
maker_tip_lamports: 100000
volume_tip_lamports: 1000000
include_dexes: []
slippage_bps: 1000
maker_probe_amount: 1
max_concurrent_quotes: 4

# Volume
min_sol_per_swap: 0.01
max_sol_per_swap: 0.05
mcap_factor: 2.0
speed_factor: 1.0

# Makers
makers_count: 100

# Retry (null = retry forever)
retry_delay_seconds: 5
max_retries: null
max_retry_duration_seconds: null
request_timeout_seconds: null

# Operation
disable_logs: false
log_level: INFO
log_file: ./bot.log
key_file: .bot_wallet.enc
""".strip()
