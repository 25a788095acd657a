"""
Session State

Everything the orchestrator mutates between suspension points: the cached
recent blockhash and the running counters. Owned by one AMM and passed
explicitly into each workflow call.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from solders.hash import Hash

from .constants import (
    LAMPORTS_PER_SOL,
    MAKER_BLOCKHASH_REFRESH_BUNDLES,
    VOLUME_BLOCKHASH_REFRESH_MS,
)
from .jupiter import Direction


@dataclass
class BlockhashCache:
    """Recent blockhash plus where and when it was captured."""
    value: Optional[Hash] = None
    refreshed_at_bundle: int = 0
    refreshed_at_ms: float = 0.0
    refresh_count: int = 0

    def stale_by_bundles(self, bundle_count: int, every: int = MAKER_BLOCKHASH_REFRESH_BUNDLES) -> bool:
        return self.value is None or bundle_count - self.refreshed_at_bundle >= every

    def stale_by_age(self, now_ms: float, max_age_ms: float = VOLUME_BLOCKHASH_REFRESH_MS) -> bool:
        return self.value is None or now_ms - self.refreshed_at_ms >= max_age_ms

    def update(self, value: Hash, bundle_count: int, now_ms: float):
        self.value = value
        self.refreshed_at_bundle = bundle_count
        self.refreshed_at_ms = now_ms
        self.refresh_count += 1


@dataclass
class SessionState:
    """Cached blockhash and running counters for one orchestrator."""
    blockhash: BlockhashCache = field(default_factory=BlockhashCache)
    bundle_count: int = 0
    latest_bundle_id: Optional[str] = None
    makers_completed: int = 0
    trade_count: int = 0
    net_volume_lamports: int = 0
    gross_volume_lamports: int = 0

    def record_bundle(self, bundle_id: str):
        self.bundle_count += 1
        self.latest_bundle_id = bundle_id

    def record_trade(self, direction: Direction, lamports: int):
        """Buys add to net volume, sells subtract; gross always grows."""
        if Direction(direction) is Direction.BUY:
            self.net_volume_lamports += lamports
        else:
            self.net_volume_lamports = max(0, self.net_volume_lamports - lamports)
        self.gross_volume_lamports += lamports
        self.trade_count += 1

    @property
    def net_volume_sol(self) -> float:
        return self.net_volume_lamports / LAMPORTS_PER_SOL

    @property
    def gross_volume_sol(self) -> float:
        return self.gross_volume_lamports / LAMPORTS_PER_SOL


@dataclass
class MakerStats:
    """Result of a makers() run."""
    makers_completed: int = 0
    makers_remaining: int = 0
    bundle_count: int = 0
    latest_bundle_id: Optional[str] = None
    sol_balance: Optional[float] = None
    finished: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'makers_completed': self.makers_completed,
            'makers_remaining': self.makers_remaining,
            'bundle_count': self.bundle_count,
            'latest_bundle_id': self.latest_bundle_id,
            'sol_balance': self.sol_balance,
            'finished': self.finished,
        }


@dataclass
class TradeOutcome:
    """Result of one volume iteration."""
    success: bool
    direction: Direction
    lamports: int
    bundle_id: Optional[str] = None
    endpoint: Optional[str] = None
    error: Optional[str] = None
    sol_balance: Optional[float] = None
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def amount_sol(self) -> float:
        return self.lamports / LAMPORTS_PER_SOL

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'direction': self.direction.value,
            'amount_sol': self.amount_sol,
            'bundle_id': self.bundle_id,
            'endpoint': self.endpoint,
            'error': self.error,
            'sol_balance': self.sol_balance,
            'timestamp': self.timestamp,
        }


@dataclass
class VolumeStats:
    """Aggregated statistics for a volume() run."""
    trades: int = 0
    failed_bundles: int = 0
    buys: int = 0
    sells: int = 0
    net_volume_lamports: int = 0
    gross_volume_lamports: int = 0

    def add(self, outcome: TradeOutcome):
        if not outcome.success:
            self.failed_bundles += 1
            return
        self.trades += 1
        self.gross_volume_lamports += outcome.lamports
        if outcome.direction is Direction.BUY:
            self.buys += 1
            self.net_volume_lamports += outcome.lamports
        else:
            self.sells += 1
            self.net_volume_lamports -= outcome.lamports

    def to_dict(self) -> Dict[str, Any]:
        return {
            'trades': self.trades,
            'failed_bundles': self.failed_bundles,
            'buys': self.buys,
            'sells': self.sells,
            'net_volume_sol': self.net_volume_lamports / LAMPORTS_PER_SOL,
            'gross_volume_sol': self.gross_volume_lamports / LAMPORTS_PER_SOL,
        }
