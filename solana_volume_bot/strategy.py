"""
Volume Planner

Decides direction and size of each volume trade. Sells are only planned
while net volume is positive and never exceed net / mcap_factor, so net
volume cannot go negative.
"""

import random
from dataclasses import dataclass
from typing import Optional

from .constants import LAMPORTS_PER_SOL
from .jupiter import Direction

BASE_DELAY_MIN_SECONDS = 5.0
BASE_DELAY_MAX_SECONDS = 15.0


@dataclass(frozen=True)
class TradePlan:
    direction: Direction
    lamports: int


class VolumePlanner:
    """
    Buy/sell cadence for the volume workflow.

    A sell happens when net volume is positive and either the
    buys-before-next-sell countdown reached zero or a random trigger
    fires. The countdown resets to 1-3 after every sell and counts down
    after every buy.
    """

    def __init__(
        self,
        min_sol_per_swap: float,
        max_sol_per_swap: float,
        mcap_factor: float,
        rng: Optional[random.Random] = None,
        sell_probability: float = 0.3,
    ):
        if min_sol_per_swap <= 0:
            raise ValueError(f"min_sol_per_swap must be positive, got {min_sol_per_swap}")
        if max_sol_per_swap < min_sol_per_swap:
            raise ValueError("max_sol_per_swap must be >= min_sol_per_swap")
        if mcap_factor < 1:
            raise ValueError(f"mcap_factor must be >= 1, got {mcap_factor}")

        self.rng = rng or random.Random()
        self.min_lamports = int(round(min_sol_per_swap * LAMPORTS_PER_SOL))
        self.max_lamports = int(round(max_sol_per_swap * LAMPORTS_PER_SOL))
        self.mcap_factor = mcap_factor
        self.sell_probability = sell_probability
        self.trades_until_next_sell = self._reset_countdown()

    def _reset_countdown(self) -> int:
        return self.rng.randint(1, 3)

    def max_sell_lamports(self, net_volume_lamports: int) -> int:
        return int(net_volume_lamports / self.mcap_factor)

    def should_sell(self, net_volume_lamports: int) -> bool:
        if net_volume_lamports <= 0:
            return False
        return self.trades_until_next_sell <= 0 or self.rng.random() < self.sell_probability

    def next_trade(self, net_volume_lamports: int) -> TradePlan:
        if self.should_sell(net_volume_lamports):
            fraction = (0.5 + 0.5 * self.rng.random()) / self.mcap_factor
            lamports = min(
                int(net_volume_lamports * fraction),
                self.max_sell_lamports(net_volume_lamports),
            )
            if lamports > 0:
                self.trades_until_next_sell = self._reset_countdown()
                return TradePlan(Direction.SELL, lamports)

        lamports = self.rng.randint(self.min_lamports, self.max_lamports)
        self.trades_until_next_sell -= 1
        return TradePlan(Direction.BUY, lamports)

    def next_delay_seconds(self, speed_factor: float = 1.0) -> float:
        """Randomized 5-15s pause, shortened by the speed factor."""
        if speed_factor <= 0:
            raise ValueError(f"speed_factor must be positive, got {speed_factor}")
        return self.rng.uniform(BASE_DELAY_MIN_SECONDS, BASE_DELAY_MAX_SECONDS) / speed_factor
