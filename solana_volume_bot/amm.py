"""
AMM Orchestrator
================
Maker-order generation, continuous volume generation and one-shot swaps
for a Solana token.

Every workflow iteration follows the same sequence:
    refresh blockhash (if stale) -> fresh ephemeral signer(s)
    -> funding tx -> swap tx(s) from the aggregator -> bundle -> relay

The orchestrator owns the RPC connection, the funding keypair and a
SessionState; loop iterations run under a RetryPolicy.
"""

import asyncio
import random
import time
from dataclasses import replace
from typing import AsyncIterator, Callable, Optional, Sequence, Union

from solana.rpc.commitment import Finalized
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction
from spl.token.instructions import get_associated_token_address

from .bundles import Bundle, build_funding_tx
from .config import Config, RetryPolicy
from .constants import (
    DEFAULT_MAKER_PROBE_AMOUNT,
    DEFAULT_MAKER_TIP_LAMPORTS,
    DEFAULT_SLIPPAGE_BPS,
    DEFAULT_VOLUME_TIP_LAMPORTS,
    LAMPORTS_PER_SOL,
    MAKERS_PER_BUNDLE,
)
from .jito import BundleResponse, JitoClient
from .jupiter import Direction, JupiterRouter, SwapRequest, Workflow
from .logging_utils import MetricsCollector, PerformanceMetrics
from .session import MakerStats, SessionState, TradeOutcome, VolumeStats
from .strategy import VolumePlanner
from .utils import (
    BundleRejectedError,
    SwapFailedError,
    format_address,
    format_duration,
    logger,
    sol_to_lamports,
)
from .wallet import generate_signers


def _to_pubkey(value: Union[Pubkey, str]) -> Pubkey:
    if isinstance(value, Pubkey):
        return value
    return Pubkey.from_string(value)


class AMM:
    """
    Automated market maker for Solana tokens.

    Example:
        >>> async with AsyncClient(rpc_url) as connection:
        ...     amm = AMM(connection, payer)
        ...     stats = await amm.makers(mint, 100)
    """

    def __init__(
        self,
        connection,
        payer: Keypair,
        disable_logs: bool = False,
        jupiter: Optional[JupiterRouter] = None,
        jito: Optional[JitoClient] = None,
        retry_policy: Optional[RetryPolicy] = None,
        session: Optional[SessionState] = None,
        rng: Optional[random.Random] = None,
        sleep: Optional[Callable] = None,
        clock: Optional[Callable[[], float]] = None,
        maker_probe_amount: int = DEFAULT_MAKER_PROBE_AMOUNT,
        slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
        max_concurrent_quotes: int = MAKERS_PER_BUNDLE,
        metrics: Optional[MetricsCollector] = None,
    ):
        """
        Args:
            connection: solana AsyncClient (or anything with the same async methods)
            payer: Funding keypair, signs every funding transaction
            disable_logs: Silence orchestrator logging
            jupiter: Aggregator client
            jito: Relay client
            retry_policy: Retry policy for loop iterations (default: forever, 5s apart)
            session: Session state to mutate (default: a fresh one)
            rng: Random source for trade planning
            sleep: Async sleep taking seconds (default asyncio.sleep)
            clock: Monotonic clock in milliseconds
            maker_probe_amount: Exact-out amount for maker buys, token smallest units
            slippage_bps: Slippage passed to every quote
            max_concurrent_quotes: Cap on parallel aggregator calls
        """
        self.connection = connection
        self.payer = payer
        self.disable_logs = disable_logs
        self.rng = rng or random.Random()
        self.jupiter = jupiter or JupiterRouter()
        self.jito = jito or JitoClient(rng=self.rng)
        self.retry_policy = retry_policy or RetryPolicy()
        self.session = session or SessionState()
        self._sleep = sleep or asyncio.sleep
        self._clock = clock or (lambda: time.monotonic() * 1000)
        self.maker_probe_amount = maker_probe_amount
        self.slippage_bps = slippage_bps
        self.max_concurrent_quotes = max_concurrent_quotes
        self.metrics = metrics or MetricsCollector()

    @classmethod
    def from_config(cls, connection, payer: Keypair, config: Config, http_session=None, **kwargs) -> "AMM":
        """Build an orchestrator and its HTTP clients from a Config."""
        config.validate()
        rng = kwargs.pop("rng", None) or random.Random()
        jupiter = JupiterRouter(
            session=http_session,
            base_url=config.jupiter_api_url,
            fee_account=config.fee_account,
            timeout_seconds=config.request_timeout_seconds,
        )
        jito = JitoClient(
            session=http_session,
            urls=config.jito_urls or None,
            rng=rng,
            timeout_seconds=config.request_timeout_seconds,
        )
        return cls(
            connection,
            payer,
            disable_logs=config.disable_logs,
            jupiter=jupiter,
            jito=jito,
            retry_policy=config.retry_policy(),
            rng=rng,
            maker_probe_amount=config.maker_probe_amount,
            slippage_bps=config.slippage_bps,
            max_concurrent_quotes=config.max_concurrent_quotes,
            **kwargs,
        )

    async def close(self):
        await self.jupiter.close()
        await self.jito.close()

    # ------------------------------------------------------------------
    # Logging and blockhash
    # ------------------------------------------------------------------

    def _log(self, message: str, level: str = "info"):
        if not self.disable_logs:
            getattr(logger, level)(message)

    def _before_sleep(self, workflow: str):
        def log_retry(retry_state):
            error = retry_state.outcome.exception()
            self._log(
                f"Error in {workflow} (attempt {retry_state.attempt_number}): "
                f"{type(error).__name__}: {error}",
                level="error",
            )
        return log_retry

    def _retrying(self, workflow: str):
        return self.retry_policy.retrying(sleep=self._sleep, before_sleep=self._before_sleep(workflow))

    async def refresh_blockhash(self, session: Optional[SessionState] = None) -> Hash:
        """Fetch the latest finalized blockhash and cache it in the session."""
        session = session or self.session
        response = await self.connection.get_latest_blockhash(Finalized)
        blockhash = response.value.blockhash
        session.blockhash.update(blockhash, session.bundle_count, self._clock())
        self._log(f"Blockhash refreshed: {blockhash}", level="debug")
        return blockhash

    # ------------------------------------------------------------------
    # Bundle plumbing
    # ------------------------------------------------------------------

    async def _swap_tx(
        self,
        workflow: Workflow,
        direction: Direction,
        mint: Pubkey,
        amount: int,
        signer: Keypair,
        blockhash: Hash,
        dexes: Sequence[str],
        slots: Optional[asyncio.Semaphore] = None,
    ) -> VersionedTransaction:
        request = SwapRequest.for_workflow(workflow, direction, mint, amount, dexes, self.slippage_bps)
        if slots is None:
            return await self.jupiter.swap_transaction(request, signer, blockhash)
        async with slots:
            return await self.jupiter.swap_transaction(request, signer, blockhash)

    async def _submit(self, bundle: Bundle, tip_lamports: int, operation: str) -> BundleResponse:
        encoded = bundle.validate().encoded()
        url = self.jito.pick_url()
        metric = PerformanceMetrics.start(operation, endpoint=url, tx_count=len(encoded), tip_lamports=tip_lamports)
        try:
            response = await self.jito.send_bundle(encoded, url)
        except Exception as e:
            metric.finalize(success=False, error=str(e))
            self.metrics.add_metric(metric)
            raise

        metric.bundle_id = response.bundle_id
        metric.finalize(success=response.ok, error=None if response.ok else response.error_message)
        self.metrics.add_metric(metric)
        return response

    # ------------------------------------------------------------------
    # Makers
    # ------------------------------------------------------------------

    async def _maker_bundle(
        self,
        mint: Pubkey,
        tip_lamports: int,
        dexes: Sequence[str],
        session: SessionState,
    ) -> BundleResponse:
        if session.blockhash.stale_by_bundles(session.bundle_count):
            await self.refresh_blockhash(session)
        blockhash = session.blockhash.value

        signers = generate_signers(MAKERS_PER_BUNDLE)
        recipients = [s.pubkey() for s in signers]
        fund_tx = build_funding_tx(
            self.payer, recipients, tip_lamports, blockhash, self.jito.pick_tip_account()
        )

        slots = asyncio.Semaphore(self.max_concurrent_quotes)
        swap_txs = await asyncio.gather(*[
            self._swap_tx(
                Workflow.MAKER, Direction.BUY, mint, self.maker_probe_amount,
                signer, blockhash, dexes, slots,
            )
            for signer in signers
        ])

        response = await self._submit(Bundle(fund_tx, list(swap_txs), recipients), tip_lamports, "makers")
        if not response.ok:
            raise BundleRejectedError(f"Bundle rejected by {response.endpoint}: {response.error_message}")
        return response

    async def maker_bundles(
        self,
        mint: Union[Pubkey, str],
        total_makers_required: int,
        jito_tip_lamports: Optional[int] = None,
        include_dexes: Optional[Sequence[str]] = None,
        session: Optional[SessionState] = None,
    ) -> AsyncIterator[MakerStats]:
        """Yield a MakerStats snapshot after every acknowledged maker bundle."""
        mint = _to_pubkey(mint)
        session = session or self.session
        tip = DEFAULT_MAKER_TIP_LAMPORTS if jito_tip_lamports is None else jito_tip_lamports
        dexes = tuple(include_dexes or ())

        self._log("Starting makers...")

        stats = MakerStats(makers_remaining=max(0, total_makers_required))

        while stats.makers_completed < total_makers_required:
            async for attempt in self._retrying("makers"):
                with attempt:
                    response = await self._maker_bundle(mint, tip, dexes, session)

            session.record_bundle(response.bundle_id)
            session.makers_completed += MAKERS_PER_BUNDLE

            stats.bundle_count += 1
            stats.latest_bundle_id = response.bundle_id
            stats.makers_completed += MAKERS_PER_BUNDLE
            stats.makers_remaining = max(0, total_makers_required - stats.makers_completed)
            stats.sol_balance = await self.get_sol_balance()
            stats.finished = stats.makers_completed >= total_makers_required

            self._log(
                f"Bundle #{stats.bundle_count} sent. Makers completed: "
                f"{stats.makers_completed}/{total_makers_required}. "
                f"SOL Balance: {stats.sol_balance:.4f}"
            )
            yield replace(stats)

    async def makers(
        self,
        mint: Union[Pubkey, str],
        total_makers_required: int,
        jito_tip_lamports: Optional[int] = None,
        include_dexes: Optional[Sequence[str]] = None,
        session: Optional[SessionState] = None,
    ) -> MakerStats:
        """
        Create maker orders for a token, four per bundle.

        Args:
            mint: Token mint
            total_makers_required: Stop once this many makers completed
            jito_tip_lamports: Relay tip per bundle (default 0.0001 SOL)
            include_dexes: Venues the aggregator may use (empty = any)
            session: Session state (default: the orchestrator's own)

        Returns:
            MakerStats with finished=True
        """
        stats = MakerStats()
        async for stats in self.maker_bundles(
            mint, total_makers_required,
            jito_tip_lamports=jito_tip_lamports,
            include_dexes=include_dexes,
            session=session,
        ):
            pass
        stats.finished = True
        return stats

    # ------------------------------------------------------------------
    # Volume
    # ------------------------------------------------------------------

    async def _volume_trade(
        self,
        mint: Pubkey,
        planner: VolumePlanner,
        tip_lamports: int,
        dexes: Sequence[str],
        session: SessionState,
    ) -> TradeOutcome:
        if session.blockhash.stale_by_age(self._clock()):
            await self.refresh_blockhash(session)
        blockhash = session.blockhash.value

        signer = generate_signers(1)[0]
        plan = planner.next_trade(session.net_volume_lamports)

        fund_tx = build_funding_tx(
            self.payer, [signer.pubkey()], tip_lamports, blockhash, self.jito.pick_tip_account()
        )
        swap_tx = await self._swap_tx(
            Workflow.VOLUME, plan.direction, mint, plan.lamports, signer, blockhash, dexes
        )

        response = await self._submit(Bundle(fund_tx, [swap_tx], [signer.pubkey()]), tip_lamports, "volume")
        return TradeOutcome(
            success=response.ok,
            direction=plan.direction,
            lamports=plan.lamports,
            bundle_id=response.bundle_id,
            endpoint=response.endpoint,
            error=None if response.ok else response.error_message,
        )

    async def volume_trades(
        self,
        mint: Union[Pubkey, str],
        min_sol_per_swap: float,
        max_sol_per_swap: float,
        mcap_factor: float,
        speed_factor: float = 1.0,
        jito_tip_lamports: Optional[int] = None,
        include_dexes: Optional[Sequence[str]] = None,
        session: Optional[SessionState] = None,
    ) -> AsyncIterator[TradeOutcome]:
        """
        Infinite stream of volume trades.

        Each item is the outcome of one submitted bundle. The randomized
        pause before the next trade runs when the consumer asks for it,
        so closing the stream never waits on a pending delay.
        """
        if speed_factor <= 0:
            raise ValueError(f"speed_factor must be positive, got {speed_factor}")

        mint = _to_pubkey(mint)
        session = session or self.session
        tip = DEFAULT_VOLUME_TIP_LAMPORTS if jito_tip_lamports is None else jito_tip_lamports
        dexes = tuple(include_dexes or ())
        planner = VolumePlanner(min_sol_per_swap, max_sol_per_swap, mcap_factor, rng=self.rng)

        self._log("Starting volume generation...")
        start_ms = self._clock()

        while True:
            async for attempt in self._retrying("volume"):
                with attempt:
                    outcome = await self._volume_trade(mint, planner, tip, dexes, session)

            if outcome.success:
                session.record_bundle(outcome.bundle_id)
                session.record_trade(outcome.direction, outcome.lamports)
                outcome.sol_balance = await self.get_sol_balance()
                runtime = format_duration(int((self._clock() - start_ms) // 1000))
                self._log(
                    f"Trade #{session.trade_count}: {outcome.direction.value.upper()} "
                    f"{outcome.amount_sol:.4f} SOL. Net Volume: {session.net_volume_sol:.4f} SOL. "
                    f"SOL Balance: {outcome.sol_balance:.4f}. Runtime: {runtime}."
                )
            else:
                self._log(f"Bundle not accepted by {outcome.endpoint}: {outcome.error}", level="warning")

            yield outcome
            await self._sleep(planner.next_delay_seconds(speed_factor))

    async def volume(
        self,
        mint: Union[Pubkey, str],
        min_sol_per_swap: float,
        max_sol_per_swap: float,
        mcap_factor: float,
        speed_factor: float = 1.0,
        jito_tip_lamports: Optional[int] = None,
        include_dexes: Optional[Sequence[str]] = None,
        max_trades: Optional[int] = None,
        session: Optional[SessionState] = None,
    ) -> VolumeStats:
        """
        Generate trading volume for a token.

        Runs until the process is stopped; with `max_trades` set, returns
        after that many acknowledged trades.

        Args:
            mint: Token mint
            min_sol_per_swap: Lower bound of a buy, in SOL
            max_sol_per_swap: Upper bound of a buy, in SOL
            mcap_factor: A sell liquidates at most 1/mcap_factor of net volume
            speed_factor: Divides the 5-15s pause between trades
            jito_tip_lamports: Relay tip per bundle (default 0.001 SOL)
            include_dexes: Venues the aggregator may use (empty = any)
            max_trades: Stop after this many successful trades
            session: Session state (default: the orchestrator's own)
        """
        stats = VolumeStats()
        trades = self.volume_trades(
            mint, min_sol_per_swap, max_sol_per_swap, mcap_factor, speed_factor,
            jito_tip_lamports=jito_tip_lamports,
            include_dexes=include_dexes,
            session=session,
        )
        try:
            async for outcome in trades:
                stats.add(outcome)
                if max_trades is not None and stats.trades >= max_trades:
                    break
        finally:
            await trades.aclose()
        return stats

    # ------------------------------------------------------------------
    # One-shot swap
    # ------------------------------------------------------------------

    async def swap(
        self,
        mint: Union[Pubkey, str],
        direction: Union[Direction, str],
        amount: float,
        jito_tip_lamports: Optional[int] = None,
        include_dexes: Optional[Sequence[str]] = None,
        session: Optional[SessionState] = None,
    ) -> str:
        """
        Execute a single swap bundle.

        Args:
            mint: Token mint
            direction: "buy" or "sell"
            amount: Amount in SOL
            jito_tip_lamports: Relay tip (default 0.001 SOL)
            include_dexes: Venues the aggregator may use (empty = any)

        Returns:
            Bundle id

        Raises:
            SwapFailedError: relay did not acknowledge the bundle
            SwapError: aggregator could not produce the swap
        """
        mint = _to_pubkey(mint)
        direction = Direction(direction)
        session = session or self.session
        signer = generate_signers(1)[0]
        if session.blockhash.value is None:
            await self.refresh_blockhash(session)
        tip = DEFAULT_VOLUME_TIP_LAMPORTS if jito_tip_lamports is None else jito_tip_lamports
        dexes = tuple(include_dexes or ())

        try:
            blockhash = session.blockhash.value
            fund_tx = build_funding_tx(
                self.payer, [signer.pubkey()], tip, blockhash, self.jito.pick_tip_account()
            )
            swap_tx = await self._swap_tx(
                Workflow.VOLUME, direction, mint, sol_to_lamports(amount), signer, blockhash, dexes
            )
            response = await self._submit(Bundle(fund_tx, [swap_tx], [signer.pubkey()]), tip, "swap")
            if not response.ok:
                raise SwapFailedError(f"Swap failed: {response.error_message}")
        except Exception as e:
            self._log(f"Error during swap: {e}", level="error")
            raise

        self._log(f"Swap successful. Bundle ID: {response.bundle_id}")
        return response.bundle_id

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    async def get_token_balance(self, mint: Union[Pubkey, str]) -> float:
        """Token balance of the payer's associated token account."""
        try:
            ata = get_associated_token_address(self.payer.pubkey(), _to_pubkey(mint))
            response = await self.connection.get_token_account_balance(ata)
            value = response.value
            return int(value.amount) / 10 ** value.decimals
        except Exception as e:
            self._log(f"Error getting token balance for {format_address(str(mint))}: {e}", level="error")
            return 0.0

    async def get_sol_balance(self) -> float:
        """SOL balance of the payer."""
        try:
            response = await self.connection.get_balance(self.payer.pubkey())
            return response.value / LAMPORTS_PER_SOL
        except Exception as e:
            self._log(f"Error getting SOL balance: {e}", level="error")
            return 0.0
