"""
Jupiter Aggregator Integration
==============================
Requests a quote between two mints and a ready-to-sign swap transaction
for it. Route selection is entirely the aggregator's.

The transaction returned by /swap is rewritten onto the bundle's
blockhash and signed by the ephemeral signer.
"""

import base64
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import aiohttp
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from .bundles import rewrite_and_sign
from .constants import DEFAULT_SLIPPAGE_BPS, JUPITER_API_URL, WSOL_MINT
from .utils import (
    AggregatorError,
    NoRouteFoundError,
    SwapBuildFailedError,
    logger,
)


class Direction(str, Enum):
    BUY = "buy"
    SELL = "sell"


class SwapMode(str, Enum):
    EXACT_IN = "ExactIn"
    EXACT_OUT = "ExactOut"


class Workflow(str, Enum):
    MAKER = "maker"
    VOLUME = "volume"


# (workflow, direction) -> swap mode
SWAP_MODES = {
    (Workflow.MAKER, Direction.BUY): SwapMode.EXACT_OUT,
    (Workflow.MAKER, Direction.SELL): SwapMode.EXACT_IN,
    (Workflow.VOLUME, Direction.BUY): SwapMode.EXACT_IN,
    (Workflow.VOLUME, Direction.SELL): SwapMode.EXACT_OUT,
}


@dataclass(frozen=True)
class SwapRequest:
    """One quote request against the aggregator."""
    direction: Direction
    input_mint: Pubkey
    output_mint: Pubkey
    amount: int
    swap_mode: SwapMode
    dexes: Tuple[str, ...] = ()
    slippage_bps: int = DEFAULT_SLIPPAGE_BPS

    @classmethod
    def for_workflow(
        cls,
        workflow: Workflow,
        direction: Union[Direction, str],
        mint: Pubkey,
        amount: int,
        dexes: Sequence[str] = (),
        slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
    ) -> "SwapRequest":
        direction = Direction(direction)
        if amount <= 0:
            raise ValueError(f"Swap amount must be positive, got {amount}")
        if direction is Direction.BUY:
            input_mint, output_mint = WSOL_MINT, mint
        else:
            input_mint, output_mint = mint, WSOL_MINT
        return cls(
            direction=direction,
            input_mint=input_mint,
            output_mint=output_mint,
            amount=int(amount),
            swap_mode=SWAP_MODES[(Workflow(workflow), direction)],
            dexes=tuple(dexes),
            slippage_bps=slippage_bps,
        )

    def to_params(self) -> Dict[str, str]:
        params = {
            "inputMint": str(self.input_mint),
            "outputMint": str(self.output_mint),
            "amount": str(self.amount),
            "swapMode": self.swap_mode.value,
            "slippageBps": str(self.slippage_bps),
        }
        if self.dexes:
            params["dexes"] = ",".join(self.dexes)
        return params


@dataclass
class SwapPlan:
    """Quote and transactions for one swap attempt."""
    request: SwapRequest
    route: Dict[str, Any]
    unsigned_tx: VersionedTransaction
    signed_tx: Optional[VersionedTransaction] = None


class JupiterRouter:
    """Jupiter quote + swap client."""

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        base_url: str = JUPITER_API_URL,
        fee_account: Optional[Union[Pubkey, str]] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.fee_account = str(fee_account) if fee_account else None
        self.timeout_seconds = timeout_seconds
        self._session = session
        self._owns_session = session is None
        self.headers = {"Accept": "application/json"}

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    def _request_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"headers": self.headers}
        if self.timeout_seconds:
            kwargs["timeout"] = aiohttp.ClientTimeout(total=self.timeout_seconds)
        return kwargs

    async def _get_json(self, path: str, params: Dict[str, str]) -> Any:
        async with self._get_session().get(
            f"{self.base_url}{path}", params=params, **self._request_kwargs()
        ) as resp:
            if resp.status != 200:
                text = await resp.text()
                raise AggregatorError(f"Jupiter {path} error: {resp.status} - {text[:300]}")
            return await resp.json(content_type=None)

    async def _post_json(self, path: str, body: Dict[str, Any]) -> Any:
        async with self._get_session().post(
            f"{self.base_url}{path}", json=body, **self._request_kwargs()
        ) as resp:
            if resp.status != 200:
                text = await resp.text()
                raise AggregatorError(f"Jupiter {path} error: {resp.status} - {text[:300]}")
            return await resp.json(content_type=None)

    @staticmethod
    def _routes(data: Any) -> List[Dict[str, Any]]:
        if isinstance(data, dict):
            if isinstance(data.get("data"), list):
                return data["data"]
            if data.get("routePlan") or data.get("marketInfos"):
                return [data]
            return []
        if isinstance(data, list):
            return data
        return []

    async def quote(self, request: SwapRequest) -> Dict[str, Any]:
        """Best route for the request; NoRouteFoundError when none exists."""
        data = await self._get_json("/quote", request.to_params())
        routes = self._routes(data)
        if not routes:
            raise NoRouteFoundError(
                f"No route found for {request.direction.value} "
                f"{request.input_mint} -> {request.output_mint} ({request.amount}, {request.swap_mode.value})"
            )
        return routes[0]

    async def build_transaction(self, route: Dict[str, Any], signer: Pubkey) -> VersionedTransaction:
        """Unsigned swap transaction implementing the route for `signer`."""
        body: Dict[str, Any] = {
            "route": route,
            "userPublicKey": str(signer),
            "wrapUnwrapSOL": False,
            "asLegacyTransaction": False,
        }
        if self.fee_account:
            body["feeAccount"] = self.fee_account

        data = await self._post_json("/swap", body)
        encoded = data.get("swapTransaction") if isinstance(data, dict) else None
        if not encoded:
            raise SwapBuildFailedError(f"No swap transaction returned for {signer}")
        try:
            return VersionedTransaction.from_bytes(base64.b64decode(encoded))
        except Exception as e:
            raise SwapBuildFailedError(f"Undecodable swap transaction: {e}") from e

    async def plan(self, request: SwapRequest, signer: Keypair, blockhash: Union[Hash, str]) -> SwapPlan:
        route = await self.quote(request)
        unsigned = await self.build_transaction(route, signer.pubkey())
        plan = SwapPlan(request=request, route=route, unsigned_tx=unsigned)
        plan.signed_tx = rewrite_and_sign(unsigned, blockhash, signer)
        logger.debug(
            f"Swap planned: {request.direction.value} {request.amount} "
            f"({request.swap_mode.value}) for {signer.pubkey()}"
        )
        return plan

    async def swap_transaction(
        self,
        request: SwapRequest,
        signer: Keypair,
        blockhash: Union[Hash, str],
    ) -> VersionedTransaction:
        """Quote, build, rewrite onto `blockhash` and sign with `signer`."""
        plan = await self.plan(request, signer, blockhash)
        return plan.signed_tx

    async def close(self):
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "JupiterRouter":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
