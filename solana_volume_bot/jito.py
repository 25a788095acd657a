"""
Jito Relay Client
=================
Submits signed transactions as one atomic bundle to a block engine.

API Docs: https://docs.jito.wtf/lowlatencytxnsend/#sendbundle
"""

import random
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import aiohttp
from solders.pubkey import Pubkey

from .constants import JITO_ACCOUNTS, JITO_URLS
from .utils import logger, pick_random


@dataclass
class BundleResponse:
    """Relay acknowledgement or error payload."""
    bundle_id: Optional[str] = None
    error: Optional[Any] = None
    endpoint: Optional[str] = None
    raw: Optional[Dict[str, Any]] = None

    @property
    def ok(self) -> bool:
        return bool(self.bundle_id)

    @property
    def error_message(self) -> str:
        if isinstance(self.error, dict):
            return str(self.error.get("message") or self.error)
        if self.error:
            return str(self.error)
        return "Unknown error"


class JitoClient:
    """Block engine client with uniform random endpoint and tip account selection."""

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        urls: Optional[Sequence[str]] = None,
        tip_accounts: Optional[Sequence[Pubkey]] = None,
        rng: Optional[random.Random] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.urls = list(urls or JITO_URLS)
        self.tip_accounts = list(tip_accounts or JITO_ACCOUNTS)
        self.rng = rng or random.Random()
        self._session = session
        self._owns_session = session is None
        self.timeout_seconds = timeout_seconds
        self.headers = {"Content-Type": "application/json"}

    def pick_url(self) -> str:
        return pick_random(self.urls, self.rng)

    def pick_tip_account(self) -> Pubkey:
        return pick_random(self.tip_accounts, self.rng)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def _post_json(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"json": payload, "headers": self.headers}
        if self.timeout_seconds:
            kwargs["timeout"] = aiohttp.ClientTimeout(total=self.timeout_seconds)
        async with self._get_session().post(url, **kwargs) as resp:
            return await resp.json(content_type=None)

    async def send_bundle(
        self,
        transactions: Sequence[str],
        url: Optional[str] = None,
    ) -> BundleResponse:
        """
        Send base58-encoded signed transactions as one bundle.

        Network errors propagate; a response without `result` is returned
        as a non-ok BundleResponse for the caller to handle.
        """
        url = url or self.pick_url()
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "sendBundle",
            "params": [list(transactions)],
        }
        data = await self._post_json(url, payload)
        if not isinstance(data, dict):
            data = {"error": data}

        response = BundleResponse(
            bundle_id=data.get("result"),
            error=data.get("error"),
            endpoint=url,
            raw=data,
        )
        if not response.ok:
            logger.debug(f"Bundle not accepted by {url}: {response.error_message}")
        return response

    async def close(self):
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "JitoClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
