"""
Tests for the Jito relay client.
"""

import asyncio
import random
from collections import Counter

import pytest

from solana_volume_bot.constants import JITO_ACCOUNTS, JITO_URLS
from solana_volume_bot.jito import BundleResponse, JitoClient

# chi-square critical value, df=4, p=0.001
CHI_SQUARE_CRITICAL_DF4 = 18.47


class FakeResponse:
    def __init__(self, payload, status=200):
        self.payload = payload
        self.status = status

    async def json(self, content_type=None):
        return self.payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Records POSTs and replays canned JSON bodies."""

    def __init__(self, *payloads):
        self.payloads = list(payloads)
        self.requests = []
        self.closed = False

    def post(self, url, json=None, **kwargs):
        self.requests.append((url, json))
        return FakeResponse(self.payloads.pop(0))

    async def close(self):
        self.closed = True


class TestSelection:

    def test_url_distribution_is_uniform(self):
        client = JitoClient(rng=random.Random(1234))
        draws = 10_000
        counts = Counter(client.pick_url() for _ in range(draws))

        assert set(counts) == set(JITO_URLS)
        expected = draws / len(JITO_URLS)
        chi_square = sum((counts[url] - expected) ** 2 / expected for url in JITO_URLS)
        assert chi_square < CHI_SQUARE_CRITICAL_DF4

    def test_tip_account_from_table(self):
        client = JitoClient(rng=random.Random(7))
        picks = {client.pick_tip_account() for _ in range(500)}
        assert picks == set(JITO_ACCOUNTS)

    def test_custom_urls(self):
        client = JitoClient(urls=["https://example.invalid/bundles"])
        assert client.pick_url() == "https://example.invalid/bundles"


class TestSendBundle:

    def test_ack(self):
        session = FakeSession({"jsonrpc": "2.0", "id": 1, "result": "bundle-123"})
        client = JitoClient(session=session)

        response = asyncio.run(client.send_bundle(["tx1", "tx2"], JITO_URLS[0]))

        assert response.ok
        assert response.bundle_id == "bundle-123"
        assert response.endpoint == JITO_URLS[0]
        url, payload = session.requests[0]
        assert url == JITO_URLS[0]
        assert payload["method"] == "sendBundle"
        assert payload["params"] == [["tx1", "tx2"]]

    def test_error_payload(self):
        session = FakeSession({"jsonrpc": "2.0", "id": 1, "error": {"code": -32602, "message": "bundle invalid"}})
        client = JitoClient(session=session)

        response = asyncio.run(client.send_bundle(["tx1"]))

        assert not response.ok
        assert response.error_message == "bundle invalid"
        assert response.endpoint in JITO_URLS

    def test_non_object_body(self):
        client = JitoClient(session=FakeSession("rate limited"))
        response = asyncio.run(client.send_bundle(["tx1"]))
        assert not response.ok
        assert response.error_message == "rate limited"

    def test_borrowed_session_not_closed(self):
        session = FakeSession()
        asyncio.run(JitoClient(session=session).close())
        assert session.closed is False


class TestBundleResponse:

    @pytest.mark.parametrize("error,message", [
        ("x", "x"),
        ({"message": "too many requests"}, "too many requests"),
        (None, "Unknown error"),
    ])
    def test_error_message(self, error, message):
        assert BundleResponse(error=error).error_message == message
