"""
Tests for logging, metrics and formatting helpers.
"""

import json
import logging
import random

import pytest

from solana_volume_bot.logging_utils import (
    JSONFormatter,
    MetricsCollector,
    PerformanceMetrics,
    add_json_file_handler,
)
from solana_volume_bot.utils import (
    FatalError,
    InvalidBlockhashError,
    NoRouteFoundError,
    SecureLogger,
    SwapError,
    SwapFailedError,
    BundleError,
    format_address,
    format_duration,
    format_sol,
    lamports_to_sol,
    pick_random,
    sol_to_lamports,
)
from solana_volume_bot.wallet import keypair_to_base58
from solders.keypair import Keypair


class TestErrors:

    def test_hierarchy(self):
        assert issubclass(InvalidBlockhashError, FatalError)
        assert issubclass(NoRouteFoundError, SwapError)
        assert issubclass(SwapFailedError, BundleError)
        assert not issubclass(NoRouteFoundError, FatalError)


class TestSecureLogger:

    def test_redacts_secret_key(self, caplog):
        base = logging.getLogger("solana_volume_bot.test_redaction")
        secure = SecureLogger(base)
        secret = keypair_to_base58(Keypair())

        with caplog.at_level(logging.INFO, logger=base.name):
            secure.info(f"loaded key {secret}")

        assert secret not in caplog.text
        assert "REDACTED" in caplog.text

    def test_plain_messages_untouched(self, caplog):
        base = logging.getLogger("solana_volume_bot.test_plain")
        with caplog.at_level(logging.INFO, logger=base.name):
            SecureLogger(base).info("Bundle #3 sent")
        assert "Bundle #3 sent" in caplog.text


class TestHelpers:

    def test_pick_random(self):
        rng = random.Random(1)
        items = ["a", "b", "c"]
        assert {pick_random(items, rng) for _ in range(100)} == set(items)

    def test_pick_random_empty(self):
        with pytest.raises(ValueError):
            pick_random([])

    def test_sol_conversion(self):
        assert sol_to_lamports(0.1) == 100_000_000
        assert lamports_to_sol(1_500_000_000) == 1.5

    def test_sol_to_lamports_rounds_float_error(self):
        assert sol_to_lamports(1.001) == 1_001_000_000
        for milli in range(1, 5000):
            assert sol_to_lamports(milli / 1000) == milli * 1_000_000

    @pytest.mark.parametrize("amount,expected", [(1.5, "1.5000 SOL"), (0.0005, "0.000500 SOL")])
    def test_format_sol(self, amount, expected):
        assert format_sol(amount) == expected

    @pytest.mark.parametrize("seconds,expected", [(45, "45s"), (120, "2m"), (125, "2m 5s"), (3660, "1h 1m")])
    def test_format_duration(self, seconds, expected):
        assert format_duration(seconds) == expected

    def test_format_address(self):
        assert format_address("So11111111111111111111111111111111111111112") == "So11...1112"
        assert format_address("short") == "short"


class TestMetrics:

    def test_summary(self):
        collector = MetricsCollector()
        for success in (True, True, False):
            metric = PerformanceMetrics.start("makers", tip_lamports=100_000)
            metric.finalize(success=success, error=None if success else "x")
            collector.add_metric(metric)

        summary = collector.get_summary()
        assert summary['total_operations'] == 3
        assert summary['operations']['makers']['failure'] == 1
        assert summary['operations']['makers']['success_rate'] == pytest.approx(66.67)

    def test_retained_metrics_are_bounded(self):
        collector = MetricsCollector(max_metrics=10)
        for i in range(50):
            metric = PerformanceMetrics.start("volume", bundle_id=f"b{i}")
            metric.finalize(success=i % 5 != 0)
            collector.add_metric(metric)

        assert len(collector.metrics) == 10
        assert collector.metrics[0].bundle_id == "b40"
        summary = collector.get_summary()
        assert summary['total_operations'] == 50
        assert summary['operations']['volume']['failure'] == 10
        assert summary['overall_success_rate'] == 80.0

    def test_rejects_empty_retention(self):
        with pytest.raises(ValueError):
            MetricsCollector(max_metrics=0)

    def test_save_to_file(self, tmp_path):
        collector = MetricsCollector()
        metric = PerformanceMetrics.start("swap", bundle_id="b1")
        metric.finalize()
        collector.add_metric(metric)

        path = tmp_path / "metrics" / "run.json"
        collector.save_to_file(str(path))
        data = json.loads(path.read_text())
        assert data['metrics'][0]['bundle_id'] == "b1"

    def test_json_file_handler(self, tmp_path):
        log = logging.getLogger("solana_volume_bot.test_json")
        log.setLevel(logging.INFO)
        handler = add_json_file_handler(log, str(tmp_path / "bot.jsonl"))
        try:
            log.info("hello")
        finally:
            log.removeHandler(handler)
            handler.close()

        record = json.loads((tmp_path / "bot.jsonl").read_text().splitlines()[0])
        assert record['message'] == "hello"
        assert record['level'] == "INFO"
        assert isinstance(JSONFormatter(), logging.Formatter)
