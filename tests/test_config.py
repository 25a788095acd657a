"""
Tests for configuration and retry policy.
"""

import asyncio
import os

import pytest
import yaml

from solana_volume_bot.config import DEFAULT_CONFIG, Config, ConfigManager, RetryPolicy
from solana_volume_bot.constants import DEFAULT_MAKER_TIP_LAMPORTS, DEFAULT_VOLUME_TIP_LAMPORTS
from solana_volume_bot.utils import InvalidBlockhashError, NoRouteFoundError


class TestConfig:
    """Tests for configuration management."""

    def test_default_config(self):
        """Test default configuration values."""
        config = Config()

        assert config.maker_tip_lamports == DEFAULT_MAKER_TIP_LAMPORTS
        assert config.volume_tip_lamports == DEFAULT_VOLUME_TIP_LAMPORTS
        assert config.retry_delay_seconds == 5.0
        assert config.max_retries is None
        assert config.jito_urls == []

    def test_config_to_dict(self):
        config = Config()
        config.min_sol_per_swap = 0.02

        data = config.to_dict()
        assert data['min_sol_per_swap'] == 0.02
        assert data['mcap_factor'] == 2.0

    def test_config_from_dict(self):
        data = {
            'token_mint': 'So11111111111111111111111111111111111111112',
            'min_sol_per_swap': 0.02,
            'speed_factor': 3.0,
        }

        config = Config.from_dict(data)
        assert config.token_mint == data['token_mint']
        assert config.min_sol_per_swap == 0.02
        assert config.speed_factor == 3.0

    def test_config_ignores_invalid_fields(self):
        """Test that invalid fields are ignored."""
        config = Config.from_dict({'slippage_bps': 500, 'invalid_field': 'should_be_ignored'})
        assert config.slippage_bps == 500
        assert not hasattr(config, 'invalid_field')

    def test_default_template_matches_dataclass(self):
        assert Config.from_dict(yaml.safe_load(DEFAULT_CONFIG)) == Config()

    @pytest.mark.parametrize("field,value", [
        ("min_sol_per_swap", 0),
        ("max_sol_per_swap", 0.001),
        ("mcap_factor", 0.5),
        ("speed_factor", 0),
        ("max_retries", 0),
        ("max_concurrent_quotes", 0),
        ("slippage_bps", 0),
    ])
    def test_validate_rejects(self, field, value):
        config = Config()
        setattr(config, field, value)
        with pytest.raises(ValueError):
            config.validate()

    def test_retry_policy_from_config(self):
        config = Config(retry_delay_seconds=1.0, max_retries=3, max_retry_duration_seconds=30.0)
        policy = config.retry_policy()
        assert policy == RetryPolicy(delay_seconds=1.0, max_attempts=3, max_duration_seconds=30.0)


class TestConfigManager:
    """Tests for ConfigManager."""

    def test_save_and_load_config(self, tmp_path):
        config_path = tmp_path / "test_config.yaml"
        manager = ConfigManager(config_path)

        config = Config()
        config.min_sol_per_swap = 0.02
        config.include_dexes = ["Raydium", "Whirlpool"]

        manager.save_config(config)
        assert config_path.exists()
        if os.name != 'nt':
            import stat
            assert stat.S_IMODE(config_path.stat().st_mode) == 0o600

        loaded = manager.load_config()
        assert loaded.min_sol_per_swap == 0.02
        assert loaded.include_dexes == ["Raydium", "Whirlpool"]

    def test_load_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ConfigManager(tmp_path / "missing.yaml").load_config()

    def test_create_default(self, tmp_path):
        manager = ConfigManager(tmp_path / "bot_config.yaml")
        config = manager.create_default()
        assert manager.exists()
        assert config.makers_count == 100

    def test_update_config(self, tmp_path):
        manager = ConfigManager(tmp_path / "bot_config.yaml")
        manager.create_default()

        updated = manager.update_config({'speed_factor': 2.5})
        assert updated.speed_factor == 2.5
        assert manager.load_config().speed_factor == 2.5


class TestRetryPolicy:
    """Retry behaviour of workflow iterations."""

    @staticmethod
    def _run(policy, fn):
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        async def main():
            async for attempt in policy.retrying(sleep=fake_sleep):
                with attempt:
                    return fn()

        return asyncio.run(main()), sleeps

    def test_retries_until_success(self):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise NoRouteFoundError("no route")
            return "ok"

        result, sleeps = self._run(RetryPolicy(), flaky)
        assert result == "ok"
        assert sleeps == [5.0, 5.0]

    def test_bounded_attempts_reraise(self):
        def always_fails():
            raise NoRouteFoundError("no route")

        with pytest.raises(NoRouteFoundError):
            self._run(RetryPolicy(delay_seconds=1.0, max_attempts=3), always_fails)

    def test_fatal_errors_not_retried(self):
        calls = []

        def fatal():
            calls.append(1)
            raise InvalidBlockhashError("bad blockhash")

        with pytest.raises(InvalidBlockhashError):
            self._run(RetryPolicy(), fatal)
        assert len(calls) == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
