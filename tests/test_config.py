"""
Test settings loading and validation.
"""

import pytest
from pydantic import ValidationError

from recircle_rewards.core.config import Settings, VeChainNetworkConfig


def make_settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


def test_defaults():
    settings = make_settings()

    assert settings.vechain_network == "testnet"
    assert settings.chain_tag == 0x27
    assert settings.resolved_thor_endpoints == VeChainNetworkConfig.THOR_ENDPOINTS["testnet"]
    assert settings.high_confidence_threshold == 0.85
    assert settings.medium_confidence_threshold == 0.70
    assert (settings.split_recipient_numerator, settings.split_denominator) == (70, 100)
    assert settings.poll_interval_ms == 2000
    assert settings.max_poll_attempts == 30
    assert settings.store_backend == "memory"


def test_mainnet_and_explicit_endpoints():
    settings = make_settings(
        vechain_network="MAINNET",
        thor_endpoints=["https://node-a.example/", "https://node-b.example"],
    )

    assert settings.chain_tag == 0x4a
    assert settings.resolved_thor_endpoints == ["https://node-a.example", "https://node-b.example"]
    assert settings.explorer_url == VeChainNetworkConfig.EXPLORER_URLS["mainnet"]


def test_environment_variables(monkeypatch):
    monkeypatch.setenv("HIGH_CONFIDENCE_THRESHOLD", "0.9")
    monkeypatch.setenv("DISTRIBUTOR_PRIVATE_KEY", "ab" * 32)
    monkeypatch.setenv("STORE_BACKEND", "Redis")

    settings = make_settings()

    assert settings.high_confidence_threshold == 0.9
    assert settings.distributor_private_key.get_secret_value() == "ab" * 32
    assert "ab" * 32 not in repr(settings)
    assert settings.store_backend == "redis"


def test_comma_separated_lists_from_environment(monkeypatch):
    monkeypatch.setenv("THOR_ENDPOINTS", "https://a.example, https://b.example/")
    monkeypatch.setenv("FRAUD_FLAGGED_CATEGORIES", "known-fraud-flagged,gift_card")

    settings = make_settings()

    assert settings.thor_endpoints == ["https://a.example", "https://b.example/"]
    assert settings.resolved_thor_endpoints == ["https://a.example", "https://b.example"]
    assert settings.fraud_flagged_categories == ["known-fraud-flagged", "gift_card"]


def test_json_lists_from_environment(monkeypatch):
    monkeypatch.setenv("THOR_ENDPOINTS", '["https://a.example", "https://b.example"]')

    settings = make_settings()

    assert settings.thor_endpoints == ["https://a.example", "https://b.example"]


@pytest.mark.parametrize("overrides", [
    {"high_confidence_threshold": 0.6, "medium_confidence_threshold": 0.7},
    {"high_confidence_threshold": 1.2},
    {"split_recipient_numerator": 120},
    {"split_denominator": 0},
    {"vechain_network": "devnet"},
    {"store_backend": "postgres"},
    {"environment": "qa"},
    {"poll_interval_ms": 0},
    {"category_thresholds": {"transit": (0.5, 0.9)}},
])
def test_invalid_settings_rejected(overrides):
    with pytest.raises(ValidationError):
        make_settings(**overrides)


if __name__ == "__main__":
    pytest.main([__file__])
