"""
Configuration management using Pydantic Settings.
Supports multiple environments: development, staging, production.

Settings are loaded once at startup and handed to the service constructors
through ``recircle_rewards.services.factory``; request-time code never reads
the environment.
"""

import json
from functools import lru_cache
from typing import Annotated, Any, Dict, List, Optional, Tuple

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class VeChainNetworkConfig:
    """VeChain network constants (chain tags, public Thor nodes, explorers)."""

    CHAIN_TAGS = {
        "testnet": 0x27,
        "mainnet": 0x4a,
    }

    THOR_ENDPOINTS = {
        "testnet": [
            "https://testnet.veblocks.net",
            "https://sync-testnet.veblocks.net",
        ],
        "mainnet": [
            "https://mainnet.veblocks.net",
            "https://sync-mainnet.veblocks.net",
        ],
    }

    EXPLORER_URLS = {
        "testnet": "https://explore-testnet.vechain.org",
        "mainnet": "https://explore.vechain.org",
    }

    # B3TR token contract on testnet; mainnet must be configured explicitly
    B3TR_TESTNET_ADDRESS = "0xbf64cf86894Ee0877C4e7d03936e35Ee8D8b864F"


class Settings(BaseSettings):
    """Application settings with environment-based configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "ReCircle Reward Distribution Engine"
    app_version: str = "0.1.0"
    environment: str = "development"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console
    log_file: Optional[str] = None

    # VeChain / Thor
    vechain_network: str = "testnet"
    thor_endpoints: Annotated[List[str], NoDecode] = Field(default_factory=list)
    b3tr_contract_address: str = VeChainNetworkConfig.B3TR_TESTNET_ADDRESS
    app_fund_address: str = "0x119761865b79bea9e7924edaa630942322ca09d1"
    distributor_private_key: Optional[SecretStr] = None
    token_decimals: int = 18

    # Transaction body
    tx_gas: int = 50000
    tx_expiration: int = 32  # blocks
    tx_gas_price_coef: int = 0

    # Ledger client timing
    probe_timeout_seconds: float = 3.0
    request_timeout_seconds: float = 10.0
    poll_interval_ms: int = 2000
    max_poll_attempts: int = 30

    # Routing
    high_confidence_threshold: float = 0.85
    medium_confidence_threshold: float = 0.70
    fraud_flagged_categories: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["known-fraud-flagged"]
    )
    category_thresholds: Dict[str, Tuple[float, float]] = Field(default_factory=dict)

    # Split (recipient share = numerator / denominator, fund gets the rest)
    split_recipient_numerator: int = 70
    split_denominator: int = 100

    # Idempotency store
    store_backend: str = "memory"  # memory or redis
    redis_url: str = "redis://localhost:6379/0"
    redis_prefix: str = "recircle_rewards"
    record_ttl_seconds: Optional[int] = None
    lease_ttl_seconds: int = 300

    # Validation cache
    validation_cache_ttl_seconds: int = 600
    validation_recent_window_seconds: int = 300
    validation_cache_check_period_seconds: int = 120

    # Manual review sink
    manual_review_webhook_url: Optional[str] = None
    review_webhook_timeout_seconds: float = 10.0

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = ["development", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    @field_validator("vechain_network")
    @classmethod
    def validate_network(cls, v: str) -> str:
        v = v.lower()
        if v not in VeChainNetworkConfig.CHAIN_TAGS:
            raise ValueError(f"VeChain network must be one of: {list(VeChainNetworkConfig.CHAIN_TAGS)}")
        return v

    @field_validator("thor_endpoints", "fraud_flagged_categories", mode="before")
    @classmethod
    def split_list(cls, v: Any) -> Any:
        """Accept comma-separated strings as well as JSON arrays."""
        if not isinstance(v, str):
            return v
        v = v.strip()
        if v.startswith("["):
            return json.loads(v)
        return [item.strip() for item in v.split(",") if item.strip()]

    @field_validator("store_backend")
    @classmethod
    def validate_store_backend(cls, v: str) -> str:
        allowed = ["memory", "redis"]
        if v.lower() not in allowed:
            raise ValueError(f"Store backend must be one of: {allowed}")
        return v.lower()

    @field_validator("poll_interval_ms", "max_poll_attempts", "tx_gas", "tx_expiration")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @model_validator(mode="after")
    def validate_policy(self) -> "Settings":
        if not 0.0 <= self.medium_confidence_threshold <= self.high_confidence_threshold <= 1.0:
            raise ValueError("Confidence thresholds must satisfy 0 <= medium <= high <= 1")
        for category, (high, medium) in self.category_thresholds.items():
            if not 0.0 <= medium <= high <= 1.0:
                raise ValueError(f"Invalid thresholds for category {category}: high={high}, medium={medium}")
        if self.split_denominator <= 0 or not 0 <= self.split_recipient_numerator <= self.split_denominator:
            raise ValueError("Split ratio must satisfy 0 <= numerator <= denominator and denominator > 0")
        return self

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def chain_tag(self) -> int:
        return VeChainNetworkConfig.CHAIN_TAGS[self.vechain_network]

    @property
    def resolved_thor_endpoints(self) -> List[str]:
        """Configured endpoints, or the public nodes for the selected network."""
        endpoints = self.thor_endpoints or VeChainNetworkConfig.THOR_ENDPOINTS[self.vechain_network]
        return [url.rstrip("/") for url in endpoints]

    @property
    def explorer_url(self) -> str:
        return VeChainNetworkConfig.EXPLORER_URLS[self.vechain_network]


@lru_cache()
def get_settings() -> Settings:
    """Load settings once per process."""
    return Settings()
