"""
Royalty Ledger - Configuration

All settings come from environment variables (optionally loaded from a .env
file by the server and CLI). Invalid values fail at startup with ValueError.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from asset_registry import is_null_address
from market_errors import InvalidAmount
from rate_oracle import DEFAULT_ROYALTY_BPS, validate_rate_bps
from settlement import DEFAULT_LOCK_TIMEOUT, FirstSalePolicy

DEFAULT_CREATOR_ADDRESS = "0x" + "c" * 40
DEFAULT_CREATOR_ROYALTY = 10  # percent of each royalty


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


@dataclass(frozen=True)
class MarketConfig:
    """Process configuration for the ledger server."""

    creator_address: str = DEFAULT_CREATOR_ADDRESS
    creator_royalty: int = DEFAULT_CREATOR_ROYALTY
    default_royalty_bps: int = DEFAULT_ROYALTY_BPS
    first_sale_policy: FirstSalePolicy = FirstSalePolicy.SELLER
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT
    storage_backend: str = "json"
    ledger_data_file: str = "ledger_data.json"
    api_key: str | None = None
    require_auth: bool = True
    log_level: str = "INFO"
    log_format: str = "console"
    host: str = "0.0.0.0"
    port: int = 5000

    def __post_init__(self):
        if is_null_address(self.creator_address):
            raise ValueError("MARKET_CREATOR_ADDRESS cannot be empty or the zero address")
        if not 0 <= self.creator_royalty <= 100:
            raise ValueError("MARKET_CREATOR_ROYALTY must be between 0 and 100")
        try:
            validate_rate_bps(self.default_royalty_bps)
        except InvalidAmount as e:
            raise ValueError(f"MARKET_DEFAULT_ROYALTY_BPS: {e.message}") from e
        if self.lock_timeout <= 0:
            raise ValueError("MARKET_LOCK_TIMEOUT must be positive")
        if self.storage_backend not in ("json", "memory"):
            raise ValueError(f"Unknown STORAGE_BACKEND: {self.storage_backend}")

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "MarketConfig":
        """
        Build configuration from environment variables.

        Args:
            env: Mapping to read instead of os.environ

        Returns:
            Validated MarketConfig
        """
        env = os.environ if env is None else env

        policy_raw = env.get("MARKET_FIRST_SALE_POLICY", FirstSalePolicy.SELLER.value)
        try:
            policy = FirstSalePolicy(policy_raw.lower())
        except ValueError:
            choices = ", ".join(p.value for p in FirstSalePolicy)
            raise ValueError(f"MARKET_FIRST_SALE_POLICY must be one of: {choices}") from None

        try:
            lock_timeout = float(env.get("MARKET_LOCK_TIMEOUT", DEFAULT_LOCK_TIMEOUT))
        except ValueError:
            raise ValueError("MARKET_LOCK_TIMEOUT must be a number") from None

        return cls(
            creator_address=env.get("MARKET_CREATOR_ADDRESS", DEFAULT_CREATOR_ADDRESS),
            creator_royalty=_env_int(env, "MARKET_CREATOR_ROYALTY", DEFAULT_CREATOR_ROYALTY),
            default_royalty_bps=_env_int(env, "MARKET_DEFAULT_ROYALTY_BPS", DEFAULT_ROYALTY_BPS),
            first_sale_policy=policy,
            lock_timeout=lock_timeout,
            storage_backend=env.get("STORAGE_BACKEND", "json").lower(),
            ledger_data_file=env.get("LEDGER_DATA_FILE", "ledger_data.json"),
            api_key=env.get("MARKET_API_KEY") or None,
            require_auth=_env_bool(env.get("MARKET_REQUIRE_AUTH"), True),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            log_format=env.get("LOG_FORMAT", "console").lower(),
            host=env.get("HOST", "0.0.0.0"),
            port=_env_int(env, "PORT", 5000),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, without secrets."""
        return {
            "creator_address": self.creator_address,
            "creator_royalty": self.creator_royalty,
            "default_royalty_bps": self.default_royalty_bps,
            "first_sale_policy": self.first_sale_policy.value,
            "lock_timeout": self.lock_timeout,
            "storage_backend": self.storage_backend,
            "ledger_data_file": self.ledger_data_file,
            "require_auth": self.require_auth,
            "api_key_configured": self.api_key is not None,
            "log_level": self.log_level,
            "log_format": self.log_format,
            "host": self.host,
            "port": self.port,
        }
