"""Engine configuration.

All protocol addresses are injected here and validated at construction;
nothing in the engine embeds an address literal.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Mapping, Optional

from flashlev.addresses import validate_address
from flashlev.errors import ConfigError

ENV_PREFIX = "FLASHLEV_"

_ADDRESS_FIELDS = ("engine", "asset", "paired_token", "lending_pool", "router", "pool", "oracle")


@dataclass(frozen=True)
class ProtocolAddresses:
    """Addresses of the engine and every collaborator it talks to.

    Attributes:
        engine: The engine's own account (receiver and initiator of the loan)
        asset: Token borrowed from the lending pool
        paired_token: Second token of the liquidity pool
        lending_pool: Flash loan provider; the only caller allowed into the callback
        router: Liquidity router used for minting and borrowing
        pool: Liquidity pool (its token is the position receipt)
        oracle: Gas price feed
    """

    engine: str
    asset: str
    paired_token: str
    lending_pool: str
    router: str
    pool: str
    oracle: str

    def __post_init__(self) -> None:
        for name in _ADDRESS_FIELDS:
            object.__setattr__(self, name, validate_address(getattr(self, name), label=name))

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> ProtocolAddresses:
        source = os.environ if env is None else env
        values: dict[str, str] = {}
        missing = []
        for name in _ADDRESS_FIELDS:
            key = f"{ENV_PREFIX}{name.upper()}_ADDRESS"
            value = source.get(key, "").strip()
            if not value:
                missing.append(key)
            values[name] = value
        if missing:
            raise ConfigError(f"Missing required address settings: {', '.join(missing)}")
        return cls(**values)


@dataclass(frozen=True)
class SlippageLimits:
    """Minimum-output guards passed to the router (zero disables a guard)."""

    liquidity_amount_min: int = 0
    liquidity_amount_max: int = 0
    borrow_amount_min: int = 0


@dataclass(frozen=True)
class EngineConfig:
    """Runtime configuration for one engine instance."""

    addresses: ProtocolAddresses

    # Pre-flight limits
    limit_ratio: Decimal = Decimal("0.67")
    fee_bps: int = 9
    gas_estimate: int = 500_000
    gas_price_scale: int = 10**9  # oracle quotes gwei, ledger counts wei

    # Oracle freshness
    oracle_max_age_seconds: int = 3600

    # Liquidity position shape
    pool_fee_tier: int = 3000
    tick_lower: int = -887220
    tick_upper: int = 887220
    deadline_seconds: int = 0

    slippage: SlippageLimits = field(default_factory=SlippageLimits)

    # External call guards
    call_timeout_seconds: float = 30.0
    read_retries: int = 2
    retry_base_delay: float = 0.5
    lock_wait_seconds: float = 0.0

    def __post_init__(self) -> None:
        if not (Decimal("0") < self.limit_ratio <= Decimal("1")):
            raise ConfigError(f"limit_ratio must be in (0, 1], got {self.limit_ratio}")
        if self.fee_bps < 0:
            raise ConfigError("fee_bps must not be negative")
        if self.gas_estimate <= 0:
            raise ConfigError("gas_estimate must be positive")
        if self.gas_price_scale <= 0:
            raise ConfigError("gas_price_scale must be positive")
        if self.tick_lower >= self.tick_upper:
            raise ConfigError(f"tick_lower ({self.tick_lower}) must be below tick_upper ({self.tick_upper})")
        if self.call_timeout_seconds <= 0:
            raise ConfigError("call_timeout_seconds must be positive")
        if self.read_retries < 0:
            raise ConfigError("read_retries must not be negative")
        if self.lock_wait_seconds < 0:
            raise ConfigError("lock_wait_seconds must not be negative")

    @property
    def scope(self) -> tuple[str, str]:
        """Mutual-exclusion scope of this engine: (asset, pool)."""
        return (self.addresses.asset, self.addresses.pool)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> EngineConfig:
        """Build a config from ``FLASHLEV_*`` environment variables."""
        source = os.environ if env is None else env
        addresses = ProtocolAddresses.from_env(source)

        overrides: dict[str, object] = {}
        try:
            if source.get(f"{ENV_PREFIX}LIMIT_RATIO"):
                overrides["limit_ratio"] = Decimal(source[f"{ENV_PREFIX}LIMIT_RATIO"])
            for name in ("gas_estimate", "oracle_max_age_seconds", "read_retries", "pool_fee_tier"):
                raw = source.get(f"{ENV_PREFIX}{name.upper()}")
                if raw:
                    overrides[name] = int(raw)
            for name in ("call_timeout_seconds", "lock_wait_seconds"):
                raw = source.get(f"{ENV_PREFIX}{name.upper()}")
                if raw:
                    overrides[name] = float(raw)
        except (InvalidOperation, ValueError) as exc:
            raise ConfigError(f"Invalid numeric setting: {exc}") from exc

        return cls(addresses=addresses, **overrides)
