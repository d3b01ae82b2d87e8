"""Tests for address validation and engine configuration."""

from __future__ import annotations

from decimal import Decimal

import pytest

from flashlev.addresses import same_address, validate_address
from flashlev.config import EngineConfig, ProtocolAddresses, SlippageLimits
from flashlev.errors import ConfigError, InvalidAddress
from flashlev.execution.paper import PAPER_ADDRESSES, paper_address

CHECKSUMMED = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
CHECKSUMMED_2 = "0xfB6916095ca1df60bB79Ce92cE3Ea74c37c5d359"
BAD_CHECKSUM = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAeD"


def _address_env(**overrides: str) -> dict[str, str]:
    env = {
        "FLASHLEV_ENGINE_ADDRESS": paper_address(1),
        "FLASHLEV_ASSET_ADDRESS": paper_address(2),
        "FLASHLEV_PAIRED_TOKEN_ADDRESS": paper_address(3),
        "FLASHLEV_LENDING_POOL_ADDRESS": paper_address(4),
        "FLASHLEV_ROUTER_ADDRESS": paper_address(5),
        "FLASHLEV_POOL_ADDRESS": paper_address(6),
        "FLASHLEV_ORACLE_ADDRESS": CHECKSUMMED,
    }
    env.update(overrides)
    return env


# ========== Address Validation Tests ==========


class TestValidateAddress:
    """Tests for EIP-55 address validation."""

    @pytest.mark.parametrize("address", [CHECKSUMMED, CHECKSUMMED_2])
    def test_valid_checksum_accepted(self, address: str) -> None:
        assert validate_address(address) == address

    def test_lowercase_normalized_to_checksum(self) -> None:
        assert validate_address(CHECKSUMMED.lower()) == CHECKSUMMED

    def test_uppercase_normalized_to_checksum(self) -> None:
        assert validate_address("0x" + CHECKSUMMED[2:].upper()) == CHECKSUMMED

    def test_bad_checksum_rejected(self) -> None:
        with pytest.raises(InvalidAddress, match="checksum"):
            validate_address(BAD_CHECKSUM, label="oracle")

    @pytest.mark.parametrize(
        "value",
        [
            "",
            "0x1234",
            CHECKSUMMED[2:],
            "0x" + "g" * 40,
            CHECKSUMMED + "00",
        ],
    )
    def test_malformed_rejected(self, value: str) -> None:
        with pytest.raises(InvalidAddress):
            validate_address(value)

    def test_label_in_message(self) -> None:
        with pytest.raises(InvalidAddress, match="router"):
            validate_address("0x1234", label="router")

    def test_same_address_ignores_case(self) -> None:
        assert same_address(CHECKSUMMED, CHECKSUMMED.lower())
        assert not same_address(CHECKSUMMED, CHECKSUMMED_2)


# ========== ProtocolAddresses Tests ==========


class TestProtocolAddresses:
    """Tests for injected protocol addresses."""

    def test_normalizes_on_construction(self) -> None:
        addresses = ProtocolAddresses(
            engine=CHECKSUMMED.lower(),
            asset=paper_address(2),
            paired_token=paper_address(3),
            lending_pool=paper_address(4),
            router=paper_address(5),
            pool=paper_address(6),
            oracle=CHECKSUMMED_2,
        )
        assert addresses.engine == CHECKSUMMED

    def test_invalid_address_fails_at_startup(self) -> None:
        with pytest.raises(InvalidAddress, match="lending_pool"):
            ProtocolAddresses(
                engine=paper_address(1),
                asset=paper_address(2),
                paired_token=paper_address(3),
                lending_pool=BAD_CHECKSUM,
                router=paper_address(5),
                pool=paper_address(6),
                oracle=paper_address(7),
            )

    def test_from_env(self) -> None:
        addresses = ProtocolAddresses.from_env(_address_env())
        assert addresses.oracle == CHECKSUMMED
        assert addresses.engine == paper_address(1)

    def test_from_env_lists_missing_keys(self) -> None:
        env = _address_env()
        del env["FLASHLEV_ROUTER_ADDRESS"]
        env["FLASHLEV_POOL_ADDRESS"] = "  "

        with pytest.raises(ConfigError) as exc_info:
            ProtocolAddresses.from_env(env)

        assert "FLASHLEV_ROUTER_ADDRESS" in exc_info.value.reason
        assert "FLASHLEV_POOL_ADDRESS" in exc_info.value.reason


# ========== EngineConfig Tests ==========


class TestEngineConfig:
    """Tests for engine configuration defaults and validation."""

    def test_defaults(self) -> None:
        config = EngineConfig(addresses=PAPER_ADDRESSES)

        assert config.limit_ratio == Decimal("0.67")
        assert config.fee_bps == 9
        assert config.gas_estimate == 500_000
        assert config.lock_wait_seconds == 0.0
        assert config.slippage == SlippageLimits()

    def test_scope_is_asset_and_pool(self) -> None:
        config = EngineConfig(addresses=PAPER_ADDRESSES)
        assert config.scope == (PAPER_ADDRESSES.asset, PAPER_ADDRESSES.pool)

    @pytest.mark.parametrize("ratio", ["0", "-0.1", "1.01"])
    def test_limit_ratio_bounds(self, ratio: str) -> None:
        with pytest.raises(ConfigError, match="limit_ratio"):
            EngineConfig(addresses=PAPER_ADDRESSES, limit_ratio=Decimal(ratio))

    def test_tick_range_must_be_ordered(self) -> None:
        with pytest.raises(ConfigError, match="tick_lower"):
            EngineConfig(addresses=PAPER_ADDRESSES, tick_lower=10, tick_upper=10)

    def test_timeout_must_be_positive(self) -> None:
        with pytest.raises(ConfigError):
            EngineConfig(addresses=PAPER_ADDRESSES, call_timeout_seconds=0)

    def test_from_env_overrides(self) -> None:
        env = _address_env(
            FLASHLEV_LIMIT_RATIO="0.5",
            FLASHLEV_GAS_ESTIMATE="21000",
            FLASHLEV_CALL_TIMEOUT_SECONDS="2.5",
            FLASHLEV_LOCK_WAIT_SECONDS="1",
        )
        config = EngineConfig.from_env(env)

        assert config.limit_ratio == Decimal("0.5")
        assert config.gas_estimate == 21_000
        assert config.call_timeout_seconds == 2.5
        assert config.lock_wait_seconds == 1.0
        assert config.fee_bps == 9

    def test_from_env_invalid_number(self) -> None:
        with pytest.raises(ConfigError, match="Invalid numeric setting"):
            EngineConfig.from_env(_address_env(FLASHLEV_GAS_ESTIMATE="lots"))

    def test_from_env_invalid_ratio(self) -> None:
        with pytest.raises(ConfigError):
            EngineConfig.from_env(_address_env(FLASHLEV_LIMIT_RATIO="abc"))
