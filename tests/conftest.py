"""Shared test fixtures for pytest.

Provides paper-mode engines used across multiple test files.
"""

from __future__ import annotations

import pytest

from flashlev.config import EngineConfig
from flashlev.execution.paper import PAPER_ADDRESSES, PaperEnvironment, build_paper_environment


@pytest.fixture
def paper_config() -> EngineConfig:
    """Paper config with small execution costs and no retry delay."""
    return EngineConfig(
        addresses=PAPER_ADDRESSES,
        gas_price_scale=1,
        gas_estimate=5,
        retry_base_delay=0.0,
        call_timeout_seconds=5.0,
    )


@pytest.fixture
def paper_env(paper_config: EngineConfig) -> PaperEnvironment:
    """Paper engine holding 1,000,000 with a gas price of 20.

    Execution cost is 20 * 5 = 100; the protocol fee on 500,000 is 450.
    """
    return build_paper_environment(config=paper_config)

