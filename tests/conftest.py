"""
conftest.py - Shared pytest fixtures for engine tests

Provides common fixtures used across unit, conformance and functional tests:
- Price source and scripted collaborators
- Engines at standard stages (empty, collateral deposited, debt minted)
- An unsafe borrower ready to be liquidated
"""

import pytest

from cdp_ledger import to_units

from tests.fakes import (
    AMOUNT_COLLATERAL, AMOUNT_TO_MINT, build_engine, default_price_source, set_eth_price,
)


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def price_source():
    """WETH at $2,000 and WBTC at $1,000."""
    return default_price_source()


@pytest.fixture
def setup(price_source):
    """(engine, custodian, token) with funded alice, bob and liquidator."""
    return build_engine(price_source)


@pytest.fixture
def engine(setup):
    return setup[0]


@pytest.fixture
def custodian(setup):
    return setup[1]


@pytest.fixture
def token(setup):
    return setup[2]


# =============================================================================
# STAGED FIXTURES
# =============================================================================

@pytest.fixture
def deposited(engine):
    """alice has deposited 10 WETH ($20,000)."""
    engine.deposit_collateral("alice", "WETH", AMOUNT_COLLATERAL)
    return engine


@pytest.fixture
def minted(engine):
    """alice has deposited 10 WETH and minted 100 debt tokens."""
    engine.deposit_collateral_and_mint("alice", "WETH", AMOUNT_COLLATERAL, AMOUNT_TO_MINT)
    return engine


@pytest.fixture
def liquidatable(engine, price_source):
    """
    alice (10 WETH, 100 debt) is unsafe after WETH falls to $18; the
    liquidator deposited 20 WETH and minted 100 beforehand and stays safe.
    """
    engine.deposit_collateral_and_mint("alice", "WETH", AMOUNT_COLLATERAL, AMOUNT_TO_MINT)
    engine.deposit_collateral_and_mint("liquidator", "WETH", to_units(20), AMOUNT_TO_MINT)
    set_eth_price(price_source, "18")
    return engine
