"""
health.py - Health Factor Calculator

PURE FUNCTIONS - all inputs explicit, no hidden state.

Key Formulas:
    risk_adjusted_collateral = collateral_value_usd * THRESHOLD // LIQUIDATION_PRECISION
    health_factor            = risk_adjusted_collateral * PRECISION // debt_minted
    health_factor            = MAX_HEALTH_FACTOR when debt_minted == 0

With THRESHOLD = 50, an account sits exactly at MIN_HEALTH_FACTOR when its
debt is half of its raw collateral value.

The valuation helpers at the bottom read balances through an EngineView, so
the same code values committed books (queries) and staged books (guards).
"""

from __future__ import annotations
from typing import NamedTuple, Optional

from .config import EngineConfig
from .core import EngineView, MAX_HEALTH_FACTOR
from .oracle import OracleAdapter


DEFAULT_CONFIG = EngineConfig()


def risk_adjusted_collateral(collateral_value_usd: int, config: Optional[EngineConfig] = None) -> int:
    """Portion of raw collateral value that counts toward the health factor."""
    config = config or DEFAULT_CONFIG
    return collateral_value_usd * config.liquidation_threshold // config.liquidation_precision


def compute_health_factor(
    debt_minted: int,
    collateral_value_usd: int,
    config: Optional[EngineConfig] = None,
) -> int:
    """
    Health factor of an account from its debt and raw collateral value.

    Args:
        debt_minted: Outstanding debt in base units
        collateral_value_usd: Raw (not risk-adjusted) collateral value
        config: Risk parameters (defaults to the standard EngineConfig)

    Returns:
        PRECISION-scaled ratio; MAX_HEALTH_FACTOR when there is no debt.

    Example:
        # $20,000 of collateral backing $20,000 of debt -> 0.5
        compute_health_factor(to_units(20_000), to_units(20_000)) == 5 * 10**17
    """
    config = config or DEFAULT_CONFIG
    if debt_minted == 0:
        return MAX_HEALTH_FACTOR
    adjusted = risk_adjusted_collateral(collateral_value_usd, config)
    return adjusted * config.precision // debt_minted


def is_healthy(health_factor: int, config: Optional[EngineConfig] = None) -> bool:
    config = config or DEFAULT_CONFIG
    return health_factor >= config.min_health_factor


def max_mintable(
    collateral_value_usd: int,
    debt_minted: int,
    config: Optional[EngineConfig] = None,
) -> int:
    """
    Largest additional debt that keeps the health factor at or above the minimum.

    Returns 0 when the account is already at or below the minimum.
    """
    config = config or DEFAULT_CONFIG
    # health_factor >= MIN  <=>  adjusted * PRECISION // debt >= PRECISION
    #                       <=>  debt <= adjusted
    capacity = risk_adjusted_collateral(collateral_value_usd, config)
    return max(0, capacity - debt_minted)


# ============================================================================
# ACCOUNT VALUATION
# ============================================================================

class AccountHealth(NamedTuple):
    debt_minted: int
    collateral_value_usd: int
    health_factor: int


def total_collateral_value_usd(view: EngineView, oracle: OracleAdapter, account: str) -> int:
    """
    Sum of the USD value of every supported asset the account has deposited.

    Assets with a zero balance are skipped, so a missing price for an asset
    the account does not hold never blocks it.
    """
    total = 0
    for asset_id in oracle.asset_ids:
        amount = view.collateral_balance(account, asset_id)
        if amount:
            total += oracle.usd_value(asset_id, amount, view.current_time)
    return total


def account_health(view: EngineView, oracle: OracleAdapter, account: str) -> AccountHealth:
    """Debt, collateral value and health factor of one account as seen by `view`."""
    debt = view.debt_of(account)
    collateral_usd = total_collateral_value_usd(view, oracle, account)
    return AccountHealth(debt, collateral_usd, compute_health_factor(debt, collateral_usd, oracle.config))
