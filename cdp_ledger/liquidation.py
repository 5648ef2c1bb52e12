"""
liquidation.py - Liquidation planning and post-conditions

A liquidator repays part of an unsafe borrower's debt and receives the
equivalent amount of one collateral asset plus a bonus:

    token_amount  = asset_amount_from_usd(asset, debt_to_cover)
    bonus         = token_amount * LIQUIDATION_BONUS // LIQUIDATION_PRECISION
    total_seized  = token_amount + bonus

compute_liquidation() checks the pre-condition and sizes the seizure;
verify_improvement() is the borrower-side post-condition. The engine runs
both around the staged withdraw and burn, then applies the invariant guard
to the liquidator.

Seizure is single-asset: a borrower who holds too little of the requested
asset cannot be liquidated in it, even if other assets cover the value.
If collateral value has fallen below the debt, the bonus cannot be paid
and liquidation is expected to fail; such accounts are not remediated here.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Tuple

from .config import EngineConfig
from .core import EngineView, HealthFactorNotImproved, HealthIsOkay
from .health import DEFAULT_CONFIG, account_health
from .oracle import OracleAdapter


@dataclass(frozen=True, slots=True)
class LiquidationPlan:
    """
    Sized liquidation of one borrower in one collateral asset.

    Attributes:
        liquidator: Account repaying the debt and receiving the collateral
        borrower: Unsafe account being liquidated
        asset_id: Collateral asset seized
        debt_to_cover: Debt repaid on the borrower's behalf
        token_amount: Collateral worth exactly debt_to_cover
        bonus: Extra collateral awarded to the liquidator
        health_factor_before: Borrower health factor before liquidation
    """
    liquidator: str
    borrower: str
    asset_id: str
    debt_to_cover: int
    token_amount: int
    bonus: int
    health_factor_before: int

    @property
    def total_seized(self) -> int:
        return self.token_amount + self.bonus


def calculate_seizure(token_amount: int, config: Optional[EngineConfig] = None) -> Tuple[int, int]:
    """
    Bonus and total collateral seized for a given covered amount.

    PURE FUNCTION.

    Returns:
        (bonus, total_seized)
    """
    config = config or DEFAULT_CONFIG
    bonus = token_amount * config.liquidation_bonus // config.liquidation_precision
    return bonus, token_amount + bonus


def compute_liquidation(
    view: EngineView,
    oracle: OracleAdapter,
    liquidator: str,
    borrower: str,
    asset_id: str,
    debt_to_cover: int,
) -> LiquidationPlan:
    """
    Check the borrower is unsafe and size the seizure.

    Args:
        view: Ledger state to read (committed or staged)
        oracle: Price adapter for valuation
        liquidator: Account performing the liquidation
        borrower: Account to liquidate
        asset_id: Collateral asset to seize
        debt_to_cover: Debt to repay, in base units

    Returns:
        LiquidationPlan ready to be executed

    Raises:
        HealthIsOkay: if the borrower is at or above the minimum health factor
        UnsupportedAsset / OracleUnavailable: from pricing
    """
    oracle.feed_for(asset_id)
    before = account_health(view, oracle, borrower).health_factor
    if before >= oracle.config.min_health_factor:
        raise HealthIsOkay(borrower, before)

    token_amount = oracle.asset_amount_from_usd(asset_id, debt_to_cover, view.current_time)
    bonus, _ = calculate_seizure(token_amount, oracle.config)
    return LiquidationPlan(
        liquidator=liquidator,
        borrower=borrower,
        asset_id=asset_id,
        debt_to_cover=debt_to_cover,
        token_amount=token_amount,
        bonus=bonus,
        health_factor_before=before,
    )


def verify_improvement(view: EngineView, oracle: OracleAdapter, plan: LiquidationPlan) -> int:
    """
    Borrower post-condition: the health factor must strictly increase.

    Returns:
        The borrower's health factor after liquidation.

    Raises:
        HealthFactorNotImproved: if it did not
    """
    after = account_health(view, oracle, plan.borrower).health_factor
    if after <= plan.health_factor_before:
        raise HealthFactorNotImproved(plan.borrower, plan.health_factor_before, after)
    return after
