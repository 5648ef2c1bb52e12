"""
events.py - Events emitted on committed balance changes

Every committed change to a collateral or debt balance is described by an
event, appended to the engine's event log in emission order. Events of a
failed operation are discarded together with its staged writes.

replay_events() rebuilds both books from a log alone, which is what an
external indexer does; the engine's own books must always agree with it.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, Tuple, Union

from .core import CollateralBook, DebtBook


@dataclass(frozen=True, slots=True)
class CollateralDeposited:
    """`amount` of `asset_id` was credited to `account`."""
    account: str
    asset_id: str
    amount: int
    sequence: int = 0


@dataclass(frozen=True, slots=True)
class CollateralRedeemed:
    """`amount` of `asset_id` was debited from `redeemed_from` and sent to `redeemed_to`."""
    redeemed_from: str
    redeemed_to: str
    asset_id: str
    amount: int
    sequence: int = 0


@dataclass(frozen=True, slots=True)
class DebtMinted:
    account: str
    amount: int
    sequence: int = 0


@dataclass(frozen=True, slots=True)
class DebtBurned:
    """Debt of `on_behalf_of` reduced by `amount`, tokens paid by `payer`."""
    on_behalf_of: str
    payer: str
    amount: int
    sequence: int = 0


@dataclass(frozen=True, slots=True)
class Liquidated:
    """Summary of a liquidation; the balance changes have their own events."""
    liquidator: str
    borrower: str
    asset_id: str
    debt_covered: int
    collateral_seized: int
    sequence: int = 0


EngineEvent = Union[CollateralDeposited, CollateralRedeemed, DebtMinted, DebtBurned, Liquidated]


def replay_events(events: Iterable[EngineEvent]) -> Tuple[CollateralBook, DebtBook]:
    """
    Reconstruct collateral and debt books from an event log.

    Zero balances are omitted, matching the engine's own books.

    Raises:
        ValueError: if the log drives a balance negative (corrupt or reordered log)
    """
    collateral: CollateralBook = {}
    debt: DebtBook = {}

    for event in events:
        if isinstance(event, CollateralDeposited):
            balances = collateral.setdefault(event.account, {})
            balances[event.asset_id] = balances.get(event.asset_id, 0) + event.amount
        elif isinstance(event, CollateralRedeemed):
            balances = collateral.setdefault(event.redeemed_from, {})
            remaining = balances.get(event.asset_id, 0) - event.amount
            if remaining < 0:
                raise ValueError(f"Event log drives {event.redeemed_from} {event.asset_id} negative")
            balances[event.asset_id] = remaining
        elif isinstance(event, DebtMinted):
            debt[event.account] = debt.get(event.account, 0) + event.amount
        elif isinstance(event, DebtBurned):
            remaining = debt.get(event.on_behalf_of, 0) - event.amount
            if remaining < 0:
                raise ValueError(f"Event log drives debt of {event.on_behalf_of} negative")
            debt[event.on_behalf_of] = remaining

    collateral = {
        account: {asset: amount for asset, amount in balances.items() if amount}
        for account, balances in collateral.items()
    }
    collateral = {account: balances for account, balances in collateral.items() if balances}
    debt = {account: amount for account, amount in debt.items() if amount}
    return collateral, debt
