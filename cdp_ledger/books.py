"""
books.py - Collateral Ledger and Debt Ledger bookkeeping

The engine is the only writer of these books. Writes never touch them
directly: every operation works on a StagedBooks overlay (copy-on-write) and
the overlay is committed only after every guard and external effect of the
operation has succeeded. Dropping the overlay is the rollback.

Lookups for accounts or assets never written return an explicit 0, so
accounts need no registration and exist as soon as a balance is non-zero.
"""

from __future__ import annotations
from datetime import datetime
from typing import Dict, Set, Tuple

from .core import (
    CollateralBalances, CollateralBook, DebtBook,
    InsufficientCollateral, InsufficientDebt,
)


class CollateralLedger:
    """Per-account, per-asset deposited amounts."""

    def __init__(self):
        self._book: CollateralBook = {}

    def balance(self, account: str, asset_id: str) -> int:
        """Deposited amount, 0 if never written."""
        return self._book.get(account, {}).get(asset_id, 0)

    def balances(self, account: str) -> CollateralBalances:
        """Copy of all non-zero balances of an account."""
        return dict(self._book.get(account, {}))

    def accounts(self) -> Set[str]:
        """Accounts holding any collateral."""
        return set(self._book.keys())

    def total_deposited(self, asset_id: str) -> int:
        """Sum of every account's balance of one asset."""
        return sum(balances.get(asset_id, 0) for balances in self._book.values())

    def copy_book(self) -> CollateralBook:
        return {account: dict(balances) for account, balances in self._book.items()}

    def _write(self, account: str, asset_id: str, amount: int) -> None:
        """Set an absolute balance; zero balances are removed to keep the book compact."""
        balances = self._book.setdefault(account, {})
        if amount:
            balances[asset_id] = amount
        else:
            balances.pop(asset_id, None)
            if not balances:
                del self._book[account]


class DebtLedger:
    """Per-account minted debt."""

    def __init__(self):
        self._book: DebtBook = {}

    def debt_of(self, account: str) -> int:
        """Minted debt, 0 if never written."""
        return self._book.get(account, 0)

    def accounts(self) -> Set[str]:
        """Accounts with outstanding debt."""
        return set(self._book.keys())

    def total_debt(self) -> int:
        return sum(self._book.values())

    def copy_book(self) -> DebtBook:
        return dict(self._book)

    def _write(self, account: str, amount: int) -> None:
        if amount:
            self._book[account] = amount
        else:
            self._book.pop(account, None)


class StagedBooks:
    """
    Copy-on-write view of both ledgers for a single in-flight operation.

    Reads fall through to the committed ledgers until an entry is written.
    Implements EngineView, so health and liquidation calculations can run
    against the post-mutation state before anything is committed.
    """

    def __init__(self, collateral: CollateralLedger, debt: DebtLedger, current_time: datetime):
        self._collateral_ledger = collateral
        self._debt_ledger = debt
        self._current_time = current_time
        self._collateral: Dict[Tuple[str, str], int] = {}
        self._debt: Dict[str, int] = {}

    @property
    def current_time(self) -> datetime:
        return self._current_time

    def collateral_balance(self, account: str, asset_id: str) -> int:
        key = (account, asset_id)
        if key in self._collateral:
            return self._collateral[key]
        return self._collateral_ledger.balance(account, asset_id)

    def debt_of(self, account: str) -> int:
        if account in self._debt:
            return self._debt[account]
        return self._debt_ledger.debt_of(account)

    # ------------------------------------------------------------------
    # Staged writes
    # ------------------------------------------------------------------

    def credit_collateral(self, account: str, asset_id: str, amount: int) -> int:
        """Increase a collateral balance; returns the new balance."""
        new_balance = self.collateral_balance(account, asset_id) + amount
        self._collateral[(account, asset_id)] = new_balance
        return new_balance

    def debit_collateral(self, account: str, asset_id: str, amount: int) -> int:
        """
        Decrease a collateral balance; returns the new balance.

        Raises:
            InsufficientCollateral: if the balance would go negative
        """
        available = self.collateral_balance(account, asset_id)
        if amount > available:
            raise InsufficientCollateral(account, asset_id, amount, available)
        new_balance = available - amount
        self._collateral[(account, asset_id)] = new_balance
        return new_balance

    def increase_debt(self, account: str, amount: int) -> int:
        new_debt = self.debt_of(account) + amount
        self._debt[account] = new_debt
        return new_debt

    def decrease_debt(self, account: str, amount: int) -> int:
        """
        Decrease minted debt; returns the new debt.

        Raises:
            InsufficientDebt: if more than the outstanding debt is burned
        """
        outstanding = self.debt_of(account)
        if amount > outstanding:
            raise InsufficientDebt(account, amount, outstanding)
        new_debt = outstanding - amount
        self._debt[account] = new_debt
        return new_debt

    def commit(self) -> None:
        """Write every staged entry into the committed ledgers."""
        for (account, asset_id), amount in self._collateral.items():
            self._collateral_ledger._write(account, asset_id, amount)
        for account, amount in self._debt.items():
            self._debt_ledger._write(account, amount)
        self._collateral.clear()
        self._debt.clear()

    def __repr__(self) -> str:
        return f"StagedBooks({len(self._collateral)} collateral, {len(self._debt)} debt entries)"
