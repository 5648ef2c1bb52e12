"""
custody.py - In-memory asset custodian and debt token

Reference implementations of the AssetCustodian and DebtIssuer protocols.
Both keep plain integer balances per holder; engine custody is the
ENGINE_ACCOUNT holder. Transfers that would overdraw a holder are refused
with False, which the engine turns into TransferFailed.

Used by the demos and the test suite; a deployment injects adapters over its
real token ledgers instead.
"""

from __future__ import annotations
from collections import defaultdict
import logging
from typing import Dict, Tuple

from .core import ENGINE_ACCOUNT, require_amount

logger = logging.getLogger(__name__)


class InMemoryCustodian:
    """
    Collateral token balances for every holder, engine custody included.

    Example:
        custodian = InMemoryCustodian()
        custodian.fund("alice", "WETH", to_units(10))
        custodian.transfer_in("WETH", "alice", to_units(4))   # True
        custodian.balance_of(ENGINE_ACCOUNT, "WETH")          # 4e18
    """

    def __init__(self):
        self._balances: Dict[Tuple[str, str], int] = defaultdict(int)

    def fund(self, holder: str, asset_id: str, amount: int) -> None:
        """Credit tokens to a holder from outside the system (faucet)."""
        require_amount(amount)
        self._balances[(holder, asset_id)] += amount

    def balance_of(self, holder: str, asset_id: str) -> int:
        return self._balances.get((holder, asset_id), 0)

    def custody_balance(self, asset_id: str) -> int:
        return self.balance_of(ENGINE_ACCOUNT, asset_id)

    def transfer_in(self, asset_id: str, owner: str, amount: int) -> bool:
        return self._move(asset_id, owner, ENGINE_ACCOUNT, amount)

    def transfer_out(self, asset_id: str, recipient: str, amount: int) -> bool:
        return self._move(asset_id, ENGINE_ACCOUNT, recipient, amount)

    def _move(self, asset_id: str, source: str, dest: str, amount: int) -> bool:
        if amount < 0 or self.balance_of(source, asset_id) < amount:
            logger.debug("refused %d %s %s -> %s", amount, asset_id, source, dest)
            return False
        self._balances[(source, asset_id)] -= amount
        self._balances[(dest, asset_id)] += amount
        return True


class InMemoryDebtToken:
    """
    Debt token with the engine as sole mint/burn authority.

    transfer_from pulls from a holder into custody, transfer pays out of
    custody, and burn destroys tokens held in custody.
    """

    def __init__(self, symbol: str = "DSC"):
        self.symbol = symbol
        self._balances: Dict[str, int] = defaultdict(int)
        self._total_supply = 0

    @property
    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, holder: str) -> int:
        return self._balances.get(holder, 0)

    def holders(self) -> Dict[str, int]:
        return {holder: amount for holder, amount in self._balances.items() if amount}

    def mint(self, account: str, amount: int) -> bool:
        if amount < 0:
            return False
        self._balances[account] += amount
        self._total_supply += amount
        return True

    def transfer_from(self, owner: str, amount: int) -> bool:
        return self._move(owner, ENGINE_ACCOUNT, amount)

    def transfer(self, recipient: str, amount: int) -> bool:
        return self._move(ENGINE_ACCOUNT, recipient, amount)

    def move(self, source: str, dest: str, amount: int) -> bool:
        """Holder-to-holder transfer (e.g. a borrower handing tokens to a liquidator)."""
        return self._move(source, dest, amount)

    def burn(self, amount: int) -> bool:
        if amount < 0 or self.balance_of(ENGINE_ACCOUNT) < amount:
            return False
        self._balances[ENGINE_ACCOUNT] -= amount
        self._total_supply -= amount
        return True

    def _move(self, source: str, dest: str, amount: int) -> bool:
        if amount < 0 or self.balance_of(source) < amount:
            logger.debug("refused %d %s %s -> %s", amount, self.symbol, source, dest)
            return False
        self._balances[source] -= amount
        self._balances[dest] += amount
        return True

    def __repr__(self) -> str:
        return f"InMemoryDebtToken({self.symbol!r}, supply={self._total_supply})"
