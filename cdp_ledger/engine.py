"""
engine.py - Collateralized debt engine

The CollateralEngine is the only component that mutates the collateral and
debt books. It composes the oracle adapter, the health factor calculator, the
invariant guard and the liquidation planner behind the public operations.

Key responsibilities:
    - Implements EngineView for read-only access by pure functions
    - Executes every mutating operation atomically: ledger writes are staged,
      guards run on the staged state, external effects run, and only then is
      anything committed and any event published
    - Rejects reentrant calls made from inside external collaborators
    - Keeps the event log an external indexer can rebuild the books from

Every operation has the same shape:

    lock -> validate -> stage writes -> guards -> external effects -> commit

Any failure before commit leaves the books, the event log and (through
compensation) the external balances as they were.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime
import logging
from typing import Any, Callable, Hashable, List, Optional, Sequence, Tuple

from .books import CollateralLedger, DebtLedger, StagedBooks
from .config import EngineConfig, SupportedAsset, build_supported_assets
from .core import (
    # Types
    AccountInfo, AssetCustodian, CollateralBalances, CollateralBook, DebtBook,
    DebtIssuer, OperationType, Receipt,
    # Exceptions
    InvalidArgument,
    # Helpers
    require_amount, health_factor_repr,
)
from .effects import DestroyDebt, IssueDebt, PullCollateral, PullDebt, PushCollateral, run_effects
from .events import (
    CollateralDeposited, CollateralRedeemed, DebtBurned, DebtMinted, EngineEvent, Liquidated,
)
from .guards import ReentrancyLock, enforce_health_factor
from .health import account_health, compute_health_factor, max_mintable, total_collateral_value_usd
from .liquidation import compute_liquidation, verify_improvement
from .oracle import OracleAdapter
from .pricing_source import PriceSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineSnapshot:
    """Frozen copy of both books, for audits and before/after comparisons."""
    collateral: CollateralBook
    debt: DebtBook
    event_count: int
    sequence: int


class _Operation:
    """Staged writes, events and external effects of one in-flight operation."""

    def __init__(self, kind: OperationType, caller: str, staged: StagedBooks):
        self.kind = kind
        self.caller = caller
        self.staged = staged
        self.events: List[EngineEvent] = []
        self.effects: List[Any] = []


class CollateralEngine:
    """
    Collateral and debt accounting with health factor enforcement and liquidation.

    Implements the EngineView protocol.

    Design Principles:
        - All-or-nothing: an operation either fully applies or has no effect.
        - Post-condition gate: the solvency invariant is checked on the staged
          state of every account an operation can make less safe.
        - Serialized: one mutating operation at a time; reentry is fatal to
          the inner call.

    Thread Safety:
        Not thread-safe. The reentrancy lock guards against callbacks, not
        against concurrent threads.

    Example:
        engine = CollateralEngine(
            ["WETH", "WBTC"], ["ETH/USD", "BTC/USD"],
            price_source=StaticPriceSource({"ETH/USD": 2000_00000000, "BTC/USD": 1000_00000000}),
            custodian=InMemoryCustodian(),
            debt_issuer=InMemoryDebtToken(),
        )
        engine.deposit_collateral_and_mint("alice", "WETH", to_units(10), to_units(100))
    """

    def __init__(
        self,
        asset_ids: Sequence[str],
        price_feeds: Sequence[Hashable],
        price_source: PriceSource,
        custodian: AssetCustodian,
        debt_issuer: DebtIssuer,
        config: Optional[EngineConfig] = None,
        initial_time: Optional[datetime] = None,
        name: str = "cdp",
    ):
        """
        Create an engine.

        Args:
            asset_ids: Collateral assets, in order
            price_feeds: Price feed handle for each asset, same order
            price_source: Where feed readings come from
            custodian: Moves collateral in and out of custody
            debt_issuer: Mint/burn authority for the debt token
            config: Risk parameters (default: EngineConfig())
            initial_time: Starting clock (default: 1970-01-01)
            name: Engine identifier used in logs

        Raises:
            ConfigLengthMismatch: if asset_ids and price_feeds differ in length
            InvalidArgument: if an asset id is empty or repeated
        """
        self.name = name
        self.config = config or EngineConfig()
        self.assets: Tuple[SupportedAsset, ...] = build_supported_assets(asset_ids, price_feeds)
        self.oracle = OracleAdapter(self.assets, price_source, self.config)
        self.custodian = custodian
        self.debt_issuer = debt_issuer

        self._collateral = CollateralLedger()
        self._debt = DebtLedger()
        self._lock = ReentrancyLock()
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)
        # Operation sequence starts at 1; events carry 0 until committed
        self._next_sequence: int = 1

        self.event_log: List[EngineEvent] = []
        self.operation_log: List[Receipt] = []

        logger.info("%s: engine created with collateral %s",
                    self.name, ", ".join(a.asset_id for a in self.assets))

    # ========================================================================
    # EngineView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        """Current logical time of the engine."""
        return self._current_time

    def collateral_balance(self, account: str, asset_id: str) -> int:
        """
        Deposited amount of an asset for an account.

        Returns 0 for accounts that never deposited.

        Raises:
            UnsupportedAsset: if the asset was not admitted
        """
        self.oracle.feed_for(asset_id)
        return self._collateral.balance(account, asset_id)

    def debt_of(self, account: str) -> int:
        """Minted debt of an account (0 if none)."""
        return self._debt.debt_of(account)

    # ========================================================================
    # TIME
    # ========================================================================

    def advance_time(self, new_time: datetime) -> None:
        """
        Move the engine clock forward. Only used by the oracle staleness check.

        Raises:
            InvalidArgument: if new_time is earlier than the current time
        """
        if new_time < self._current_time:
            raise InvalidArgument(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    # ========================================================================
    # QUERIES (read-only, never blocked by the operation lock)
    # ========================================================================

    def collateral_assets(self) -> Tuple[str, ...]:
        """Supported collateral asset ids, in construction order."""
        return self.oracle.asset_ids

    def price_feed(self, asset_id: str) -> Hashable:
        return self.oracle.feed_for(asset_id)

    def collateral_balances(self, account: str) -> CollateralBalances:
        """All non-zero collateral balances of an account."""
        return self._collateral.balances(account)

    def total_deposited(self, asset_id: str) -> int:
        """Sum of all accounts' deposits of one asset."""
        self.oracle.feed_for(asset_id)
        return self._collateral.total_deposited(asset_id)

    def total_debt(self) -> int:
        return self._debt.total_debt()

    def usd_value(self, asset_id: str, amount: int) -> int:
        """USD value (18 decimals) of `amount` base units of an asset at the current price."""
        return self.oracle.usd_value(asset_id, amount, self._current_time)

    def asset_amount_from_usd(self, asset_id: str, usd_amount: int) -> int:
        """Base units of an asset worth `usd_amount` (18 decimals) at the current price."""
        return self.oracle.asset_amount_from_usd(asset_id, usd_amount, self._current_time)

    def account_collateral_value_usd(self, account: str) -> int:
        """Raw USD value of everything the account has deposited."""
        return total_collateral_value_usd(self, self.oracle, account)

    def account_info(self, account: str) -> AccountInfo:
        """Debt and raw collateral value of an account."""
        debt = self._debt.debt_of(account)
        return AccountInfo(debt, total_collateral_value_usd(self, self.oracle, account))

    def compute_health_factor(self, debt_minted: int, collateral_value_usd: int) -> int:
        """Pure health factor under this engine's risk parameters."""
        return compute_health_factor(debt_minted, collateral_value_usd, self.config)

    def health_factor(self, account: str) -> int:
        return account_health(self, self.oracle, account).health_factor

    def is_liquidatable(self, account: str) -> bool:
        return self.health_factor(account) < self.config.min_health_factor

    def mintable(self, account: str) -> int:
        """Additional debt the account could mint right now without breaking the invariant."""
        info = self.account_info(account)
        return max_mintable(info.collateral_value_usd, info.debt_minted, self.config)

    def accounts(self) -> List[str]:
        """Every account holding collateral or debt, sorted."""
        return sorted(self._collateral.accounts() | self._debt.accounts())

    def snapshot(self) -> EngineSnapshot:
        """Frozen copy of the committed books."""
        return EngineSnapshot(
            collateral=self._collateral.copy_book(),
            debt=self._debt.copy_book(),
            event_count=len(self.event_log),
            sequence=self._next_sequence,
        )

    @property
    def operation_in_progress(self) -> Optional[str]:
        """Name of the mutating operation currently holding the lock, if any."""
        return self._lock.active_operation

    # ========================================================================
    # MUTATING OPERATIONS
    # ========================================================================

    def deposit_collateral(self, caller: str, asset_id: str, amount: int) -> Receipt:
        """
        Lock `amount` of `asset_id` from the caller as collateral.

        Raises:
            InvalidArgument: if amount is not a positive integer
            UnsupportedAsset: if the asset was not admitted
            TransferFailed: if the custodian refuses the transfer in
        """
        def body(op: _Operation) -> None:
            self._deposit(op, caller, asset_id, amount)

        return self._execute(OperationType.DEPOSIT, caller, body)

    def deposit_collateral_and_mint(
        self,
        caller: str,
        asset_id: str,
        collateral_amount: int,
        debt_amount: int,
    ) -> Receipt:
        """
        Deposit collateral and mint debt against it in one step.

        Raises:
            InvalidArgument, UnsupportedAsset, TransferFailed, MintFailed,
            HealthFactorBroken, OracleUnavailable
        """
        def body(op: _Operation) -> None:
            require_amount(debt_amount, "debt_amount")
            self._deposit(op, caller, asset_id, collateral_amount)
            self._mint(op, caller, debt_amount)
            enforce_health_factor(op.staged, self.oracle, caller)

        return self._execute(OperationType.DEPOSIT_AND_MINT, caller, body)

    def redeem_collateral(self, caller: str, asset_id: str, amount: int) -> Receipt:
        """
        Withdraw collateral back to the caller.

        Raises:
            InvalidArgument, UnsupportedAsset, InsufficientCollateral,
            HealthFactorBroken, TransferFailed, OracleUnavailable
        """
        def body(op: _Operation) -> None:
            self._withdraw(op, caller, asset_id, amount, caller)
            enforce_health_factor(op.staged, self.oracle, caller)

        return self._execute(OperationType.REDEEM, caller, body)

    def redeem_collateral_for_debt(
        self,
        caller: str,
        asset_id: str,
        collateral_amount: int,
        debt_amount: int,
    ) -> Receipt:
        """
        Repay debt and withdraw collateral in one step (burn, then redeem).

        Raises:
            InvalidArgument, UnsupportedAsset, InsufficientDebt,
            InsufficientCollateral, HealthFactorBroken, TransferFailed,
            OracleUnavailable
        """
        def body(op: _Operation) -> None:
            require_amount(collateral_amount, "collateral_amount")
            self._burn(op, debt_amount, caller, caller)
            self._withdraw(op, caller, asset_id, collateral_amount, caller)
            enforce_health_factor(op.staged, self.oracle, caller)

        return self._execute(OperationType.REDEEM_FOR_DEBT, caller, body)

    def mint_debt(self, caller: str, amount: int) -> Receipt:
        """
        Mint debt against the caller's existing collateral.

        Raises:
            InvalidArgument, HealthFactorBroken, MintFailed, OracleUnavailable
        """
        def body(op: _Operation) -> None:
            self._mint(op, caller, amount)
            enforce_health_factor(op.staged, self.oracle, caller)

        return self._execute(OperationType.MINT, caller, body)

    def burn_debt(self, caller: str, amount: int) -> Receipt:
        """
        Repay the caller's own debt with debt tokens the caller holds.

        Raises:
            InvalidArgument, InsufficientDebt, TransferFailed
        """
        def body(op: _Operation) -> None:
            self._burn(op, amount, caller, caller)
            enforce_health_factor(op.staged, self.oracle, caller)

        return self._execute(OperationType.BURN, caller, body)

    def liquidate(
        self,
        caller: str,
        collateral_asset_id: str,
        borrower: str,
        debt_to_cover: int,
    ) -> Receipt:
        """
        Repay part of an unsafe borrower's debt in exchange for its collateral plus a bonus.

        The caller (liquidator) pays `debt_to_cover` in debt tokens and receives
        collateral worth that amount plus LIQUIDATION_BONUS percent. Partial
        liquidation is allowed; there is no minimum size.

        Args:
            caller: Liquidator
            collateral_asset_id: Single asset to seize from the borrower
            borrower: Account to liquidate
            debt_to_cover: Debt to repay on the borrower's behalf

        Raises:
            HealthIsOkay: if the borrower is not below the minimum health factor
            InsufficientCollateral: if the borrower holds too little of the asset
            InsufficientDebt: if debt_to_cover exceeds the borrower's debt
            HealthFactorNotImproved: if the borrower ends no safer than before
            HealthFactorBroken: if the liquidator ends below the minimum
            InvalidArgument, UnsupportedAsset, TransferFailed, OracleUnavailable
        """
        def body(op: _Operation) -> None:
            require_amount(debt_to_cover, "debt_to_cover")
            _require_account(borrower, "borrower")
            plan = compute_liquidation(
                op.staged, self.oracle, caller, borrower, collateral_asset_id, debt_to_cover
            )
            logger.debug(
                "%s: liquidation plan %s -> seize %d + %d %s",
                self.name, borrower, plan.token_amount, plan.bonus, collateral_asset_id,
            )
            self._withdraw(op, borrower, collateral_asset_id, plan.total_seized, caller)
            self._burn(op, debt_to_cover, borrower, caller)
            after = verify_improvement(op.staged, self.oracle, plan)
            enforce_health_factor(op.staged, self.oracle, caller)
            op.events.append(Liquidated(
                liquidator=caller,
                borrower=borrower,
                asset_id=collateral_asset_id,
                debt_covered=debt_to_cover,
                collateral_seized=plan.total_seized,
            ))
            logger.info(
                "%s: %s liquidated %s: health factor %s -> %s",
                self.name, caller, borrower,
                health_factor_repr(plan.health_factor_before), health_factor_repr(after),
            )

        return self._execute(OperationType.LIQUIDATE, caller, body)

    # ========================================================================
    # LEDGER PRIMITIVES (stage writes, events and effects on an operation)
    # ========================================================================

    def _deposit(self, op: _Operation, account: str, asset_id: str, amount: int) -> None:
        require_amount(amount)
        self.oracle.feed_for(asset_id)
        op.staged.credit_collateral(account, asset_id, amount)
        op.events.append(CollateralDeposited(account, asset_id, amount))
        op.effects.append(PullCollateral(asset_id, account, amount))

    def _withdraw(self, op: _Operation, account: str, asset_id: str, amount: int, recipient: str) -> None:
        # Liquidation may seize 0 units when debt_to_cover is worth less than one
        # base unit of collateral, so only the caller-facing paths insist on > 0.
        if op.kind is not OperationType.LIQUIDATE:
            require_amount(amount)
        self.oracle.feed_for(asset_id)
        op.staged.debit_collateral(account, asset_id, amount)
        op.events.append(CollateralRedeemed(account, recipient, asset_id, amount))
        op.effects.append(PushCollateral(asset_id, recipient, amount))

    def _mint(self, op: _Operation, account: str, amount: int) -> None:
        require_amount(amount)
        op.staged.increase_debt(account, amount)
        op.events.append(DebtMinted(account, amount))
        op.effects.append(IssueDebt(account, amount))

    def _burn(self, op: _Operation, amount: int, on_behalf_of: str, payer: str) -> None:
        require_amount(amount)
        op.staged.decrease_debt(on_behalf_of, amount)
        op.events.append(DebtBurned(on_behalf_of, payer, amount))
        op.effects.append(PullDebt(payer, amount))
        op.effects.append(DestroyDebt(amount))

    # ========================================================================
    # ATOMIC EXECUTION
    # ========================================================================

    def _execute(
        self,
        kind: OperationType,
        caller: str,
        body: Callable[[_Operation], None],
    ) -> Receipt:
        """
        Run an operation body atomically under the reentrancy lock.

        The body stages writes and runs guards; effects run afterwards. On any
        exception the staged writes and events are dropped, applied effects
        are compensated, and the exception propagates to the caller.
        """
        with self._lock.hold(kind.value):
            _require_account(caller, "caller")
            op = _Operation(kind, caller, StagedBooks(self._collateral, self._debt, self._current_time))
            try:
                body(op)
                run_effects(op.effects, self.custodian, self.debt_issuer)
            except Exception as exc:
                logger.warning("%s: REJECTED %s by %s: %s", self.name, kind.value, caller, exc)
                raise
            return self._commit(op)

    def _commit(self, op: _Operation) -> Receipt:
        op.staged.commit()
        sequence = self._next_sequence
        self._next_sequence += 1

        events = tuple(replace(event, sequence=sequence) for event in op.events)
        self.event_log.extend(events)
        receipt = Receipt(
            sequence=sequence,
            operation=op.kind,
            caller=op.caller,
            events=events,
            timestamp=self._current_time,
        )
        self.operation_log.append(receipt)
        logger.info("%s: APPLIED #%d %s by %s (%d events)",
                    self.name, sequence, op.kind.value, op.caller, len(events))
        return receipt

    def __repr__(self) -> str:
        return (
            f"CollateralEngine({self.name!r}, {len(self.assets)} assets, "
            f"{len(self.accounts())} accounts, {len(self.operation_log)} operations)"
        )


def _require_account(account: Any, name: str) -> None:
    if not isinstance(account, str) or not account.strip():
        raise InvalidArgument(f"{name} must be a non-empty account id, got {account!r}")
