"""
Core types and pure helpers for the collateralized-debt engine.

This module provides the foundational pieces shared by every other module:
1. Constants: fixed-point scales, risk parameters, health factor bounds
2. Protocols: EngineView for read-only access, AssetCustodian and DebtIssuer
   for the external custody and issuance facilities
3. Exceptions: EngineError and the domain-specific error taxonomy
4. Immutable data structures: AccountInfo, Receipt
5. Amount helpers: validation and Decimal <-> base-unit conversion

All on-ledger amounts are integers in base units (18 decimals). Decimal is
used only at the human boundary, when converting quantities in and out.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_DOWN, getcontext
from enum import Enum
from typing import Dict, Tuple, Any, Optional, Protocol, runtime_checkable


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Conversions between human quantities and base units must be exact for any
# amount representable with 18 decimals. 50 significant digits covers
# 32 integer digits plus the fractional part.
#
_ENGINE_DECIMAL_CONTEXT = getcontext()
_ENGINE_DECIMAL_CONTEXT.prec = 50


# ============================================================================
# CONSTANTS
# ============================================================================

# Number of decimals used for every internal amount and USD value.
PRECISION_DECIMALS = 18
PRECISION = 10 ** PRECISION_DECIMALS

# Native decimals of the default price feeds (USD pairs quote with 8).
DEFAULT_ORACLE_DECIMALS = 8

# Scale reconciling an 8-decimal feed answer with PRECISION.
ORACLE_PRECISION_ADJUSTMENT = 10 ** (PRECISION_DECIMALS - DEFAULT_ORACLE_DECIMALS)

# Percent of raw collateral value counted toward the health factor.
# 50 means accounts must stay 200% overcollateralized.
LIQUIDATION_THRESHOLD = 50

# Percent of seized collateral awarded to the liquidator on top of the
# amount that covers the repaid debt.
LIQUIDATION_BONUS = 10

# Denominator for LIQUIDATION_THRESHOLD and LIQUIDATION_BONUS.
LIQUIDATION_PRECISION = 100

# Health factor of 1.0 in fixed point; anything below is unsafe.
MIN_HEALTH_FACTOR = PRECISION

# Health factor reported for accounts without debt (uint256 max).
MAX_HEALTH_FACTOR = 2 ** 256 - 1

# Identity under which the engine holds custodied assets.
ENGINE_ACCOUNT = "engine"


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from asset id to deposited amount for a single account.
CollateralBalances = Dict[str, int]

# Mapping from account id to its collateral balances.
CollateralBook = Dict[str, CollateralBalances]

# Mapping from account id to minted debt.
DebtBook = Dict[str, int]


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class EngineView(Protocol):
    """
    Read-only interface to committed engine state.

    Pure planning functions (liquidation, health checks) accept an EngineView
    to declare that they only read. CollateralEngine implements this protocol;
    the staged state used while an operation is in flight implements it too,
    so the same functions value both committed and uncommitted books.
    """

    @property
    def current_time(self) -> datetime:
        """Return the engine's logical clock."""
        ...

    def collateral_balance(self, account: str, asset_id: str) -> int:
        """Return the deposited amount, 0 for accounts or assets never written."""
        ...

    def debt_of(self, account: str) -> int:
        """Return the minted debt, 0 for accounts never written."""
        ...


@runtime_checkable
class AssetCustodian(Protocol):
    """
    External facility that moves collateral assets in and out of custody.

    Both methods return True on success and False when the movement was
    refused (missing allowance, insufficient balance, paused asset...).
    """

    def transfer_in(self, asset_id: str, owner: str, amount: int) -> bool:
        """Pull amount of asset_id from owner into engine custody."""
        ...

    def transfer_out(self, asset_id: str, recipient: str, amount: int) -> bool:
        """Push amount of asset_id from engine custody to recipient."""
        ...


@runtime_checkable
class DebtIssuer(Protocol):
    """
    External issuance and destruction authority for the debt token.

    The engine is the only minter. Burning happens from the engine's own
    custody, so repayments are first pulled from the payer.
    """

    def mint(self, account: str, amount: int) -> bool:
        """Issue amount of debt tokens to account."""
        ...

    def transfer_from(self, owner: str, amount: int) -> bool:
        """Pull amount of debt tokens from owner into engine custody."""
        ...

    def transfer(self, recipient: str, amount: int) -> bool:
        """Send amount of debt tokens from engine custody to recipient."""
        ...

    def burn(self, amount: int) -> bool:
        """Destroy amount of debt tokens held in engine custody."""
        ...


# ============================================================================
# EXCEPTIONS
# ============================================================================

class EngineError(Exception):
    """Base exception for all engine errors. Every failure aborts the whole operation."""
    pass


class InvalidArgument(EngineError):
    """Raised when an amount is zero, negative or not an integer, or input is malformed."""
    pass


class UnsupportedAsset(EngineError):
    """Raised when an operation names an asset that was not admitted at construction."""

    def __init__(self, asset_id: str):
        self.asset_id = asset_id
        super().__init__(f"Asset {asset_id} is not supported as collateral")


class InsufficientCollateral(EngineError):
    """Raised when a withdrawal exceeds the account's deposited amount of one asset."""

    def __init__(self, account: str, asset_id: str, requested: int, available: int):
        self.account = account
        self.asset_id = asset_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"{account} {asset_id}: requested {requested} > deposited {available}"
        )


class InsufficientDebt(EngineError):
    """Raised when a burn exceeds the account's outstanding debt."""

    def __init__(self, account: str, requested: int, outstanding: int):
        self.account = account
        self.requested = requested
        self.outstanding = outstanding
        super().__init__(
            f"{account}: burn {requested} > outstanding debt {outstanding}"
        )


class TransferFailed(EngineError):
    """Raised when the custodian or debt issuer refuses an asset movement."""

    def __init__(self, description: str):
        self.description = description
        super().__init__(f"Transfer failed: {description}")


class MintFailed(EngineError):
    """Raised when the debt issuer refuses to issue tokens."""

    def __init__(self, account: str, amount: int):
        self.account = account
        self.amount = amount
        super().__init__(f"Mint of {amount} to {account} failed")


class HealthFactorBroken(EngineError):
    """Raised when an operation would leave an account below MIN_HEALTH_FACTOR."""

    def __init__(self, account: str, health_factor: int, minimum: int = MIN_HEALTH_FACTOR):
        self.account = account
        self.health_factor = health_factor
        self.minimum = minimum
        super().__init__(
            f"Health factor of {account} would be {health_factor} "
            f"(minimum {minimum})"
        )


class HealthIsOkay(EngineError):
    """Raised when liquidation targets an account that is not below the minimum."""

    def __init__(self, account: str, health_factor: int):
        self.account = account
        self.health_factor = health_factor
        super().__init__(f"{account} is healthy (health factor {health_factor})")


class HealthFactorNotImproved(EngineError):
    """Raised when a liquidation does not strictly raise the borrower's health factor."""

    def __init__(self, account: str, before: int, after: int):
        self.account = account
        self.before = before
        self.after = after
        super().__init__(
            f"Liquidation of {account} did not improve health factor "
            f"({before} -> {after})"
        )


class OracleUnavailable(EngineError):
    """Raised when no usable price can be read for an asset."""

    def __init__(self, asset_id: str, reason: str):
        self.asset_id = asset_id
        self.reason = reason
        super().__init__(f"No price for {asset_id}: {reason}")


class ReentrancyDetected(EngineError):
    """Raised when a mutating operation is entered while another is in flight."""

    def __init__(self, operation: str, active_operation: str):
        self.operation = operation
        self.active_operation = active_operation
        super().__init__(
            f"Reentrant call to {operation} while {active_operation} is in progress"
        )


class ConfigLengthMismatch(EngineError):
    """Raised at construction when asset ids and price feeds differ in length."""

    def __init__(self, n_assets: int, n_feeds: int):
        self.n_assets = n_assets
        self.n_feeds = n_feeds
        super().__init__(
            f"{n_assets} collateral assets but {n_feeds} price feeds"
        )


# ============================================================================
# ENUMS
# ============================================================================

class OperationType(Enum):
    """Public mutating operations, recorded on receipts and in logs."""
    DEPOSIT = "deposit_collateral"
    DEPOSIT_AND_MINT = "deposit_collateral_and_mint"
    REDEEM = "redeem_collateral"
    REDEEM_FOR_DEBT = "redeem_collateral_for_debt"
    MINT = "mint_debt"
    BURN = "burn_debt"
    LIQUIDATE = "liquidate"


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class AccountInfo:
    """Debt and raw (not risk-adjusted) collateral value of one account."""
    debt_minted: int
    collateral_value_usd: int


@dataclass(frozen=True, slots=True)
class Receipt:
    """
    Record of a committed operation.

    Attributes:
        sequence: Monotonic operation number within the engine
        operation: Which public entry point ran
        caller: Account that invoked it
        events: Events emitted, in emission order
        timestamp: Engine clock when the operation committed
    """
    sequence: int
    operation: OperationType
    caller: str
    events: Tuple[Any, ...]
    timestamp: datetime

    def __repr__(self) -> str:
        return (
            f"Receipt(#{self.sequence} {self.operation.value} by {self.caller}, "
            f"{len(self.events)} events)"
        )


# ============================================================================
# AMOUNT HELPERS
# ============================================================================

def require_amount(amount: Any, name: str = "amount") -> int:
    """
    Validate a base-unit amount.

    Raises:
        InvalidArgument: if amount is not an int (bools rejected) or is not > 0.
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidArgument(f"{name} must be an integer number of base units, got {amount!r}")
    if amount <= 0:
        raise InvalidArgument(f"{name} must be greater than zero, got {amount}")
    return amount


def to_units(quantity: Any, decimals: int = PRECISION_DECIMALS) -> int:
    """
    Convert a human quantity to integer base units, truncating extra digits.

    Example:
        to_units(Decimal("0.05")) == 50_000_000_000_000_000
    """
    if not isinstance(quantity, Decimal):
        quantity = Decimal(str(quantity))
    if quantity.is_nan() or quantity.is_infinite():
        raise InvalidArgument(f"quantity must be finite, got {quantity}")
    scaled = (quantity * (Decimal(10) ** decimals)).to_integral_value(rounding=ROUND_DOWN)
    return int(scaled)


def from_units(amount: int, decimals: int = PRECISION_DECIMALS) -> Decimal:
    """Convert integer base units back to an exact Decimal quantity."""
    return Decimal(amount) / (Decimal(10) ** decimals)


def format_usd(value: int, places: int = 2) -> str:
    """Render an 18-decimal USD value as a dollar string, e.g. '$30,000.00'."""
    quantizer = Decimal(10) ** -places
    return f"${from_units(value).quantize(quantizer, rounding=ROUND_DOWN):,}"


def health_factor_repr(health_factor: Optional[int]) -> str:
    """Readable health factor for logs: '1.5', or 'inf' for debt-free accounts."""
    if health_factor is None:
        return "n/a"
    if health_factor == MAX_HEALTH_FACTOR:
        return "inf"
    return format(from_units(health_factor).normalize(), "f")
