"""
effects.py - External calls made by an operation

An operation records the asset movements it needs as Effect values while it
stages its ledger writes. Once the guards have passed, run_effects performs
them against the injected custodian and debt issuer:

    1. PULL     collateral and debt tokens move into engine custody
    2. DESTROY  pulled debt tokens are burned
    3. PUSH     collateral or freshly issued debt leaves the engine (at most one)

Every pull and destroy can be compensated while the engine still controls the
value (refund the collateral, return the tokens, re-issue burned tokens to the
payer). The single push runs last, so a failure never needs to undo it. If
any effect fails, the ones already applied are compensated in reverse order
and the failure is re-raised; the caller then drops its staged writes.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import IntEnum
import logging
from typing import Sequence, Tuple

from .core import AssetCustodian, DebtIssuer, ENGINE_ACCOUNT, MintFailed, TransferFailed

logger = logging.getLogger(__name__)


class EffectPhase(IntEnum):
    PULL = 0
    DESTROY = 1
    PUSH = 2


@dataclass(frozen=True, slots=True)
class PullCollateral:
    """Move collateral from its owner into custody."""
    asset_id: str
    owner: str
    amount: int
    phase = EffectPhase.PULL

    def apply(self, custodian: AssetCustodian, issuer: DebtIssuer) -> None:
        if not custodian.transfer_in(self.asset_id, self.owner, self.amount):
            raise TransferFailed(f"{self.amount} {self.asset_id} from {self.owner} into custody")

    def compensate(self, custodian: AssetCustodian, issuer: DebtIssuer) -> bool:
        return custodian.transfer_out(self.asset_id, self.owner, self.amount)


@dataclass(frozen=True, slots=True)
class PushCollateral:
    """Move collateral from custody to a recipient."""
    asset_id: str
    recipient: str
    amount: int
    phase = EffectPhase.PUSH

    def apply(self, custodian: AssetCustodian, issuer: DebtIssuer) -> None:
        if not custodian.transfer_out(self.asset_id, self.recipient, self.amount):
            raise TransferFailed(f"{self.amount} {self.asset_id} from custody to {self.recipient}")


@dataclass(frozen=True, slots=True)
class IssueDebt:
    """Mint new debt tokens to an account."""
    account: str
    amount: int
    phase = EffectPhase.PUSH

    def apply(self, custodian: AssetCustodian, issuer: DebtIssuer) -> None:
        if not issuer.mint(self.account, self.amount):
            raise MintFailed(self.account, self.amount)


@dataclass(frozen=True, slots=True)
class PullDebt:
    """Move debt tokens from a payer into custody ahead of burning them."""
    payer: str
    amount: int
    phase = EffectPhase.PULL

    def apply(self, custodian: AssetCustodian, issuer: DebtIssuer) -> None:
        if not issuer.transfer_from(self.payer, self.amount):
            raise TransferFailed(f"{self.amount} debt tokens from {self.payer} into custody")

    def compensate(self, custodian: AssetCustodian, issuer: DebtIssuer) -> bool:
        return issuer.transfer(self.payer, self.amount)


@dataclass(frozen=True, slots=True)
class DestroyDebt:
    """Burn debt tokens held in custody."""
    amount: int
    phase = EffectPhase.DESTROY

    def apply(self, custodian: AssetCustodian, issuer: DebtIssuer) -> None:
        if not issuer.burn(self.amount):
            raise TransferFailed(f"burn of {self.amount} debt tokens in custody")

    def compensate(self, custodian: AssetCustodian, issuer: DebtIssuer) -> bool:
        # Re-issue into custody; the PullDebt compensation that follows
        # returns the tokens to the payer.
        return issuer.mint(ENGINE_ACCOUNT, self.amount)


def order_effects(effects: Sequence) -> Tuple:
    """
    Sort effects into execution order, keeping recording order within a phase.

    Raises:
        ValueError: if more than one effect would push value out of the engine
    """
    ordered = tuple(sorted(effects, key=lambda e: e.phase))
    pushes = [e for e in ordered if e.phase == EffectPhase.PUSH]
    if len(pushes) > 1:
        raise ValueError(f"An operation may push at most one effect, got {pushes}")
    return ordered


def run_effects(effects: Sequence, custodian: AssetCustodian, issuer: DebtIssuer) -> None:
    """
    Apply effects in phase order; on failure compensate and re-raise.

    Compensation failures are logged at ERROR and the remaining
    compensations still run; the external books then disagree with the
    engine and need reconciliation. The original error is re-raised.
    """
    completed = []
    try:
        for effect in order_effects(effects):
            effect.apply(custodian, issuer)
            completed.append(effect)
    except Exception as exc:
        for effect in reversed(completed):
            logger.warning("compensating %r after %s", effect, exc)
            try:
                compensated = effect.compensate(custodian, issuer)
            except Exception:
                logger.exception("compensation of %r raised; external balances need reconciliation", effect)
                continue
            if not compensated:
                logger.error("compensation of %r failed; external balances need reconciliation", effect)
        raise
