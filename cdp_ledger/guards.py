"""
guards.py - Invariant Enforcement Guard and reentrancy lock

The invariant guard is a post-condition: it runs after an operation has
staged all of its ledger writes and before anything is committed. A failing
guard raises, the staged writes are dropped, and the operation has no effect.

The reentrancy lock is a single flag per engine. Every mutating entry point
holds it for its whole duration, external calls included, and nested entry
is rejected.
"""

from __future__ import annotations
from contextlib import contextmanager
import logging
from typing import Iterator, Optional

from .core import EngineView, HealthFactorBroken, MAX_HEALTH_FACTOR, ReentrancyDetected, health_factor_repr
from .health import account_health
from .oracle import OracleAdapter

logger = logging.getLogger(__name__)


def enforce_health_factor(view: EngineView, oracle: OracleAdapter, account: str) -> int:
    """
    Check that `account` satisfies the solvency invariant in `view`.

    Accounts without debt are unconstrained and are not priced.

    Returns:
        The account's health factor.

    Raises:
        HealthFactorBroken: if the health factor is below the minimum
        OracleUnavailable: if a held asset cannot be priced
    """
    if view.debt_of(account) == 0:
        return MAX_HEALTH_FACTOR
    health = account_health(view, oracle, account)
    minimum = oracle.config.min_health_factor
    if health.health_factor < minimum:
        raise HealthFactorBroken(account, health.health_factor, minimum)
    logger.debug("health check %s: %s", account, health_factor_repr(health.health_factor))
    return health.health_factor


class ReentrancyLock:
    """
    Process-wide "operation in progress" flag.

    Example:
        lock = ReentrancyLock()
        with lock.hold("deposit_collateral"):
            ...  # a nested lock.hold(...) here raises ReentrancyDetected
    """

    def __init__(self):
        self._active: Optional[str] = None

    @property
    def locked(self) -> bool:
        return self._active is not None

    @property
    def active_operation(self) -> Optional[str]:
        return self._active

    @contextmanager
    def hold(self, operation: str) -> Iterator[None]:
        """Acquire for the duration of the block; released on every exit path."""
        if self._active is not None:
            logger.error("reentrant call to %s during %s", operation, self._active)
            raise ReentrancyDetected(operation, self._active)
        self._active = operation
        try:
            yield
        finally:
            self._active = None
