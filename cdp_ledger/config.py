"""
config.py - Construction-time configuration for the engine

EngineConfig holds the process-wide risk parameters and fixed-point scales.
SupportedAsset pairs a collateral asset with the opaque price feed handle the
oracle adapter uses for it. Both are frozen and never change after the engine
is built.
"""

from __future__ import annotations
from dataclasses import dataclass, fields
from datetime import timedelta
from typing import Any, Hashable, Mapping, Optional, Sequence, Tuple

from .core import (
    InvalidArgument, ConfigLengthMismatch,
    PRECISION_DECIMALS, DEFAULT_ORACLE_DECIMALS,
    LIQUIDATION_THRESHOLD, LIQUIDATION_BONUS, LIQUIDATION_PRECISION,
)


@dataclass(frozen=True, slots=True)
class SupportedAsset:
    """
    A collateral asset admitted into the engine.

    Attributes:
        asset_id: Identifier used in every ledger operation (e.g. "WETH")
        price_feed: Handle passed to the PriceSource to read this asset's price
    """
    asset_id: str
    price_feed: Hashable

    def __post_init__(self):
        if not isinstance(self.asset_id, str) or not self.asset_id.strip():
            raise InvalidArgument("SupportedAsset asset_id cannot be empty")
        if self.price_feed is None:
            raise InvalidArgument(f"SupportedAsset {self.asset_id} has no price feed")


@dataclass(frozen=True, slots=True)
class EngineConfig:
    """
    Global risk parameters, fixed at construction.

    Attributes:
        liquidation_threshold: Percent of raw collateral value counted toward
            the health factor (50 -> 200% overcollateralization)
        liquidation_bonus: Percent of seized collateral awarded to liquidators
        liquidation_precision: Denominator for the two percentages above
        precision_decimals: Decimals of internal amounts and USD values
        oracle_decimals: Native decimals of the price feeds
        max_price_age: Oldest acceptable feed reading. None accepts any
            reading at face value.
    """
    liquidation_threshold: int = LIQUIDATION_THRESHOLD
    liquidation_bonus: int = LIQUIDATION_BONUS
    liquidation_precision: int = LIQUIDATION_PRECISION
    precision_decimals: int = PRECISION_DECIMALS
    oracle_decimals: int = DEFAULT_ORACLE_DECIMALS
    max_price_age: Optional[timedelta] = None

    def __post_init__(self):
        for name in ("liquidation_threshold", "liquidation_bonus",
                     "liquidation_precision", "precision_decimals", "oracle_decimals"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidArgument(f"{name} must be an integer, got {value!r}")
        if self.liquidation_precision <= 0:
            raise InvalidArgument("liquidation_precision must be positive")
        if not 0 < self.liquidation_threshold <= self.liquidation_precision:
            raise InvalidArgument(
                f"liquidation_threshold must be in (0, {self.liquidation_precision}], "
                f"got {self.liquidation_threshold}"
            )
        if not 0 <= self.liquidation_bonus < self.liquidation_precision:
            raise InvalidArgument(
                f"liquidation_bonus must be in [0, {self.liquidation_precision}), "
                f"got {self.liquidation_bonus}"
            )
        if self.precision_decimals <= 0:
            raise InvalidArgument("precision_decimals must be positive")
        if not 0 <= self.oracle_decimals <= self.precision_decimals:
            raise InvalidArgument(
                f"oracle_decimals must be in [0, {self.precision_decimals}], "
                f"got {self.oracle_decimals}"
            )
        if self.max_price_age is not None and self.max_price_age <= timedelta(0):
            raise InvalidArgument("max_price_age must be positive when set")

    @property
    def precision(self) -> int:
        return 10 ** self.precision_decimals

    @property
    def oracle_precision_adjustment(self) -> int:
        return 10 ** (self.precision_decimals - self.oracle_decimals)

    @property
    def min_health_factor(self) -> int:
        return self.precision

    @classmethod
    def from_mapping(cls, settings: Mapping[str, Any]) -> EngineConfig:
        """
        Build a config from plain settings, e.g. a parsed deployment file.

        max_price_age may be given as seconds. Unknown keys are rejected so a
        typo never silently falls back to a default.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(settings) - known
        if unknown:
            raise InvalidArgument(f"Unknown config keys: {sorted(unknown)}")
        values = dict(settings)
        age = values.get("max_price_age")
        if age is not None and not isinstance(age, timedelta):
            values["max_price_age"] = timedelta(seconds=age)
        return cls(**values)


def build_supported_assets(
    asset_ids: Sequence[str],
    price_feeds: Sequence[Hashable],
) -> Tuple[SupportedAsset, ...]:
    """
    Pair collateral asset ids with their price feeds, preserving order.

    Raises:
        ConfigLengthMismatch: if the two lists differ in length
        InvalidArgument: if an asset id appears twice
    """
    if len(asset_ids) != len(price_feeds):
        raise ConfigLengthMismatch(len(asset_ids), len(price_feeds))
    assets = tuple(
        SupportedAsset(asset_id, feed) for asset_id, feed in zip(asset_ids, price_feeds)
    )
    seen = set()
    for asset in assets:
        if asset.asset_id in seen:
            raise InvalidArgument(f"Duplicate collateral asset {asset.asset_id}")
        seen.add(asset.asset_id)
    return assets
