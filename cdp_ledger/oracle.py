"""
oracle.py - Price Oracle Adapter

Normalizes feed readings into the engine's fixed point and converts between
asset amounts and USD values:

    usd_value(asset, amount)           = amount * price * ADJUSTMENT // PRECISION
    asset_amount_from_usd(asset, usd)  = usd * PRECISION // (price * ADJUSTMENT)

where ADJUSTMENT = 10 ** (precision_decimals - oracle_decimals) rescales the
feed answer to PRECISION. Every feed must quote with the configured
oracle_decimals. Both conversions round down.

Readings are taken at face value unless EngineConfig.max_price_age is set,
in which case readings older than that age (relative to the engine clock) are
rejected. Non-positive answers are always rejected.
"""

from __future__ import annotations
from datetime import datetime
import logging
from typing import Dict, Hashable, Iterable, Tuple

from .config import EngineConfig, SupportedAsset
from .core import OracleUnavailable, UnsupportedAsset
from .pricing_source import PriceReading, PriceSource

logger = logging.getLogger(__name__)


class OracleAdapter:
    """Read-only price queries for the supported collateral assets."""

    def __init__(
        self,
        assets: Iterable[SupportedAsset],
        source: PriceSource,
        config: EngineConfig,
    ):
        self._feeds: Dict[str, Hashable] = {a.asset_id: a.price_feed for a in assets}
        self.source = source
        self.config = config

    def feed_for(self, asset_id: str) -> Hashable:
        """Return the price feed handle of a supported asset."""
        try:
            return self._feeds[asset_id]
        except KeyError:
            raise UnsupportedAsset(asset_id) from None

    def is_supported(self, asset_id: str) -> bool:
        return asset_id in self._feeds

    @property
    def asset_ids(self) -> Tuple[str, ...]:
        """Supported asset ids in construction order."""
        return tuple(self._feeds)

    def reading(self, asset_id: str, now: datetime) -> PriceReading:
        """
        Fetch and validate the current reading for an asset.

        Raises:
            UnsupportedAsset: if the asset was not admitted
            OracleUnavailable: if the feed has no reading, a non-positive
                answer, or (when staleness is enforced) a stale one
        """
        feed = self.feed_for(asset_id)
        reading = self.source.latest_reading(feed, now)
        if reading is None:
            raise OracleUnavailable(asset_id, f"feed {feed!r} returned no reading")
        if reading.answer <= 0:
            raise OracleUnavailable(asset_id, f"non-positive answer {reading.answer}")

        max_age = self.config.max_price_age
        if max_age is not None:
            if reading.updated_at is None:
                raise OracleUnavailable(asset_id, "reading has no publication time")
            age = now - reading.updated_at
            if age > max_age:
                raise OracleUnavailable(asset_id, f"reading is {age} old (max {max_age})")
        return reading

    def price(self, asset_id: str, now: datetime) -> int:
        """
        Current USD price of one whole unit, scaled to PRECISION.

        Raises:
            OracleUnavailable: if the reading is not quoted with the
                configured oracle_decimals
        """
        reading = self.reading(asset_id, now)
        if reading.decimals != self.config.oracle_decimals:
            raise OracleUnavailable(
                asset_id,
                f"feed quotes {reading.decimals} decimals, expected {self.config.oracle_decimals}",
            )
        price = reading.answer * self.config.oracle_precision_adjustment
        logger.debug("price %s = %d (feed answer %d, %d decimals)",
                     asset_id, price, reading.answer, reading.decimals)
        return price

    def usd_value(self, asset_id: str, amount: int, now: datetime) -> int:
        """USD value (PRECISION scaled) of `amount` base units of an asset."""
        return amount * self.price(asset_id, now) // self.config.precision

    def asset_amount_from_usd(self, asset_id: str, usd_amount: int, now: datetime) -> int:
        """Base units of an asset worth `usd_amount` (PRECISION scaled) at the current price."""
        return usd_amount * self.config.precision // self.price(asset_id, now)
