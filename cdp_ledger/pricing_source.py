"""
pricing_source.py - Price feed infrastructure for collateral valuation

Provides the feed-side half of the price oracle: sources that answer "what is
the latest reading of this feed at this time", in the feed's native integer
precision. The OracleAdapter turns readings into engine fixed point.

Classes:
- PriceReading: One feed answer with its precision and publication time
- PriceSource: Protocol defining the feed interface
- StaticPriceSource: Time-independent answers, updated in place
- TimeSeriesPriceSource: Time-varying answers with historical data

All answers are quoted in USD.
"""

from __future__ import annotations
from bisect import bisect_right
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Hashable, List, Optional, Protocol, Tuple, runtime_checkable

from .core import DEFAULT_ORACLE_DECIMALS


@dataclass(frozen=True, slots=True)
class PriceReading:
    """
    A single feed answer.

    Attributes:
        answer: USD price as an integer with `decimals` implied decimals
            (2000.00 with 8 decimals is 200_000_000_000)
        decimals: Native precision of the feed
        updated_at: When the feed published this answer, None if unknown
    """
    answer: int
    decimals: int = DEFAULT_ORACLE_DECIMALS
    updated_at: Optional[datetime] = None


@runtime_checkable
class PriceSource(Protocol):
    """
    Protocol for price feeds.

    Implementations return the most recent reading of a feed at or before the
    requested timestamp, or None when the feed has nothing to offer.
    """

    def latest_reading(self, feed: Hashable, timestamp: datetime) -> Optional[PriceReading]:
        """Get the latest reading of a feed as of a timestamp."""
        ...


class StaticPriceSource:
    """
    Price source with static answers (time-independent).

    Readings keep the publication time given when they were set, so staleness
    can still be exercised by moving the engine clock.
    """

    def __init__(
        self,
        answers: Optional[Dict[Hashable, int]] = None,
        decimals: int = DEFAULT_ORACLE_DECIMALS,
        updated_at: Optional[datetime] = None,
    ):
        """
        Initialize with a static answer map.

        Args:
            answers: Feed handle -> answer in native precision
            decimals: Native precision shared by all feeds of this source
            updated_at: Publication time recorded on every initial answer
        """
        self.decimals = decimals
        self.readings: Dict[Hashable, PriceReading] = {}
        for feed, answer in (answers or {}).items():
            self.readings[feed] = PriceReading(answer, decimals, updated_at)

    def latest_reading(self, feed: Hashable, timestamp: datetime) -> Optional[PriceReading]:
        """Get the static reading (timestamp is ignored)."""
        return self.readings.get(feed)

    def update_price(self, feed: Hashable, answer: int, updated_at: Optional[datetime] = None):
        """Replace the answer of a feed."""
        self.readings[feed] = PriceReading(answer, self.decimals, updated_at)

    def remove_price(self, feed: Hashable):
        """Make a feed return no reading."""
        self.readings.pop(feed, None)

    def __repr__(self):
        return f"StaticPriceSource({len(self.readings)} feeds, decimals={self.decimals})"


class TimeSeriesPriceSource:
    """
    Price source with time-varying answers.

    Stores historical answers per feed and returns the most recent one at or
    before the requested timestamp, stamped with its publication time.
    """

    def __init__(
        self,
        price_paths: Optional[Dict[Hashable, List[Tuple[datetime, int]]]] = None,
        decimals: int = DEFAULT_ORACLE_DECIMALS,
    ):
        """
        Initialize price source.

        Args:
            price_paths: Optional feed -> list of (timestamp, answer) tuples
            decimals: Native precision shared by all feeds of this source

        Example:
            source = TimeSeriesPriceSource({
                'ETH/USD': [(t0, 2000_00000000), (t1, 1500_00000000)],
            })
        """
        self.decimals = decimals
        self.price_history: Dict[Hashable, List[Tuple[datetime, int]]] = {}

        if price_paths:
            for feed, path in price_paths.items():
                if not path:
                    continue
                self.price_history[feed] = sorted(path, key=lambda x: x[0])

    def add_price(self, feed: Hashable, timestamp: datetime, answer: int):
        """Add an answer published at a specific time."""
        if feed not in self.price_history:
            self.price_history[feed] = []
        self.price_history[feed].append((timestamp, answer))
        self.price_history[feed].sort(key=lambda x: x[0])

    def latest_reading(self, feed: Hashable, timestamp: datetime) -> Optional[PriceReading]:
        """
        Get the latest reading at or before the timestamp.

        Uses binary search for O(log n) lookup. Returns None when the feed is
        unknown or has no answer before the timestamp.
        """
        history = self.price_history.get(feed)
        if not history:
            return None

        timestamps = [ts for ts, _ in history]
        idx = bisect_right(timestamps, timestamp)
        if idx == 0:
            return None

        published, answer = history[idx - 1]
        return PriceReading(answer, self.decimals, published)

    def __repr__(self):
        total_observations = sum(len(history) for history in self.price_history.values())
        return (
            f"TimeSeriesPriceSource({len(self.price_history)} feeds, "
            f"{total_observations} observations)"
        )
