"""Price records passed along the oracle pipeline.

A :class:`PriceObservation` is one exchange's quote and lives for a single
fetch cycle. A :class:`ConsensusPrice` is the aggregated result of a cycle;
it is immutable and superseded by the next cycle's result rather than
mutated.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .TradingPair import scale_price


@dataclass(frozen=True)
class PriceObservation:
    """A single exchange quote.

    :ivar pair: Canonical pair name (e.g., "ETH/USD").
    :ivar price: Quoted price.
    :ivar timestamp: Observation time in milliseconds since epoch.
    :ivar source: Name of the exchange that produced the quote.
    """

    pair: str
    price: float
    timestamp: int
    source: str


@dataclass(frozen=True)
class ConsensusPrice:
    """Aggregated price for one pair and one cycle.

    :ivar pair: Canonical pair name.
    :ivar price: Consensus price (median of the filtered observations).
    :ivar scaled_price: Price as a fixed-point integer (x10^8).
    :ivar timestamp: Aggregation time in milliseconds since epoch.
    :ivar sources: Names of the exchanges whose quote survived filtering.
    """

    pair: str
    price: float
    scaled_price: int
    timestamp: int
    sources: tuple[str, ...] = field(default_factory=tuple)

    @property
    def source_count(self) -> int:
        """Number of contributing sources."""
        return len(self.sources)

    @classmethod
    def create(
        cls, pair: str, price: float, timestamp: int, sources: list[str] | tuple[str, ...]
    ) -> ConsensusPrice:
        """Build a consensus price, scaling the decimal price once.

        :param pair: Canonical pair name.
        :param price: Consensus price.
        :param timestamp: Aggregation time in milliseconds.
        :param sources: Contributing source names, in contribution order.
        :returns: New ConsensusPrice.
        """
        return cls(
            pair=pair,
            price=price,
            scaled_price=scale_price(price),
            timestamp=timestamp,
            sources=tuple(sources),
        )

    def to_dict(self) -> dict:
        """Serialize to the JSON shape served by the HTTP API."""
        return {
            "pair": self.pair,
            "price": self.price,
            "scaledPrice": str(self.scaled_price),
            "timestamp": self.timestamp,
            "sources": list(self.sources),
            "sourceCount": self.source_count,
        }


@dataclass(frozen=True)
class PriceHistoryEntry:
    """A consensus price retained by the store, with its attribution.

    :ivar price: The stored consensus price.
    :ivar signature: Signature attached when the price was signed (may be empty).
    :ivar operator_address: Operator identity that signed the price.
    """

    price: ConsensusPrice
    signature: str = ""
    operator_address: str = ""

    @property
    def timestamp(self) -> int:
        return self.price.timestamp

    @property
    def value(self) -> float:
        return self.price.price

    def to_dict(self) -> dict:
        data = self.price.to_dict()
        data["signature"] = self.signature
        data["operatorAddress"] = self.operator_address
        return data
