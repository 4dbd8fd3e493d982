"""TradingPair: Canonical trading pair naming and the ledger pair-id table.

Every component refers to a pair by its canonical name ``BASE/QUOTE`` in
upper case (e.g. ``ETH/USD``). The numeric pair id used by the on-chain
program is resolved through a single static table, which must stay in
lockstep with the pairs registered by ``price_oracle_v2.aleo``.

.. code-block:: python

    >>> pair = TradingPair.from_string("eth-usd")
    >>> str(pair)
    'ETH/USD'
    >>> pair.pair_id
    1
    >>> pair.slug
    'ETH-USD'
"""

from __future__ import annotations

# Static pair-id table shared with the on-chain program.
PAIR_IDS: dict[str, int] = {
    "ETH/USD": 1,
    "BTC/USD": 2,
    "ALEO/USD": 3,
    "SOL/USD": 4,
    "AVAX/USD": 5,
    "MATIC/USD": 6,
    "DOT/USD": 7,
    "ATOM/USD": 8,
    "LINK/USD": 9,
    "UNI/USD": 10,
    "NEAR/USD": 11,
    "ARB/USD": 12,
    "OP/USD": 13,
    "APT/USD": 14,
    "SUI/USD": 15,
}

# Pairs the oracle node tracks unless configured otherwise.
DEFAULT_PAIRS: list[str] = [
    "ETH/USD",
    "BTC/USD",
    "ALEO/USD",
    "SOL/USD",
    "AVAX/USD",
    "MATIC/USD",
    "DOT/USD",
    "ATOM/USD",
    "LINK/USD",
    "UNI/USD",
]

# Newly listed pairs are quoted by fewer exchanges.
DEFAULT_MIN_SOURCES_OVERRIDES: dict[str, int] = {
    "ALEO/USD": 2,
}

# Fixed-point scale used for every price sent to the ledger.
PRICE_DECIMALS = 8
PRICE_SCALE = 10**PRICE_DECIMALS


class TradingPair:
    """A base/quote trading pair in canonical form.

    :ivar base: Base currency symbol (upper case).
    :ivar quote: Quote currency symbol (upper case).
    """

    def __init__(self, base: str, quote: str) -> None:
        """Initialize a trading pair.

        :param base: Base currency symbol (e.g., "eth", "BTC").
        :param quote: Quote currency symbol (e.g., "usd").
        """
        self.base = base.strip().upper()
        self.quote = quote.strip().upper()

    def __str__(self) -> str:
        """Return the canonical ``BASE/QUOTE`` name."""
        return f"{self.base}/{self.quote}"

    def __repr__(self) -> str:
        """Return a developer-friendly string representation."""
        return f"TradingPair({self.base!r}, {self.quote!r})"

    def __hash__(self) -> int:
        """Return hash for use in dicts and sets."""
        return hash(str(self))

    def __eq__(self, other: object) -> bool:
        """Check equality based on the canonical name."""
        if not isinstance(other, TradingPair):
            return NotImplemented
        return str(self) == str(other)

    @property
    def slug(self) -> str:
        """URL form of the pair (``ETH-USD``)."""
        return f"{self.base}-{self.quote}"

    @property
    def pair_id(self) -> int | None:
        """Numeric id registered on-chain, or None if the pair is not listed."""
        return PAIR_IDS.get(str(self))

    @classmethod
    def from_string(cls, pair_str: str) -> TradingPair:
        """Parse a pair written as ``base/quote``, ``base-quote`` or ``base_quote``.

        :param pair_str: Pair string like "eth/usd", "ETH-USD" or "btc_usd".
        :returns: New TradingPair instance.
        :raises ValueError: If pair string format is invalid.

        .. code-block:: python

            >>> TradingPair.from_string("btc_usd").base
            'BTC'
        """
        normalized = pair_str.strip().replace("-", "/").replace("_", "/")
        parts = normalized.split("/")
        if len(parts) != 2 or not parts[0] or not parts[1]:
            raise ValueError(
                f"Invalid pair format '{pair_str}'. Expected 'BASE/QUOTE' (e.g., 'ETH/USD')"
            )
        return cls(parts[0], parts[1])


def normalize_pair(pair_str: str) -> str:
    """Return the canonical ``BASE/QUOTE`` name for any accepted spelling.

    :param pair_str: Pair string in any accepted form.
    :returns: Canonical pair name.
    :raises ValueError: If pair string format is invalid.
    """
    return str(TradingPair.from_string(pair_str))


def get_pair_id(pair: str) -> int | None:
    """Look up the on-chain id of a canonical pair name.

    :param pair: Canonical pair name (e.g., "ETH/USD").
    :returns: Pair id, or None if the pair is not registered.
    """
    return PAIR_IDS.get(pair)


def scale_price(price: float) -> int:
    """Convert a decimal price to the ledger's fixed-point integer (x10^8).

    :param price: Price as a float.
    :returns: Scaled integer price, rounded half away from zero.

    .. code-block:: python

        >>> scale_price(3450.90)
        345090000000
    """
    scaled = price * PRICE_SCALE
    return int(scaled + 0.5) if scaled >= 0 else -int(-scaled + 0.5)
