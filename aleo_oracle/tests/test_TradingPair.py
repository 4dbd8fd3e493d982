"""Unit tests for TradingPair."""

import pytest

from aleo_oracle.src.TradingPair import (
    DEFAULT_PAIRS,
    PAIR_IDS,
    TradingPair,
    get_pair_id,
    normalize_pair,
    scale_price,
)


class TestTradingPair:
    """Test TradingPair parsing and naming."""

    def test_basic(self) -> None:
        pair = TradingPair("eth", "usd")
        assert pair.base == "ETH"
        assert pair.quote == "USD"
        assert str(pair) == "ETH/USD"
        assert pair.slug == "ETH-USD"

    @pytest.mark.parametrize("raw", ["ETH/USD", "eth/usd", "ETH-USD", "eth-usd", "eth_usd", " eth/usd "])
    def test_from_string_spellings(self, raw: str) -> None:
        """All accepted spellings normalize to the canonical name."""
        assert str(TradingPair.from_string(raw)) == "ETH/USD"

    @pytest.mark.parametrize("raw", ["ETHUSD", "ETH/", "/USD", "A/B/C", ""])
    def test_from_string_invalid(self, raw: str) -> None:
        with pytest.raises(ValueError, match="Invalid pair format"):
            TradingPair.from_string(raw)

    def test_equality_and_hash(self) -> None:
        a = TradingPair("btc", "usd")
        b = TradingPair.from_string("BTC-USD")
        assert a == b
        assert len({a, b}) == 1

    def test_pair_id(self) -> None:
        assert TradingPair("eth", "usd").pair_id == 1
        assert TradingPair("sui", "usd").pair_id == 15
        assert TradingPair("doge", "usd").pair_id is None


class TestPairTable:
    """Test the static pair-id table."""

    def test_ids_unique_and_contiguous(self) -> None:
        assert sorted(PAIR_IDS.values()) == list(range(1, 16))

    def test_default_pairs_registered(self) -> None:
        assert all(get_pair_id(p) is not None for p in DEFAULT_PAIRS)
        assert len(DEFAULT_PAIRS) == 10

    def test_lookup(self) -> None:
        assert get_pair_id("ALEO/USD") == 3
        assert get_pair_id("aleo/usd") is None
        assert get_pair_id(normalize_pair("aleo-usd")) == 3


class TestScalePrice:
    """Test fixed-point scaling."""

    def test_eth_price(self) -> None:
        assert scale_price(3450.90) == 345090000000

    def test_whole_number(self) -> None:
        assert scale_price(1.0) == 100_000_000

    def test_small_price(self) -> None:
        assert scale_price(0.25) == 25_000_000

    def test_float_noise_rounded(self) -> None:
        assert scale_price(0.1 + 0.2) == 30_000_000

    def test_negative(self) -> None:
        assert scale_price(-1.0) == -100_000_000
