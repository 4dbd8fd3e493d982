"""
Aleo Price Oracle - Node and Relayer

This module provides the oracle pipeline and the ledger relayer:
- TradingPair: Canonical pair names and the on-chain pair-id table
- PriceAggregator: Median calculation with outlier detection
- CircuitBreaker: Per-pair halt on abnormal price moves
- PriceStore: Latest prices and bounded history with statistics
- TwapCalculator: Time-weighted average prices by window
- OracleSigner: Operator signatures over consensus prices
- OracleNode: Fetch, aggregate, guard, store and sign loop
- Relayer: Validated, deviation/heartbeat triggered ledger submissions
- fetchers: Modular price fetcher implementations
"""

from .CircuitBreaker import CircuitBreaker, CircuitBreakerConfig, CircuitBreakerState
from .ConsensusPrice import ConsensusPrice, PriceObservation
from .OracleNode import OracleNode, PriceUpdate
from .PriceAggregator import AggregationResult, PriceAggregator
from .PriceStore import PriceStore
from .Relayer import Relayer, RelayerConfig
from .Signer import OracleSigner, SignedPriceData, SignerConfigError
from .SourceManager import SourceManager, SourceStatus
from .TradingPair import PAIR_IDS, TradingPair
from .TwapCalculator import TwapCalculator, TwapResult

__all__ = [
    "AggregationResult",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerState",
    "ConsensusPrice",
    "OracleNode",
    "OracleSigner",
    "PAIR_IDS",
    "PriceAggregator",
    "PriceObservation",
    "PriceStore",
    "PriceUpdate",
    "Relayer",
    "RelayerConfig",
    "SignedPriceData",
    "SignerConfigError",
    "SourceManager",
    "SourceStatus",
    "TradingPair",
    "TwapCalculator",
    "TwapResult",
]
