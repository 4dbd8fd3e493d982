#!/usr/bin/env python3
"""Aleo Price Oracle.

Two processes share this entry point:

- ``node``: fetches spot prices from multiple exchanges, aggregates them
  into one circuit-breaker guarded price per pair, signs it and serves it
  over HTTP.
- ``relayer``: polls the node and publishes validated prices and TWAPs to
  the ``price_oracle_v2.aleo`` program.

Every flag has an environment variable fallback; CLI flags win.
"""

import argparse
import asyncio
import logging
import os
import signal
import sys

import uvicorn

from .src.CircuitBreaker import CircuitBreaker, CircuitBreakerConfig
from .src.LedgerUtility import LedgerUtility
from .src.LedgerUtilityHttp import LedgerUtilityHttp
from .src.LedgerUtilityLocalnet import LedgerUtilityLocalnet
from .src.OracleClient import OracleClient
from .src.OracleNode import DEFAULT_PROBE_PERIOD, DEFAULT_STATS_PERIOD, OracleNode
from .src.PriceAggregator import PriceAggregator
from .src.Relayer import CONSENSUS_MODES, Relayer, RelayerConfig
from .src.Signer import SIGNER_BACKENDS, OracleSigner, SignerConfigError
from .src.TradingPair import DEFAULT_PAIRS, PAIR_IDS, normalize_pair
from .src.api import ApiSettings, create_app
from .src.fetchers import get_available_fetchers, get_fetcher

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

DEFAULT_RPC_URL = "https://api.explorer.provable.com/v1/testnet"
DEFAULT_EXECUTOR_URL = "http://localhost:3030"


def parse_base_urls() -> dict[str, str]:
    """Parse exchange API roots from environment variables.

    Looks for: BASE_URL_BINANCE, BASE_URL_KRAKEN, etc.

    :returns: Dict mapping source names to base URLs.
    """
    base_urls = {}
    prefix = "BASE_URL_"
    for key, value in os.environ.items():
        if key.startswith(prefix) and value:
            base_urls[key[len(prefix):].lower()] = value
    return base_urls


def parse_pairs(pairs_str: str) -> list[str]:
    """Parse comma-separated pairs into canonical names.

    :raises ValueError: If a pair is malformed.
    """
    return [normalize_pair(p) for p in pairs_str.split(",") if p.strip()]


def env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if not value:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def add_node_parser(subparsers) -> argparse.ArgumentParser:
    available_sources = get_available_fetchers()
    parser = subparsers.add_parser(
        "node",
        help="Run the oracle node (aggregation, circuit breaker, signing, HTTP API)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Available price sources:
  {', '.join(available_sources)}

Examples:
  # All default pairs from every exchange
  python -m aleo_oracle.main node

  # Two pairs from five exchanges, signed with an ECDSA key
  python -m aleo_oracle.main node --pairs eth/usd,btc/usd \\
      --sources binance,coinbase,kraken,okx,bybit --signer-backend ecdsa

Environment variables (CLI args take precedence):
  PAIRS, SOURCES, MIN_SOURCES, OUTLIER_THRESHOLD, FETCH_PERIOD,
  HEARTBEAT_INTERVAL, CB_ENABLED, CB_MAX_PRICE_CHANGE, CB_CHECK_WINDOW,
  CB_HALT_DURATION, SIGNER_BACKEND, OPERATOR_ADDRESS, OPERATOR_PRIVATE_KEY,
  ADMIN_API_KEY, HOST, PORT, BASE_URL_BINANCE, BASE_URL_KRAKEN, etc.
""",
    )

    parser.add_argument(
        "--pairs",
        type=str,
        help="Comma-separated trading pairs (e.g., eth/usd,btc/usd)",
        default=os.environ.get("PAIRS") or ",".join(DEFAULT_PAIRS),
    )
    parser.add_argument(
        "--sources",
        type=str,
        help=f"Comma-separated price sources. Available: {', '.join(available_sources)}",
        default=os.environ.get("SOURCES") or ",".join(available_sources),
    )
    parser.add_argument(
        "--min-sources",
        dest="min_sources",
        type=int,
        help="Minimum sources required for valid aggregation (default: 3)",
        default=int(os.environ.get("MIN_SOURCES") or "3"),
    )
    parser.add_argument(
        "--outlier-threshold",
        dest="outlier_threshold",
        type=float,
        help="Max relative deviation from the median before a source is dropped (default: 0.05)",
        default=float(os.environ.get("OUTLIER_THRESHOLD") or "0.05"),
    )
    parser.add_argument(
        "--fetch-period",
        dest="fetch_period",
        type=int,
        help="Seconds between fetch cycles (minimum: 1, default: 10)",
        default=int(os.environ.get("FETCH_PERIOD") or "10"),
    )
    parser.add_argument(
        "--heartbeat-interval",
        dest="heartbeat_interval",
        type=int,
        help="Price age in ms after which /price refreshes on demand (default: 300000)",
        default=int(os.environ.get("HEARTBEAT_INTERVAL") or "300000"),
    )
    parser.add_argument(
        "--fetch-timeout",
        dest="fetch_timeout",
        type=float,
        help="Timeout for one source's fetches in seconds (default: 10.0)",
        default=float(os.environ.get("FETCH_TIMEOUT") or "10.0"),
    )
    parser.add_argument(
        "--no-circuit-breaker",
        dest="cb_enabled",
        action="store_false",
        help="Disable the circuit breaker",
        default=env_bool("CB_ENABLED", True),
    )
    parser.add_argument(
        "--cb-max-price-change",
        dest="cb_max_price_change",
        type=float,
        help="Relative change that halts a pair (default: 0.10)",
        default=float(os.environ.get("CB_MAX_PRICE_CHANGE") or "0.10"),
    )
    parser.add_argument(
        "--cb-check-window",
        dest="cb_check_window",
        type=int,
        help="Max age in ms of the baseline price compared against (default: 60000)",
        default=int(os.environ.get("CB_CHECK_WINDOW") or "60000"),
    )
    parser.add_argument(
        "--cb-halt-duration",
        dest="cb_halt_duration",
        type=int,
        help="Halt duration in ms (default: 300000)",
        default=int(os.environ.get("CB_HALT_DURATION") or "300000"),
    )
    parser.add_argument(
        "--signer-backend",
        dest="signer_backend",
        choices=sorted(SIGNER_BACKENDS),
        help="Signature scheme (default: hash)",
        default=os.environ.get("SIGNER_BACKEND") or "hash",
    )
    parser.add_argument(
        "--operator-address",
        dest="operator_address",
        type=str,
        help="Operator identity attached to signed prices",
        default=os.environ.get("OPERATOR_ADDRESS") or "",
    )
    parser.add_argument(
        "--host",
        type=str,
        help="HTTP bind address (default: 0.0.0.0)",
        default=os.environ.get("HOST") or "0.0.0.0",
    )
    parser.add_argument(
        "--port",
        type=int,
        help="HTTP port (default: 3000)",
        default=int(os.environ.get("PORT") or "3000"),
    )
    return parser


def add_relayer_parser(subparsers) -> argparse.ArgumentParser:
    parser = subparsers.add_parser(
        "relayer",
        help="Run the relayer (node API to Aleo program)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Relay to testnet through a local executor service
  OPERATOR_ADDRESS=aleo1... python -m aleo_oracle.main relayer \\
      --oracle-node-url http://localhost:3000 --executor-url http://localhost:3030

  # Dry run against the in-memory ledger
  python -m aleo_oracle.main relayer --network localnet --operator-address aleo1test

Environment variables (CLI args take precedence):
  ORACLE_NODE_URL, ALEO_RPC_URL, EXECUTOR_URL, ORACLE_PROGRAM_ID, NETWORK,
  OPERATOR_ADDRESS, DEVIATION_THRESHOLD, HEARTBEAT_INTERVAL, POLL_INTERVAL,
  CONSENSUS_DEADLINE, BASE_FEE, PRIORITY_FEE, MIN_SOURCE_COUNT, CONSENSUS_MODE
""",
    )

    parser.add_argument(
        "--pairs",
        type=str,
        help="Comma-separated pairs to relay (default: every pair with an on-chain id)",
        default=os.environ.get("PAIRS") or ",".join(PAIR_IDS),
    )
    parser.add_argument(
        "--oracle-node-url",
        dest="oracle_node_url",
        type=str,
        help="Oracle node API root (default: http://localhost:3000)",
        default=os.environ.get("ORACLE_NODE_URL") or "http://localhost:3000",
    )
    parser.add_argument(
        "--network",
        type=str,
        help="Aleo network (testnet, mainnet, localnet)",
        default=os.environ.get("NETWORK") or "testnet",
    )
    parser.add_argument(
        "--rpc-url",
        dest="rpc_url",
        type=str,
        help=f"Aleo REST API root (default: {DEFAULT_RPC_URL})",
        default=os.environ.get("ALEO_RPC_URL") or DEFAULT_RPC_URL,
    )
    parser.add_argument(
        "--executor-url",
        dest="executor_url",
        type=str,
        help=f"Transition executor service root (default: {DEFAULT_EXECUTOR_URL})",
        default=os.environ.get("EXECUTOR_URL") or DEFAULT_EXECUTOR_URL,
    )
    parser.add_argument(
        "--program-id",
        dest="program_id",
        type=str,
        help="Oracle program id (default: price_oracle_v2.aleo)",
        default=os.environ.get("ORACLE_PROGRAM_ID") or "price_oracle_v2.aleo",
    )
    parser.add_argument(
        "--operator-address",
        dest="operator_address",
        type=str,
        help="Operator address paying for transactions",
        default=os.environ.get("OPERATOR_ADDRESS") or "",
    )
    parser.add_argument(
        "--deviation-threshold",
        dest="deviation_threshold",
        type=float,
        help="Relative price move that triggers an update (default: 0.005)",
        default=float(os.environ.get("DEVIATION_THRESHOLD") or "0.005"),
    )
    parser.add_argument(
        "--heartbeat-interval",
        dest="heartbeat_interval",
        type=int,
        help="Max ms between updates of one pair (default: 300000)",
        default=int(os.environ.get("HEARTBEAT_INTERVAL") or "300000"),
    )
    parser.add_argument(
        "--poll-interval",
        dest="poll_interval",
        type=int,
        help="Ms between relayer cycles (minimum: 1000, default: 30000)",
        default=int(os.environ.get("POLL_INTERVAL") or "30000"),
    )
    parser.add_argument(
        "--consensus-deadline",
        dest="consensus_deadline",
        type=int,
        help="Consensus round length in ms (default: 60000)",
        default=int(os.environ.get("CONSENSUS_DEADLINE") or "60000"),
    )
    parser.add_argument(
        "--base-fee",
        dest="base_fee",
        type=int,
        help="Base fee in microcredits (default: 500000)",
        default=int(os.environ.get("BASE_FEE") or "500000"),
    )
    parser.add_argument(
        "--priority-fee",
        dest="priority_fee",
        type=int,
        help="Priority fee in microcredits (default: 100000)",
        default=int(os.environ.get("PRIORITY_FEE") or "100000"),
    )
    parser.add_argument(
        "--min-source-count",
        dest="min_source_count",
        type=int,
        help="Minimum sources behind a relayed price (default: 3)",
        default=int(os.environ.get("MIN_SOURCE_COUNT") or "3"),
    )
    parser.add_argument(
        "--consensus-mode",
        dest="consensus_mode",
        choices=CONSENSUS_MODES,
        help="Submission mode (default: simple)",
        default=os.environ.get("CONSENSUS_MODE") or "simple",
    )
    return parser


def run_node(args: argparse.Namespace, parser: argparse.ArgumentParser) -> None:
    """Build the oracle node and serve its API until interrupted."""
    available_sources = get_available_fetchers()

    if args.fetch_period < 1:
        parser.error("--fetch-period must be at least 1 second")

    if args.min_sources < 1:
        parser.error("--min-sources must be at least 1")

    try:
        pairs = parse_pairs(args.pairs)
    except ValueError as e:
        parser.error(str(e))
    sources = [s.strip().lower() for s in args.sources.split(",") if s.strip()]

    if not pairs:
        parser.error("At least one trading pair must be specified")

    if not sources:
        parser.error("At least one source must be specified")

    invalid_sources = [s for s in sources if s not in available_sources]
    if invalid_sources:
        parser.error(
            f"Unknown sources: {invalid_sources}. "
            f"Available: {', '.join(available_sources)}"
        )

    base_urls = parse_base_urls()
    cb_config = CircuitBreakerConfig(
        max_price_change_percent=args.cb_max_price_change,
        check_window_ms=args.cb_check_window,
        halt_duration_ms=args.cb_halt_duration,
        enabled=args.cb_enabled,
    )

    # Log configuration
    logger.info("=" * 60)
    logger.info("Aleo Price Oracle - Node")
    logger.info("=" * 60)
    logger.info(f"Trading Pairs:     {', '.join(pairs)}")
    logger.info(f"Sources:           {', '.join(sources)}")
    logger.info(f"Min Sources:       {args.min_sources}")
    logger.info(f"Outlier Threshold: {args.outlier_threshold * 100:g}%")
    logger.info(f"Fetch Period:      {args.fetch_period}s")
    logger.info(f"Heartbeat:         {args.heartbeat_interval}ms")
    if cb_config.enabled:
        logger.info(
            f"Circuit Breaker:   {cb_config.max_price_change_percent * 100:g}% / "
            f"{cb_config.check_window_ms}ms window / {cb_config.halt_duration_ms}ms halt"
        )
    else:
        logger.info("Circuit Breaker:   disabled")
    logger.info(f"Signer Backend:    {args.signer_backend}")
    if base_urls:
        logger.info(f"Base URLs:         {', '.join(f'{k}={v}' for k, v in base_urls.items())}")
    logger.info(f"Listening:         {args.host}:{args.port}")
    logger.info("=" * 60)

    try:
        signer = OracleSigner(
            operator_address=args.operator_address,
            private_key=os.environ.get("OPERATOR_PRIVATE_KEY"),
            backend=args.signer_backend,
        )
        fetchers = {
            name: get_fetcher(name, base_url=base_urls.get(name)) for name in sources
        }
        node = OracleNode(
            pairs=pairs,
            fetchers=fetchers,
            aggregator=PriceAggregator(
                min_sources=args.min_sources,
                outlier_threshold=args.outlier_threshold,
            ),
            circuit_breaker=CircuitBreaker(cb_config),
            signer=signer,
            fetch_timeout=args.fetch_timeout,
        )
    except (SignerConfigError, ValueError) as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    scheduler = node.build_scheduler(
        fetch_period=args.fetch_period,
        stats_period=DEFAULT_STATS_PERIOD,
        probe_period=DEFAULT_PROBE_PERIOD,
    )
    app = create_app(
        node,
        scheduler=scheduler,
        admin_api_key=os.environ.get("ADMIN_API_KEY") or None,
        settings=ApiSettings(
            fetch_interval_ms=args.fetch_period * 1000,
            heartbeat_interval_ms=args.heartbeat_interval,
        ),
    )
    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        log_level="debug" if args.verbose else "info",
    )


async def serve_relayer(relayer: Relayer) -> None:
    """Run the relayer's jobs until SIGINT or SIGTERM."""
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    if not await relayer.health_check():
        logger.warning("Startup health check failed, continuing anyway")

    scheduler = relayer.build_scheduler()
    scheduler.start()
    try:
        await stop.wait()
    finally:
        logger.info("Shutting down...")
        await scheduler.stop()
        relayer.log_stats()
        await relayer.close()


def run_relayer(args: argparse.Namespace, parser: argparse.ArgumentParser) -> None:
    """Build the relayer and run it until interrupted."""
    if args.poll_interval < 1000:
        parser.error("--poll-interval must be at least 1000 ms")

    try:
        pairs = parse_pairs(args.pairs)
    except ValueError as e:
        parser.error(str(e))

    config = RelayerConfig(
        operator_address=args.operator_address,
        pairs=pairs,
        program_id=args.program_id,
        deviation_threshold=args.deviation_threshold,
        heartbeat_interval_ms=args.heartbeat_interval,
        poll_interval_ms=args.poll_interval,
        consensus_deadline_ms=args.consensus_deadline,
        base_fee=args.base_fee,
        priority_fee=args.priority_fee,
        min_source_count=args.min_source_count,
        consensus_mode=args.consensus_mode,
    )
    try:
        config.validate()
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    ledger: LedgerUtility
    if args.network == "localnet":
        ledger = LedgerUtilityLocalnet(program_id=config.program_id)
    else:
        ledger = LedgerUtilityHttp(
            rpc_url=args.rpc_url,
            executor_url=args.executor_url,
            program_id=config.program_id,
            base_fee=config.base_fee,
            priority_fee=config.priority_fee,
        )

    # Log configuration
    logger.info("=" * 60)
    logger.info("Aleo Price Oracle - Relayer")
    logger.info("=" * 60)
    logger.info(f"Network:           {args.network}")
    logger.info(f"Oracle Node:       {args.oracle_node_url}")
    logger.info(f"Program:           {config.program_id}")
    logger.info(f"Operator:          {config.operator_address}")
    logger.info(f"Pairs:             {len(config.pairs)}")
    logger.info(f"Deviation:         {config.deviation_threshold * 100:g}%")
    logger.info(f"Heartbeat:         {config.heartbeat_interval_ms}ms")
    logger.info(f"Poll Interval:     {config.poll_interval_ms}ms")
    logger.info(f"Consensus Mode:    {config.consensus_mode}")
    logger.info(f"Min Sources:       {config.min_source_count}")
    logger.info(f"Fee:               {config.transaction_fee} microcredits")
    logger.info("=" * 60)

    relayer = Relayer(config, OracleClient(args.oracle_node_url), ledger)
    try:
        asyncio.run(serve_relayer(relayer))
    except KeyboardInterrupt:
        logger.info("Shutting down...")


def main() -> None:
    """Main entry point for the Aleo Price Oracle CLI."""
    parser = argparse.ArgumentParser(
        description="Aleo Price Oracle: Aggregated multi-source price feeds for Aleo",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    node_parser = add_node_parser(subparsers)
    relayer_parser = add_relayer_parser(subparsers)

    args = parser.parse_args()

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.command == "node":
        run_node(args, node_parser)
    else:
        run_relayer(args, relayer_parser)


if __name__ == "__main__":
    main()
