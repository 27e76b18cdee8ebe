"""Main entry point for the staleness filtering proxy."""
import argparse
import logging
import signal
import sys
import threading

from staleproxy.config import load_config, unpaired_port
from staleproxy.server import ListenerError, ListenerGroup


def setup_logging(log_level: str):
    """Setup logging configuration."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    # Reduce noise from some libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Re-expose Prometheus metrics, dropping series whose value stopped changing"
    )
    parser.add_argument(
        "ports",
        nargs="*",
        type=int,
        metavar="PORT",
        help="Pairs of upstream port and listen port"
    )
    parser.add_argument(
        "--config",
        "-c",
        help="Path to configuration YAML file"
    )
    parser.add_argument(
        "--threshold",
        type=int,
        help="Unchanged scrapes before a series is suppressed"
    )
    parser.add_argument(
        "--start-live",
        action="store_true",
        help="Show new series immediately instead of waiting for a first change"
    )
    parser.add_argument(
        "--upstream-timeout",
        type=float,
        help="Upstream fetch timeout in seconds"
    )
    parser.add_argument(
        "--log-level",
        help="Log level (DEBUG, INFO, WARNING, ERROR)"
    )
    return parser


def main(argv=None):
    """Main function."""
    # Non-integer ports make argparse exit with status 2
    args = build_parser().parse_args(argv)

    # Load configuration
    overrides = {}
    if args.threshold is not None:
        overrides.setdefault("staleness", {})["threshold"] = args.threshold
    if args.start_live:
        overrides.setdefault("staleness", {})["start_stale"] = False
    if args.upstream_timeout is not None:
        overrides.setdefault("upstream", {})["timeout_s"] = args.upstream_timeout
    if args.log_level:
        overrides.setdefault("global", {})["log_level"] = args.log_level

    try:
        config = load_config(args.config, args.ports, overrides)
    except Exception as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        sys.exit(1)

    # Setup logging
    setup_logging(config.global_.log_level)
    logger = logging.getLogger(__name__)

    logger.info("=" * 60)
    logger.info("staleproxy")
    logger.info("=" * 60)
    logger.info(f"Staleness threshold: {config.staleness.threshold} scrapes")
    logger.info(f"New series start {'stale' if config.staleness.start_stale else 'live'}")
    logger.info(f"Targets configured: {len(config.targets)}")
    for target in config.targets:
        logger.info(f"  :{target.upstream_port} -> :{target.listen_port}")

    unpaired = unpaired_port(args.ports)
    if unpaired is not None:
        logger.warning(f"Ignoring unpaired port {unpaired}")

    listeners = ListenerGroup(config)
    try:
        listeners.start()
    except ListenerError as e:
        logger.error(str(e))
        sys.exit(1)

    stop_event = threading.Event()

    # Setup signal handlers
    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        stop_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    logger.info("Press Ctrl+C to end")
    stop_event.wait()
    listeners.stop()


if __name__ == "__main__":
    main()
