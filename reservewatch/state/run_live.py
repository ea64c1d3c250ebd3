"""CLI entrypoint to run a live ReserveWatch monitor."""
import argparse
import logging

from reservewatch.config import DEFAULT_PROJECT, POLL_INTERVAL_S, setup_logging, validate_config
from .monitor import ReserveMonitor

logger = logging.getLogger(__name__)


def main() -> None:
    parser = argparse.ArgumentParser(description="Run live ReserveWatch monitor")
    parser.add_argument(
        "--poll-seconds",
        type=float,
        default=POLL_INTERVAL_S,
        help="Polling interval seconds",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Evaluate a single tick and exit",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override LOG_LEVEL",
    )
    args = parser.parse_args()

    validate_config()
    setup_logging(args.log_level)

    monitor = ReserveMonitor(DEFAULT_PROJECT, poll_seconds=args.poll_seconds)

    # Register with the FastAPI router if available
    try:
        from . import status_api

        status_api.register_monitor(monitor, default=True)
    except ImportError:
        logger.debug("FastAPI not available; skipping status API registration")

    if args.once:
        tick = monitor.step()
        logger.info("Reasons: %s", sorted(r.value for r in tick.derived.reasons))
        return

    monitor.run()


if __name__ == "__main__":  # pragma: no cover
    main()
