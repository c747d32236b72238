"""Periodic stuck-reservation sweep.

Rolls back interview offers left in ``scheduling`` past the lock timeout
and releases abandoned calendar slot claims. Run it alongside the app:

    python sweep_reservations.py --interval 60
"""

import argparse
import logging
import time

from services.bootstrap import ServiceContainer, build_services
from services.logging_setup import setup_logging
from services.settings import load_settings

logger = logging.getLogger("recruiting")


def run_sweep(services: ServiceContainer) -> int:
    """Run one sweep; returns the number of reservations that couldn't be reclaimed."""
    report = services.coordinator.reclaim_stuck_reservations()
    logger.info(
        "Sweep: %d reclaimed, %d failed, %d slot locks released",
        len(report.reclaimed), len(report.failed), report.locks_released,
    )
    return len(report.failed)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Reclaim stuck interview reservations")
    parser.add_argument(
        "--interval", type=float, default=0,
        help="Seconds between sweeps (0 = run once and exit)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    settings = load_settings()
    setup_logging(verbose=args.verbose, log_file=settings.log_file, level=settings.log_level)
    services = build_services(settings)

    if args.interval <= 0:
        return 1 if run_sweep(services) else 0

    logger.info("Sweeping every %.0f seconds", args.interval)
    try:
        while True:
            run_sweep(services)
            time.sleep(args.interval)
    except KeyboardInterrupt:
        logger.info("Sweeper stopped")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
