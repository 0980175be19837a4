"""
Scheduler module for Pattern Alerts.

Uses APScheduler to run the background jobs:
- Every SWEEP_INTERVAL_MINUTES: sweep every enabled pattern
- Daily: purge ledger entries past the retention window

Can also be run manually via command line.
"""

import logging
from typing import Optional
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from .config import get_matching_config
from .pipeline import purge_expired_alerts, sweep_all_patterns

logger = logging.getLogger(__name__)


def run_sweep_job() -> None:
    """Wrapper for the sweep so one failed run never kills the scheduler."""
    logger.info("Starting scheduled sweep...")
    try:
        result = sweep_all_patterns()
        logger.info(
            f"Sweep found {result.new_matches} new matches, "
            f"notified {result.users_notified} users"
        )
    except Exception as e:
        logger.error(f"Sweep failed: {e}")


def create_scheduler(sweep_interval_minutes: Optional[int] = None) -> BlockingScheduler:
    """
    Create and configure the APScheduler.

    Jobs:
    1. sweep_patterns: Every N minutes - match patterns against upcoming auctions
    2. purge_alerts: Daily at 3am - drop ledger entries past retention

    Args:
        sweep_interval_minutes: Override for SWEEP_INTERVAL_MINUTES

    Returns:
        Configured BlockingScheduler
    """
    interval = sweep_interval_minutes or get_matching_config().sweep_interval_minutes
    scheduler = BlockingScheduler()

    scheduler.add_job(
        run_sweep_job,
        trigger=IntervalTrigger(minutes=interval),
        id="sweep_patterns",
        name="Sweep all enabled patterns",
        replace_existing=True,
        max_instances=1,
    )

    scheduler.add_job(
        purge_expired_alerts,
        trigger=CronTrigger(hour=3, minute=0),
        id="purge_alerts",
        name="Purge expired pattern alerts",
        replace_existing=True,
        max_instances=1,
    )

    logger.info(f"Scheduler configured with 2 jobs (sweep every {interval} min)")
    return scheduler


def start_scheduler() -> None:
    """Start the scheduler (blocking)."""
    scheduler = create_scheduler()

    logger.info("Starting Pattern Alerts scheduler...")
    logger.info("Press Ctrl+C to stop")

    logger.info("Running initial sweep...")
    run_sweep_job()

    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopped")


# =============================================================================
# CLI ENTRY POINT
# =============================================================================

def main():
    """CLI entry point for the scheduler."""
    import argparse

    parser = argparse.ArgumentParser(description="Pattern Alerts Scheduler")
    parser.add_argument(
        "--mode",
        choices=["schedule", "once", "purge"],
        default="schedule",
        help="Mode to run: schedule (continuous), once (single sweep), purge (retention cleanup)"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    if args.mode == "schedule":
        start_scheduler()
    elif args.mode == "once":
        run_sweep_job()
    elif args.mode == "purge":
        logger.info("Purging expired alerts...")
        purge_expired_alerts()


if __name__ == "__main__":
    main()
