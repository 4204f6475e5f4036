"""
Automatic payout worker.

Sweeps every profile with an automatic payout schedule at a fixed interval
and pays out those whose balance reached their threshold.
"""
import argparse
import asyncio
import signal
from typing import Any, Dict

import structlog

from creator_payouts.config import load_settings_or_exit
from creator_payouts.core.eligibility import Ineligible
from creator_payouts.core.errors import PayoutSystemError
from creator_payouts.core.service import PayoutService
from creator_payouts.database.connection import close_db, get_session_factory
from creator_payouts.integrations.paypal_client import PayPalPayoutClient
from creator_payouts.monitoring.logging import setup_logging

logger = structlog.get_logger(__name__)


async def run_payout_sweep(service: PayoutService) -> Dict[str, int]:
    """
    Run one sweep over automatic schedules.

    A failure for one profile is logged and the sweep moves on.

    Returns:
        Dict[str, int]: Count of profiles per outcome
    """
    profile_ids = await service.automatic_profile_ids()
    logger.info("payout_sweep_started", profiles=len(profile_ids))

    summary = {"submitted": 0, "skipped": 0, "failed": 0}
    for profile_id in profile_ids:
        try:
            result = await service.evaluate_and_execute_payout(profile_id, bypass_threshold=False)
        except Exception as e:
            summary["failed"] += 1
            logger.error("payout_sweep_profile_error", profile_id=profile_id, error=str(e))
            continue

        if isinstance(result, Ineligible):
            summary["skipped"] += 1
            logger.debug(
                "payout_sweep_profile_skipped",
                profile_id=profile_id,
                reason=result.reason.value,
            )
        elif isinstance(result, PayoutSystemError):
            summary["failed"] += 1
            logger.warning(
                "payout_sweep_profile_failed",
                profile_id=profile_id,
                error_code=result.error_code,
                error=result.message,
            )
        else:
            summary["submitted"] += 1

    logger.info("payout_sweep_completed", **summary)
    return summary


async def start_payout_worker(once: bool = False) -> None:
    """
    Start the payout worker.

    Args:
        once: Run a single sweep and exit
    """
    settings = load_settings_or_exit()
    setup_logging(settings)

    interval = settings.payout_sweep_interval_seconds
    logger.info("payout_worker_starting", interval_seconds=interval, once=once)

    payout_client = PayPalPayoutClient(settings)
    service = PayoutService(settings, get_session_factory(), payout_client)

    running = True

    def signal_handler(sig: int, frame: Any) -> None:
        nonlocal running
        logger.info("payout_worker_shutdown_signal_received", signal=sig)
        running = False

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        while running:
            try:
                await run_payout_sweep(service)
            except Exception as e:
                logger.error("payout_sweep_error", error=str(e))
                # Keep running; the next sweep retries

            if once:
                break

            # Wait for the next sweep (with periodic checks for shutdown signal)
            remaining = interval
            while remaining > 0 and running:
                sleep_time = min(remaining, 5)
                await asyncio.sleep(sleep_time)
                remaining -= sleep_time
    finally:
        await service.close()
        await close_db()
        logger.info("payout_worker_stopped")


def main() -> None:
    """Command-line entry point."""
    parser = argparse.ArgumentParser(description="Automatic payout worker")
    parser.add_argument("--once", action="store_true", help="Run a single sweep and exit")
    args = parser.parse_args()

    asyncio.run(start_payout_worker(once=args.once))


if __name__ == "__main__":
    main()
