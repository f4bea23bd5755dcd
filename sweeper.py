"""
Expiry sweeper

Background job that periodically cancels PENDING appointments whose
confirmation window has passed and releases their slot capacity.
"""

import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from booking import BookingCoordinator

logger = logging.getLogger(__name__)

JOB_ID = "expire_pending_appointments"


class ExpirySweeper:
    """
    Runs ``BookingCoordinator.expire_sweep`` on a fixed interval.

    Several sweepers (one per process) may run at once: each appointment is
    cancelled under its own row lock, so a second sweeper finds nothing left
    to do for it.
    """

    def __init__(self, coordinator: BookingCoordinator, interval_seconds: int = 60):
        self.coordinator = coordinator
        self.interval_seconds = interval_seconds
        self.scheduler = BackgroundScheduler(timezone="UTC")

        logger.info(f"Initialized ExpirySweeper with {interval_seconds} second interval")

    def run_once(self) -> int:
        """
        Run one sweep. Errors are logged and the next tick tries again.

        Returns:
            Number of appointments cancelled, 0 on failure
        """
        try:
            cancelled = self.coordinator.expire_sweep()
            if cancelled:
                logger.info(f"Expiry sweep cancelled {cancelled} appointments")
            return cancelled
        except Exception as e:
            logger.exception(f"Error in expiry sweep: {str(e)}")
            return 0

    def start(self):
        if self.scheduler.running:
            logger.warning("Expiry sweeper is already running")
            return
        self.scheduler.add_job(
            self.run_once,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=JOB_ID,
            name="Cancel expired pending appointments",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info("Expiry sweeper started")

    def shutdown(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Expiry sweeper stopped")

    @property
    def is_running(self) -> bool:
        return self.scheduler.running
