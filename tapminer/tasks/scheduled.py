import logging
import threading

import schedule

from tapminer.mining.distribution import DistributionStatus

logger = logging.getLogger(__name__)


class DistributionScheduler:
    """Periodically pays out closed sessions without waiting for a client trigger"""

    def __init__(self, orchestrator, interval=15, poll_interval=1):
        self.orchestrator = orchestrator
        self.interval = interval
        self.poll_interval = poll_interval
        self.scheduler = schedule.Scheduler()
        self._stop = threading.Event()
        self._thread = None

    def run_distribution(self):
        """One scheduled tick. Errors are logged so the loop keeps running."""
        try:
            outcome = self.orchestrator.attempt()
        except Exception as e:
            logger.exception(f"Scheduled distribution crashed: {str(e)}")
            return None

        if outcome.status == DistributionStatus.COMPLETED:
            logger.info(f"Scheduled distribution completed for session {outcome.session_id}")
        elif outcome.status == DistributionStatus.FAILED:
            logger.error(f"Scheduled distribution failed for session {outcome.session_id}: {outcome.message}")
        else:
            logger.debug(f"Scheduled distribution skipped: {outcome.message}")
        return outcome

    def start(self):
        """Start the background loop"""
        if self._thread and self._thread.is_alive():
            return self._thread

        self.scheduler.every(self.interval).seconds.do(self.run_distribution)
        self._stop.clear()

        def loop():
            while not self._stop.is_set():
                try:
                    self.scheduler.run_pending()
                except Exception as e:
                    logger.error(f"Scheduler error: {e}")
                self._stop.wait(self.poll_interval)

        self._thread = threading.Thread(target=loop, name='distribution-scheduler', daemon=True)
        self._thread.start()
        logger.info(f"Auto distribution every {self.interval}s")
        return self._thread

    def stop(self, timeout=5):
        self._stop.set()
        self.scheduler.clear()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None
