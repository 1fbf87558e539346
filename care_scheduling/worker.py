"""Background worker: daily snapshot roll-over and cache reconciliation"""

import asyncio
import signal
import sys
from datetime import datetime, timezone
from typing import Dict

import structlog
from care_scheduling.config import settings
from care_scheduling.database import SessionLocal
from care_scheduling.models import BookabilitySnapshot
from care_scheduling.services.availability import local_today
from care_scheduling.services.bookability import BookabilityService
from care_scheduling.services.reconciliation import ReconciliationService

logger = structlog.get_logger()


class Worker:
    """Keeps materialized bookability current and watches it for divergence"""

    def __init__(self):
        self.running = True
        self.tasks: Dict[str, asyncio.Task] = {}

    async def start(self):
        """Start the worker"""
        logger.info("Starting Care Scheduling worker")

        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        self.tasks["reconciliation"] = asyncio.create_task(self._reconciliation_loop())

        await asyncio.gather(*self.tasks.values(), return_exceptions=True)

    async def _reconciliation_loop(self):
        logger.info("Starting reconciliation loop", interval_seconds=settings.reconciliation_interval_seconds)

        while self.running:
            try:
                await asyncio.to_thread(self.run_once)
            except Exception as e:
                logger.error("Error in reconciliation loop", error=str(e), exc_info=True)
            await asyncio.sleep(settings.reconciliation_interval_seconds)

    def run_once(self, now: datetime = None) -> Dict:
        """Roll snapshots forward to today, refresh stale ones, then reconcile a sample"""
        today = local_today(now or datetime.now(timezone.utc))
        db = SessionLocal()
        try:
            outdated = [
                row[0] for row in db.query(BookabilitySnapshot.payer_id).filter(
                    BookabilitySnapshot.is_current.is_(True),
                    (BookabilitySnapshot.as_of_date < today) | BookabilitySnapshot.is_stale.is_(True),
                ).all()
            ]
            service = BookabilityService(db)
            refreshed = 0
            errors = []
            for payer_id in outdated:
                result = service.refresh(payer_id=payer_id, as_of=today)
                refreshed += result["payers_refreshed"]
                errors.extend(result["errors"])

            summary = ReconciliationService(db).check()
            if summary["diverged"]:
                logger.error(
                    "Bookability cache divergence detected",
                    diverged=summary["diverged"],
                    payers=[r["payer_id"] for r in summary["results"] if r["status"] == "diverged"],
                )
            logger.info("Worker pass completed", as_of=today, refreshed=refreshed,
                        refresh_errors=len(errors), diverged=summary["diverged"])
            return {"refreshed": refreshed, "errors": errors, "reconciliation": summary}
        finally:
            db.close()

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals"""
        logger.info("Received shutdown signal", signal=signum)
        self.running = False

        for task_name, task in self.tasks.items():
            if not task.done():
                logger.info("Cancelling task", task_name=task_name)
                task.cancel()


async def main():
    """Main worker entry point"""
    worker = Worker()
    await worker.start()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Worker shutdown by user")
    except Exception as e:
        logger.error("Worker failed", error=str(e), exc_info=True)
        sys.exit(1)
