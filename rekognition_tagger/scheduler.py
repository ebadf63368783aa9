"""
Deferred job queue and worker scheduler for the Rekognition Tagger.
"""

import asyncio
import json
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple
from croniter import croniter
import pytz
from sqlalchemy import delete, select

from .config import settings
from .logging import get_logger
from .normalizer import KEYWORDS_META_KEY
from .performance_monitor import performance_monitor
from .storage import MediaLibrary, ScheduledEvent
from .triggers import on_update_attachment_metadata


class JobQueue:
    """Single-event jobs stored in the database and run by hook name."""

    def __init__(self, library: MediaLibrary):
        self.logger = get_logger("job_queue")
        self.library = library
        self._callbacks: Dict[str, Callable[..., Any]] = {}

    def register(self, hook: str, callback: Callable[..., Any]) -> None:
        self._callbacks[hook] = callback

    def schedule_single_event(self, timestamp: float, hook: str, args: List[Any]) -> bool:
        """Queue one run of hook(*args) at timestamp.

        An identical event that is already pending is not queued again.
        """
        encoded_args = json.dumps(list(args))
        with self.library.session() as session:
            existing = session.scalar(
                select(ScheduledEvent.id).where(ScheduledEvent.hook == hook, ScheduledEvent.args == encoded_args)
            )
            if existing is not None:
                self.logger.debug(f"Event {hook}{encoded_args} already pending")
                return False
            session.add(ScheduledEvent(hook=hook, args=encoded_args, timestamp=timestamp))
            session.commit()

        performance_monitor.record_job_scheduled()
        return True

    def pending(self, hook: Optional[str] = None) -> List[Tuple[str, List[Any], float]]:
        stmt = select(ScheduledEvent).order_by(ScheduledEvent.timestamp, ScheduledEvent.id)
        if hook:
            stmt = stmt.where(ScheduledEvent.hook == hook)
        with self.library.session() as session:
            return [(event.hook, json.loads(event.args), event.timestamp) for event in session.scalars(stmt)]

    def _pop_due(self, now: float) -> Optional[Tuple[str, List[Any]]]:
        while True:
            with self.library.session() as session:
                event = session.scalar(
                    select(ScheduledEvent)
                    .where(ScheduledEvent.timestamp <= now)
                    .order_by(ScheduledEvent.timestamp, ScheduledEvent.id)
                    .limit(1)
                )
                if event is None:
                    return None
                hook, args = event.hook, json.loads(event.args)
                # Unscheduled before running; a failing job is not retried
                deleted = session.execute(delete(ScheduledEvent).where(ScheduledEvent.id == event.id)).rowcount
                session.commit()
            if deleted:
                return hook, args

    def run_due(self, now: Optional[float] = None, limit: Optional[int] = None) -> int:
        """Run due events in order, one at a time. Returns how many ran."""
        now = time.time() if now is None else now
        ran = 0
        while limit is None or ran < limit:
            event = self._pop_due(now)
            if event is None:
                break
            hook, args = event
            callback = self._callbacks.get(hook)
            if callback is None:
                self.logger.warning(f"⚠️  No callback registered for '{hook}', dropping event {args}")
                continue
            try:
                callback(*args)
            except Exception as e:
                self.logger.error(f"❌ Job {hook}{args} failed: {e}")
            performance_monitor.record_job_run()
            ran += 1
        return ran


class Scheduler:
    """Worker loop running queued jobs, with an optional cron-driven backfill."""

    def __init__(self, queue: JobQueue, enable_backfill: Optional[bool] = None):
        self.logger = get_logger("scheduler")
        self.queue = queue
        self.library = queue.library
        self.enable_backfill = settings.enable_scheduler if enable_backfill is None else enable_backfill
        self.running = False
        self.timezone = pytz.timezone(settings.timezone)
        self.last_run_time: Optional[datetime] = None

    def _get_next_run_time(self) -> datetime:
        """Get the next scheduled backfill time based on cron expression."""
        now = datetime.now(self.timezone)
        cron = croniter(settings.cron_schedule, now)
        return cron.get_next(datetime)

    def _should_run_now(self) -> bool:
        """Check if it's time to run the backfill based on the cron schedule."""
        now = datetime.now(self.timezone)

        # If we've never run, check if we're past the first scheduled time
        if self.last_run_time is None:
            cron = croniter(settings.cron_schedule, now)
            last_scheduled = cron.get_prev(datetime)
            time_since_scheduled = (now - last_scheduled).total_seconds()
            return time_since_scheduled <= 86400  # 24 hours

        # If we have run before, check if there's been a scheduled time since our last run
        cron = croniter(settings.cron_schedule, self.last_run_time)
        next_after_last_run = cron.get_next(datetime)
        return now >= next_after_last_run

    def enqueue_unenriched(self) -> int:
        """Queue every image attachment that has no stored keywords yet."""
        attachment_ids = self.library.list_attachment_ids_without_meta(KEYWORDS_META_KEY)
        queued = 0
        for attachment_id in attachment_ids:
            if on_update_attachment_metadata(self.library, self.queue, attachment_id):
                queued += 1
        self.logger.info(f"🔎 Backfill: {queued} of {len(attachment_ids)} unenriched attachments queued")
        return queued

    async def _run_backfill(self):
        try:
            self.last_run_time = datetime.now(self.timezone)
            await asyncio.to_thread(self.enqueue_unenriched)
            self.logger.info(f"⏭️  Next scheduled backfill: {self._get_next_run_time().isoformat()}")
        except Exception as e:
            self.logger.error(f"❌ Error during scheduled backfill: {e}")

    async def _scheduler_loop(self):
        """Main worker loop."""
        while self.running:
            try:
                if self.enable_backfill and self._should_run_now():
                    await self._run_backfill()

                ran = await asyncio.to_thread(self.queue.run_due)
                if ran:
                    self.logger.debug(f"Ran {ran} queued jobs")

                await asyncio.sleep(settings.job_poll_interval)

            except Exception as e:
                self.logger.error(f"Error in scheduler loop: {e}")
                await asyncio.sleep(settings.job_poll_interval)

    async def start(self):
        """Start the worker loop."""
        self.running = True

        if self.enable_backfill:
            next_run = self._get_next_run_time()
            self.logger.info(
                f"⏰ Worker started - Backfill schedule: {settings.cron_schedule}, "
                f"Timezone: {settings.timezone}, Next run: {next_run.isoformat()}"
            )
        else:
            self.logger.info(f"⏰ Worker started - polling every {settings.job_poll_interval:.0f}s")

        await self._scheduler_loop()

    def stop(self):
        """Stop the worker loop."""
        self.logger.info("Stopping scheduler")
        self.running = False
