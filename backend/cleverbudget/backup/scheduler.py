from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Optional

from ..config import BackupOptions

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    idle = "idle"
    running = "running"
    stopped = "stopped"


class BackupScheduler:
    """Runs the backup producer periodically on the event loop.

    The producer is blocking, so each run goes through a worker thread. Options
    are re-read every cycle, which lets automatic backups be switched on or off
    without a restart.
    """

    def __init__(
        self,
        run_backup: Callable[[], Any],
        options_provider: Callable[[], BackupOptions],
        disabled_poll_interval: timedelta = timedelta(minutes=5),
        fallback_interval: timedelta = timedelta(hours=1),
    ) -> None:
        self.run_backup = run_backup
        self.options_provider = options_provider
        self.disabled_poll_interval = disabled_poll_interval
        self.fallback_interval = fallback_interval
        self.state = SchedulerState.idle
        self.startup_backup_executed = False
        self.runs = 0
        self.failures = 0
        self.last_run_at: Optional[datetime] = None
        self._task: Optional[asyncio.Task] = None

    async def run(self) -> None:
        self.state = SchedulerState.running
        logger.info("Backup scheduler started")
        try:
            while True:
                options = self.options_provider()
                if not options.enable_automatic_backups:
                    logger.debug("Automatic backups disabled; checking again in %s", self.disabled_poll_interval)
                    await asyncio.sleep(self.disabled_poll_interval.total_seconds())
                    continue
                # Fires on the first enabled pass, even when enabling happens after start.
                if options.run_on_startup and not self.startup_backup_executed:
                    self.startup_backup_executed = True
                    await self.run_once()
                    continue
                await asyncio.sleep(options.effective_interval(self.fallback_interval).total_seconds())
                await self.run_once()
                self.startup_backup_executed = True
        except asyncio.CancelledError:
            logger.info("Backup scheduler stopped")
            raise
        finally:
            self.state = SchedulerState.stopped

    async def run_once(self) -> bool:
        try:
            await asyncio.to_thread(self.run_backup)
        except Exception:
            self.failures += 1
            logger.exception("Automatic backup failed")
            return False
        self.runs += 1
        self.last_run_at = datetime.now(timezone.utc)
        logger.info("Automatic backup completed")
        return True

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        if not self.is_running:
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        self.state = SchedulerState.stopped
