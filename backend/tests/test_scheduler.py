import asyncio
import logging
from datetime import timedelta

from cleverbudget.backup.scheduler import BackupScheduler, SchedulerState
from cleverbudget.config import BackupOptions

FAST = timedelta(milliseconds=10)


async def _wait_until(predicate, timeout: float = 2.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout)


def _options(**overrides) -> BackupOptions:
    values = {"enable_automatic_backups": True, "interval": FAST, "run_on_startup": False}
    values.update(overrides)
    return BackupOptions(**values)


def test_failed_backup_does_not_stop_the_loop(caplog) -> None:
    calls: list[int] = []

    def flaky() -> None:
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("disk full")

    async def scenario() -> BackupScheduler:
        scheduler = BackupScheduler(flaky, _options)
        scheduler.start()
        await _wait_until(lambda: scheduler.runs >= 2)
        await scheduler.stop()
        return scheduler

    caplog.set_level(logging.ERROR, logger="cleverbudget.backup.scheduler")
    scheduler = asyncio.run(scenario())

    assert scheduler.failures == 1
    assert scheduler.runs >= 2
    assert scheduler.last_run_at is not None
    assert scheduler.state == SchedulerState.stopped
    assert "Automatic backup failed" in caplog.text


def test_startup_backup_runs_once() -> None:
    calls: list[int] = []
    options = _options(run_on_startup=True, interval=timedelta(hours=1))

    async def scenario() -> BackupScheduler:
        scheduler = BackupScheduler(lambda: calls.append(1), lambda: options)
        scheduler.start()
        await _wait_until(lambda: scheduler.runs == 1)
        await scheduler.stop()
        scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()
        return scheduler

    scheduler = asyncio.run(scenario())

    assert scheduler.startup_backup_executed is True
    assert len(calls) == 1


def test_disabled_scheduler_only_polls() -> None:
    calls: list[int] = []
    options = _options(enable_automatic_backups=False, run_on_startup=True)

    async def scenario() -> BackupScheduler:
        scheduler = BackupScheduler(lambda: calls.append(1), lambda: options, disabled_poll_interval=FAST)
        scheduler.start()
        await asyncio.sleep(0.1)
        assert scheduler.state == SchedulerState.running
        await scheduler.stop()
        return scheduler

    scheduler = asyncio.run(scenario())

    assert calls == []
    assert scheduler.startup_backup_executed is False


def test_enabling_after_start_runs_startup_backup() -> None:
    calls: list[int] = []
    reads: list[int] = []
    enabled = _options(run_on_startup=True, interval=timedelta(hours=1))
    disabled = _options(enable_automatic_backups=False, run_on_startup=True)

    def options_provider() -> BackupOptions:
        reads.append(1)
        return disabled if len(reads) <= 2 else enabled

    async def scenario() -> BackupScheduler:
        scheduler = BackupScheduler(lambda: calls.append(1), options_provider, disabled_poll_interval=FAST)
        scheduler.start()
        await _wait_until(lambda: scheduler.runs == 1)
        await asyncio.sleep(0.05)
        await scheduler.stop()
        return scheduler

    scheduler = asyncio.run(scenario())

    assert len(calls) == 1
    assert scheduler.startup_backup_executed is True


def test_interval_backup_consumes_startup_flag() -> None:
    options = _options(run_on_startup=False)

    async def scenario() -> BackupScheduler:
        scheduler = BackupScheduler(lambda: None, lambda: options)
        scheduler.start()
        await _wait_until(lambda: scheduler.runs >= 1)
        await scheduler.stop()
        return scheduler

    assert asyncio.run(scenario()).startup_backup_executed is True


def test_non_positive_interval_uses_fallback() -> None:
    calls: list[int] = []
    options = _options(interval=timedelta(0))

    async def scenario() -> BackupScheduler:
        scheduler = BackupScheduler(lambda: calls.append(1), lambda: options, fallback_interval=FAST)
        scheduler.start()
        await _wait_until(lambda: scheduler.runs >= 2)
        await scheduler.stop()
        return scheduler

    asyncio.run(scenario())

    assert len(calls) >= 2


def test_cancellation_interrupts_sleep_without_final_backup() -> None:
    calls: list[int] = []
    options = _options(interval=timedelta(hours=1))

    async def scenario() -> BackupScheduler:
        scheduler = BackupScheduler(lambda: calls.append(1), lambda: options)
        task = scheduler.start()
        await asyncio.sleep(0.02)
        await scheduler.stop()
        assert task.cancelled()
        return scheduler

    scheduler = asyncio.run(scenario())

    assert calls == []
    assert scheduler.runs == 0
    assert scheduler.state == SchedulerState.stopped
    assert not scheduler.is_running


def test_run_once_reports_failure() -> None:
    def broken() -> None:
        raise OSError("read-only file system")

    scheduler = BackupScheduler(broken, _options)

    assert asyncio.run(scheduler.run_once()) is False
    assert scheduler.failures == 1
    assert scheduler.runs == 0
