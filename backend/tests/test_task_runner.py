"""
Tests for the background task runner
"""
import asyncio
import logging

import pytest

from arcana.core.errors import DuplicateJobError
from arcana.core.task_runner import BackgroundTaskRunner


@pytest.mark.asyncio
async def test_runs_job_and_forgets_it():
    runner = BackgroundTaskRunner()
    done = []

    async def job():
        done.append(True)

    task = runner.submit("job-1", job)
    await task
    await asyncio.sleep(0)

    assert done == [True]
    assert runner.active_count == 0
    assert not runner.is_running("job-1")


@pytest.mark.asyncio
async def test_duplicate_key_rejected_while_running():
    runner = BackgroundTaskRunner()
    release = asyncio.Event()

    async def job():
        await release.wait()

    runner.submit("job-1", job)
    with pytest.raises(DuplicateJobError):
        runner.submit("job-1", job)

    assert runner.is_running("job-1")
    release.set()
    await runner.shutdown()


@pytest.mark.asyncio
async def test_failure_is_logged(caplog):
    runner = BackgroundTaskRunner()

    async def job():
        raise RuntimeError("stage exploded")

    with caplog.at_level(logging.ERROR):
        task = runner.submit("job-1", job)
        await asyncio.gather(task, return_exceptions=True)
        await asyncio.sleep(0)

    assert any("stage exploded" in record.getMessage() for record in caplog.records)


@pytest.mark.asyncio
async def test_shutdown_cancels_after_timeout():
    runner = BackgroundTaskRunner()
    finished = asyncio.Event()

    async def quick():
        finished.set()

    async def stuck():
        await asyncio.sleep(60)

    runner.submit("quick", quick)
    slow = runner.submit("stuck", stuck)
    await runner.shutdown(timeout=0.05)

    assert finished.is_set()
    assert slow.cancelled()
    assert runner.active_count == 0
