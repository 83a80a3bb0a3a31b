"""
Tests for the periodic job scheduler.
"""

import asyncio

import pytest

from letter_archive.services import JobScheduler


def test_jobs_run_repeatedly_until_stopped():
    calls = []

    async def scenario():
        scheduler = JobScheduler()
        scheduler.add_job("tick", 0.01, lambda: calls.append("tick"))
        await scheduler.start()
        assert scheduler.running
        await asyncio.sleep(0.1)
        await scheduler.stop()
        return scheduler

    scheduler = asyncio.run(scenario())

    assert not scheduler.running
    assert len(calls) >= 2
    assert 2 <= scheduler.run_count("tick") <= len(calls)


def test_failing_job_keeps_its_schedule():
    attempts = []

    def flaky():
        attempts.append(1)
        raise RuntimeError("boom")

    async def scenario():
        scheduler = JobScheduler()
        scheduler.add_job("flaky", 0.01, flaky)
        await scheduler.start()
        await asyncio.sleep(0.1)
        await scheduler.stop()

    asyncio.run(scenario())

    assert len(attempts) >= 2


def test_run_once():
    async def scenario():
        scheduler = JobScheduler()
        scheduler.add_job("answer", 3600, lambda: 42)
        result = await scheduler.run_once("answer")
        with pytest.raises(KeyError):
            await scheduler.run_once("missing")
        return result, scheduler.run_count("answer")

    assert asyncio.run(scenario()) == (42, 1)


def test_rejects_non_positive_interval():
    with pytest.raises(ValueError):
        JobScheduler().add_job("bad", 0, lambda: None)
