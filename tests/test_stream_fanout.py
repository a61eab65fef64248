import asyncio
import logging

import pytest

from app.services.background_jobs import BackgroundJobRegistry
from app.services.stream_fanout import StreamFanout

from fakes import iter_chunks


async def _collect(stream):
    return [chunk async for chunk in stream]


# -----------------------------
# Fan-out
# -----------------------------
def test_each_consumer_sees_every_chunk():
    chunks = [b"a", b"bb", b"ccc"]

    async def scenario():
        fanout = StreamFanout(iter_chunks(chunks))
        first, second = fanout.consumers()
        producer = asyncio.create_task(fanout.pump())
        got = await asyncio.gather(_collect(first), _collect(second))
        await producer
        return got, fanout.chunks_read

    (first, second), read = asyncio.run(scenario())

    assert first == chunks
    assert second == chunks
    assert read == 3    # the source is read once, not once per consumer


def test_reading_one_copy_does_not_consume_the_other():
    chunks = [b"1", b"2", b"3", b"4"]

    async def scenario():
        fanout = StreamFanout(iter_chunks(chunks))
        first, second = fanout.consumers()
        producer = asyncio.create_task(fanout.pump())
        drained_first = await _collect(first)
        await producer
        drained_second = await _collect(second)
        return drained_first, drained_second

    drained_first, drained_second = asyncio.run(scenario())

    assert drained_first == chunks
    assert drained_second == chunks


def test_source_error_reaches_both_consumers():
    async def scenario():
        fanout = StreamFanout(iter_chunks([b"x"], error=RuntimeError("upstream reset")))
        results = []
        producer = asyncio.create_task(fanout.pump())
        for consumer in fanout.consumers():
            got = []
            with pytest.raises(RuntimeError, match="upstream reset"):
                async for chunk in consumer:
                    got.append(chunk)
            results.append(got)
        await producer
        return results

    assert asyncio.run(scenario()) == [[b"x"], [b"x"]]


def test_copies_must_be_positive():
    with pytest.raises(ValueError):
        StreamFanout(iter_chunks([]), copies=0)


# -----------------------------
# Background jobs
# -----------------------------
def test_drain_waits_for_spawned_jobs():
    done = []

    async def slow_job():
        await asyncio.sleep(0.05)
        done.append("slow")

    async def scenario():
        jobs = BackgroundJobRegistry()
        jobs.spawn(slow_job(), name="slow")
        pending_before = jobs.pending
        await jobs.drain()
        return jobs, pending_before

    jobs, pending_before = asyncio.run(scenario())

    assert pending_before == 1
    assert done == ["slow"]
    assert jobs.pending == 0
    assert jobs.completed == 1


def test_failed_job_is_logged_not_raised(caplog):
    async def broken_job():
        raise ValueError("disk full")

    async def scenario():
        jobs = BackgroundJobRegistry()
        jobs.spawn(broken_job(), name="persist:test")
        await jobs.drain()
        return jobs

    with caplog.at_level(logging.ERROR, logger="travel_agent"):
        jobs = asyncio.run(scenario())

    assert jobs.failed == 1
    assert jobs.pending == 0
    assert any("persist:test" in r.getMessage() and "disk full" in r.getMessage() for r in caplog.records)


def test_drain_timeout_gives_up_on_stuck_job():
    async def scenario():
        jobs = BackgroundJobRegistry()
        stuck = jobs.spawn(asyncio.sleep(10), name="stuck")
        await jobs.drain(timeout=0.05)
        still_pending = jobs.pending
        stuck.cancel()
        return still_pending

    assert asyncio.run(scenario()) == 1
