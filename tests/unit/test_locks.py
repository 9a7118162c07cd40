import asyncio

import pytest

from linkforge.services.locks import SubmissionBusy, SubmissionLocks


@pytest.mark.asyncio
async def test_hold_marks_submission_busy():
    locks = SubmissionLocks()
    async with locks.hold("a"):
        assert locks.is_held("a")
        assert not locks.is_held("b")
    assert not locks.is_held("a")


@pytest.mark.asyncio
async def test_second_holder_is_rejected():
    locks = SubmissionLocks()
    async with locks.hold("a"):
        with pytest.raises(SubmissionBusy):
            async with locks.hold("a"):
                pass


@pytest.mark.asyncio
async def test_waiting_holder_runs_after_release():
    locks = SubmissionLocks()
    order = []

    async def first():
        async with locks.hold("a"):
            order.append("first-in")
            await asyncio.sleep(0.01)
            order.append("first-out")

    async def second():
        await asyncio.sleep(0)
        async with locks.hold("a", wait=True):
            order.append("second-in")

    await asyncio.gather(first(), second())

    assert order == ["first-in", "first-out", "second-in"]
    assert not locks.is_held("a")
