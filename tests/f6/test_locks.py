"""Tests for per-key request serialization."""

import asyncio

import pytest

from progression.web.locks import KeyedLocks, get_keyed_locks, reset_keyed_locks


@pytest.fixture
def locks():
    return KeyedLocks()


class TestKeyedLocks:
    """Tests for KeyedLocks."""

    @pytest.mark.asyncio
    async def test_same_key_runs_one_at_a_time(self, locks):
        events = []

        async def worker(name):
            async with locks.hold("stu01", "quiz1"):
                events.append(f"{name}-in")
                await asyncio.sleep(0.01)
                events.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert events in (
            ["a-in", "a-out", "b-in", "b-out"],
            ["b-in", "b-out", "a-in", "a-out"],
        )

    @pytest.mark.asyncio
    async def test_different_keys_interleave(self, locks):
        entered = asyncio.Event()
        released = asyncio.Event()

        async def first():
            async with locks.hold("stu01", "quiz1"):
                entered.set()
                await released.wait()

        async def second():
            await entered.wait()
            async with locks.hold("stu01", "hw1"):
                released.set()

        await asyncio.wait_for(asyncio.gather(first(), second()), timeout=1)

    @pytest.mark.asyncio
    async def test_idle_locks_are_dropped(self, locks):
        async with locks.hold("stu01", "quiz1"):
            assert len(locks) == 1
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_released_on_error(self, locks):
        with pytest.raises(RuntimeError):
            async with locks.hold("stu01", "quiz1"):
                raise RuntimeError("boom")
        assert len(locks) == 0

        async with locks.hold("stu01", "quiz1"):
            pass


class TestGlobalRegistry:
    """Tests for the module-level registry."""

    def test_singleton(self):
        assert get_keyed_locks() is get_keyed_locks()

    def test_reset(self):
        first = get_keyed_locks()
        reset_keyed_locks()
        assert get_keyed_locks() is not first
