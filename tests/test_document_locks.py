"""Tests for the per-document lock registry."""

import asyncio

import pytest

from services.indexing.DocumentLocks import DocumentLocks


@pytest.mark.asyncio
async def test_same_document_is_serialized():
    locks = DocumentLocks()
    order: list[str] = []

    async def worker(name: str):
        async with locks.hold("docA"):
            order.append(f"{name}-start")
            await asyncio.sleep(0.01)
            order.append(f"{name}-end")

    await asyncio.gather(worker("one"), worker("two"))
    assert order == ["one-start", "one-end", "two-start", "two-end"]


@pytest.mark.asyncio
async def test_different_documents_run_concurrently():
    locks = DocumentLocks()
    inside = asyncio.Event()

    async def holder():
        async with locks.hold("docA"):
            inside.set()
            await asyncio.sleep(0.05)

    task = asyncio.create_task(holder())
    await inside.wait()
    assert locks.is_locked("docA")
    async with locks.hold("docB"):
        assert locks.is_locked("docA") and locks.is_locked("docB")
    await task


@pytest.mark.asyncio
async def test_locks_are_released_after_use():
    locks = DocumentLocks()
    async with locks.hold("docA"):
        assert len(locks) == 1
    assert len(locks) == 0
    assert not locks.is_locked("docA")


@pytest.mark.asyncio
async def test_lock_is_released_on_error():
    locks = DocumentLocks()
    with pytest.raises(RuntimeError):
        async with locks.hold("docA"):
            raise RuntimeError("boom")
    assert len(locks) == 0
