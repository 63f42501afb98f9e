import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from vod_bot.config import PAGE_SIZE
from vod_bot.workflows.results import ShowHierarchy
from vod_bot.workflows.selection_session import (
    FlatSelection,
    HierarchicalSelection,
    InMemoryContextStore,
    ReadWriteLock,
    SelectionContext,
    SelectionContextError,
    SelectionStep,
    run_sweeper,
)

KEY = (456, 1)


def _context(make_result, owner_id=123, **kwargs):
    return SelectionContext(
        owner_id=owner_id,
        chat_id=456,
        query="matrix",
        selection=FlatSelection(results=[make_result(i) for i in range(3)]),
        **kwargs,
    )


def test_context_defaults_and_per_page_cap(make_result):
    context = _context(make_result, per_page=100)
    assert context.per_page == PAGE_SIZE
    assert context.step == SelectionStep.AWAITING_PICK
    assert len(context.results) == 3
    assert context.is_owned_by(123)
    assert not context.is_owned_by(None)


def test_hierarchical_selection_requires_its_state():
    selection = HierarchicalSelection(hierarchy=ShowHierarchy())
    with pytest.raises(SelectionContextError):
        selection.require_show()
    with pytest.raises(SelectionContextError):
        selection.require_season()
    assert selection.current_episodes() == []


@pytest.mark.asyncio
async def test_put_get_remove(make_result):
    store = InMemoryContextStore()
    context = _context(make_result)

    await store.put(KEY, context)
    assert await store.get(KEY) is context
    assert len(store) == 1

    assert await store.remove(KEY) is context
    assert await store.get(KEY) is None
    assert await store.remove(KEY) is None


@pytest.mark.asyncio
async def test_mutate_ignores_other_users(make_result):
    store = InMemoryContextStore()
    await store.put(KEY, _context(make_result))
    fn = Mock(return_value="changed")

    assert await store.mutate(KEY, 999, fn) is None
    fn.assert_not_called()

    assert await store.mutate(KEY, 123, fn) == "changed"
    assert await store.mutate((1, 1), 123, fn) is None


@pytest.mark.asyncio
async def test_consume_acts_only_once(make_result):
    store = InMemoryContextStore()
    await store.put(KEY, _context(make_result))

    first = await store.consume(KEY, 123, lambda c: c.results[0])
    second = await store.consume(KEY, 123, lambda c: c.results[0])

    assert first is not None
    assert second is None
    assert len(store) == 0


@pytest.mark.asyncio
async def test_consume_keeps_context_when_pick_is_invalid(make_result):
    store = InMemoryContextStore()
    await store.put(KEY, _context(make_result))

    assert await store.consume(KEY, 123, lambda c: None) is None
    assert await store.get(KEY) is not None


@pytest.mark.asyncio
async def test_concurrent_consumes_yield_one_winner(make_result):
    store = InMemoryContextStore()
    await store.put(KEY, _context(make_result))

    outcomes = await asyncio.gather(
        *(store.consume(KEY, 123, lambda c: c.results[1]) for _ in range(5))
    )

    assert sum(1 for o in outcomes if o is not None) == 1


@pytest.mark.asyncio
async def test_sweep_drops_reactions_and_stale_components(make_result):
    store = InMemoryContextStore(ttl=100)
    await store.put((1, 1), _context(make_result, created_at=0.0))
    await store.put((1, 2), _context(make_result, created_at=950.0))
    await store.put((1, 3), _context(make_result, created_at=990.0, kind="reaction"))

    removed = await store.sweep_expired(now=1000.0)

    assert removed == 2
    assert await store.get((1, 2)) is not None
    assert len(store) == 1


@pytest.mark.asyncio
async def test_writer_waits_for_readers():
    lock = ReadWriteLock()
    order = []
    reader_in = asyncio.Event()
    release_reader = asyncio.Event()

    async def reader():
        async with lock.read():
            order.append("read")
            reader_in.set()
            await release_reader.wait()
        order.append("read done")

    async def writer():
        await reader_in.wait()
        async with lock.write():
            order.append("write")

    reader_task = asyncio.create_task(reader())
    writer_task = asyncio.create_task(writer())
    await reader_in.wait()
    for _ in range(5):
        await asyncio.sleep(0)
    assert "write" not in order

    release_reader.set()
    await asyncio.gather(reader_task, writer_task)
    assert order == ["read", "read done", "write"]


@pytest.mark.asyncio
async def test_run_sweeper_sweeps_until_cancelled(mocker, make_result):
    store = InMemoryContextStore()
    await store.put(KEY, _context(make_result, kind="reaction"))
    mocker.patch(
        "asyncio.sleep", new=AsyncMock(side_effect=[None, asyncio.CancelledError()])
    )

    with pytest.raises(asyncio.CancelledError):
        await run_sweeper(store, interval=1)

    assert len(store) == 0
