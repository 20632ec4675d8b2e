import asyncio

import pytest

from voicebridge.bot.waiters import CorrelationRegistry


@pytest.mark.asyncio
async def test_wait_without_id_resolves_immediately():
    registry = CorrelationRegistry()

    future = registry.expect(None)

    assert future.done()
    assert await future is None
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_resolve_exactly_once():
    registry = CorrelationRegistry()
    future = registry.expect("verb-1")
    assert "verb-1" in registry

    assert registry.resolve("verb-1", "finished") is True
    assert registry.resolve("verb-1", "again") is False

    assert await future == "finished"
    assert "verb-1" not in registry


@pytest.mark.asyncio
async def test_resolve_unknown_id():
    registry = CorrelationRegistry()

    assert registry.resolve("nobody-waiting") is False
    assert registry.resolve(None) is False


@pytest.mark.asyncio
async def test_cancel_all():
    registry = CorrelationRegistry()
    futures = [registry.expect(f"verb-{i}") for i in range(3)]

    assert registry.cancel_all() == 3

    assert len(registry) == 0
    assert all(future.cancelled() for future in futures)
    with pytest.raises(asyncio.CancelledError):
        await futures[0]


@pytest.mark.asyncio
async def test_discard():
    registry = CorrelationRegistry()
    future = registry.expect("verb-1")

    registry.discard("verb-1")

    assert future.cancelled()
    assert len(registry) == 0
