"""Tests for the per-user JSON document store."""

from __future__ import annotations

import asyncio


class TestUserStore:
    async def test_round_trip_and_namespacing(self, store_factory, redis_client):
        contacts = store_factory("contacts")
        sessions = store_factory("session")

        await contacts.save("alice", [{"name": "Ana"}])
        assert await contacts.load("alice") == [{"name": "Ana"}]
        assert await sessions.load("alice") is None
        assert await redis_client.get("test:contacts:alice") == '[{"name": "Ana"}]'

    async def test_delete_and_exists(self, store_factory):
        store = store_factory("session")
        await store.save("alice", {})
        assert await store.exists("alice") is True
        assert await store.delete("alice") is True
        assert await store.exists("alice") is False
        assert await store.delete("alice") is False

    async def test_user_ids(self, store_factory):
        store = store_factory("session")
        await store.save("alice", {})
        await store.save("bob", {})
        await store_factory("contacts").save("carol", [])
        assert sorted(await store.user_ids()) == ["alice", "bob"]

    async def test_lock_serializes_read_modify_write(self, store_factory):
        store = store_factory("counter")
        await store.save("alice", 0)

        async def increment():
            async with store.locked("alice"):
                value = await store.load("alice")
                await asyncio.sleep(0)
                await store.save("alice", value + 1)

        await asyncio.gather(*(increment() for _ in range(20)))
        assert await store.load("alice") == 20

    async def test_locks_are_per_user(self, store_factory):
        store = store_factory("session")
        async with store.locked("alice"):
            async with store.locked("bob"):
                pass

    async def test_lock_entries_are_dropped_when_released(self, store_factory):
        store = store_factory("session")
        entered = asyncio.Event()
        release = asyncio.Event()

        async def hold():
            async with store.locked("alice"):
                entered.set()
                await release.wait()

        async def wait_turn():
            async with store.locked("alice"):
                pass

        holder = asyncio.create_task(hold())
        await entered.wait()
        waiter = asyncio.create_task(wait_turn())
        await asyncio.sleep(0)
        assert list(store._locks) == ["alice"]

        release.set()
        await asyncio.gather(holder, waiter)
        assert store._locks == {}
        assert store._lock_users == {}

        for index in range(50):
            async with store.locked(f"user-{index}"):
                pass
        assert store._locks == {}
