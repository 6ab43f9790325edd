"""Tests for execer._registry module."""

import anyio
import pytest

from execer import ProcessRegistry


@pytest.mark.anyio
class TestTryRegister:
    async def test_registers_new_identity(self) -> None:
        registry = ProcessRegistry()

        entry, created = registry.try_register("sleep 1")

        assert created
        assert entry.identity == "sleep 1"
        assert "sleep 1" in registry
        assert len(registry) == 1

    async def test_returns_existing_entry_for_duplicate(self) -> None:
        registry = ProcessRegistry()
        first, _ = registry.try_register("sleep 1")

        second, created = registry.try_register("sleep 1")

        assert not created
        assert second is first

    async def test_distinct_identities_coexist(self) -> None:
        registry = ProcessRegistry()
        _ = registry.try_register("sleep 1")
        _ = registry.try_register("sleep 2")

        assert registry.identities() == ["sleep 1", "sleep 2"]


@pytest.mark.anyio
class TestRelease:
    async def test_release_removes_entry_and_sets_closed(self) -> None:
        registry = ProcessRegistry()
        entry, _ = registry.try_register("sleep 1")

        registry.release(entry)

        assert "sleep 1" not in registry
        assert registry.get("sleep 1") is None
        assert entry.closed.is_set()

    async def test_stale_release_keeps_newer_entry(self) -> None:
        registry = ProcessRegistry()
        old, _ = registry.try_register("sleep 1")
        registry.release(old)
        new, _ = registry.try_register("sleep 1")

        registry.release(old)

        assert registry.get("sleep 1") is new
        assert not new.closed.is_set()


@pytest.mark.anyio
class TestRegister:
    async def test_registers_immediately_when_free(self) -> None:
        registry = ProcessRegistry()

        entry = await registry.register("sleep 1", wait=0)

        assert entry is not None
        assert registry.get("sleep 1") is entry

    async def test_gives_up_when_duplicate_stays_active(self) -> None:
        registry = ProcessRegistry()
        _ = registry.try_register("sleep 1")

        with anyio.fail_after(2):
            entry = await registry.register("sleep 1", wait=0.1)

        assert entry is None

    async def test_waits_for_duplicate_to_close(self) -> None:
        registry = ProcessRegistry()
        first, _ = registry.try_register("sleep 1")

        async def _release_later() -> None:
            await anyio.sleep(0.1)
            registry.release(first)

        with anyio.fail_after(2):
            async with anyio.create_task_group() as tg:
                tg.start_soon(_release_later)
                second = await registry.register("sleep 1", wait=1.0)

        assert second is not None
        assert second is not first
        assert registry.get("sleep 1") is second
