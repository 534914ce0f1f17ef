"""Tests for sandbox/registry.py -- the live sandbox registry."""

import threading

import pytest

from sandbox.registry import SandboxNotFoundError, SandboxRecord, SandboxRegistry


def _record(sandbox_id: str = "a1b2c3d4", port: int = 6100) -> SandboxRecord:
    return SandboxRecord(
        sandbox_id=sandbox_id,
        container_id=f"container_{sandbox_id}",
        vnc_port=port,
        bridge_port=port + 1000,
        created_at=1_700_000_000.0,
    )


class TestBasicOperations:
    def test_put_then_get(self, registry: SandboxRegistry) -> None:
        record = _record()
        registry.put(record)
        assert registry.get("a1b2c3d4") is record
        assert registry.contains("a1b2c3d4")
        assert len(registry) == 1

    def test_get_unknown_raises_not_found(self, registry: SandboxRegistry) -> None:
        with pytest.raises(SandboxNotFoundError) as exc_info:
            registry.get("missing1")
        assert exc_info.value.sandbox_id == "missing1"
        assert "missing1" in str(exc_info.value)

    def test_not_found_is_a_key_error(self, registry: SandboxRegistry) -> None:
        with pytest.raises(KeyError):
            registry.remove("missing1")

    def test_remove_returns_record(self, registry: SandboxRegistry) -> None:
        record = _record()
        registry.put(record)
        assert registry.remove("a1b2c3d4") is record
        assert not registry.contains("a1b2c3d4")

    def test_duplicate_put_rejected(self, registry: SandboxRegistry) -> None:
        registry.put(_record())
        with pytest.raises(ValueError):
            registry.put(_record())


class TestSnapshot:
    def test_list_is_a_copy(self, registry: SandboxRegistry) -> None:
        registry.put(_record("aaaa0001", 6100))
        registry.put(_record("aaaa0002", 6101))

        snapshot = registry.list()
        registry.remove("aaaa0001")
        registry.put(_record("aaaa0003", 6102))

        assert {r.sandbox_id for r in snapshot} == {"aaaa0001", "aaaa0002"}

    def test_iterating_snapshot_while_mutating(self, registry: SandboxRegistry) -> None:
        for i in range(20):
            registry.put(_record(f"id{i:06d}", 6100 + i))

        removed = []
        for record in registry.list():
            removed.append(registry.remove(record.sandbox_id))

        assert len(removed) == 20
        assert len(registry) == 0

    def test_concurrent_mutation_and_listing(self, registry: SandboxRegistry) -> None:
        errors: list[Exception] = []

        def _writer(offset: int) -> None:
            for i in range(200):
                sandbox_id = f"w{offset}{i:05d}"
                registry.put(_record(sandbox_id, 6100))
                registry.remove(sandbox_id)

        def _reader() -> None:
            try:
                for _ in range(500):
                    for record in registry.list():
                        assert record.sandbox_id
            except Exception as e:  # pragma: no cover - failure path
                errors.append(e)

        threads = [threading.Thread(target=_writer, args=(n,)) for n in range(4)]
        threads.append(threading.Thread(target=_reader))
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(registry) == 0


class TestRecord:
    def test_age(self) -> None:
        record = _record()
        assert record.age(1_700_000_060.0) == 60.0
