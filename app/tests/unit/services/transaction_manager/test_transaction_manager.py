import asyncio
import logging

import pytest

from schemas.facts import Relation
from schemas.transaction import FactUpdate
from services.delta_sink import LoggingDeltaSink
from services.errors import EngineFailure, StoreNotReady
from services.transaction_manager import StoreState, TransactionManager


@pytest.mark.asyncio
async def test_apply_before_initialize_raises(manager, make_workload):
    assert manager.state is StoreState.UNINITIALIZED
    with pytest.raises(StoreNotReady):
        await manager.upsert(make_workload("web-0"))


@pytest.mark.asyncio
async def test_initialize_commits_seed(manager, sink, make_workload):
    result = await manager.initialize([FactUpdate.insert(make_workload("web-0"))])
    assert manager.state is StoreState.READY
    assert result.sequence == 1
    assert result.applied == 1
    assert sink.deltas == [result.delta]
    snapshot = await manager.snapshot(Relation.WORKLOAD)
    assert [f.metadata.name for f in snapshot[Relation.WORKLOAD]] == ["web-0"]


@pytest.mark.asyncio
async def test_initialize_twice_fails(manager):
    await manager.initialize()
    with pytest.raises(EngineFailure):
        await manager.initialize()
    assert manager.state is StoreState.READY


@pytest.mark.asyncio
async def test_initialize_failure_leaves_manager_uninitialized(failing_store, sink):
    failing_store.fail_prepare = True
    manager = TransactionManager(failing_store, sink)
    with pytest.raises(EngineFailure):
        await manager.initialize()
    assert manager.state is StoreState.UNINITIALIZED

    failing_store.fail_prepare = False
    await manager.initialize()
    assert manager.state is StoreState.READY


@pytest.mark.asyncio
async def test_upsert_replaces_previous_fact(manager, make_workload):
    await manager.initialize()
    await manager.upsert(make_workload("web-0", node_name="n1"))
    result = await manager.upsert(make_workload("web-0", node_name="n2"))

    weights = sorted(
        (c.value["spec"]["node_name"], c.weight) for c in result.delta["WorkloadFact"]
    )
    assert weights == [("n1", -1), ("n2", 1)]
    snapshot = await manager.snapshot()
    assert [f.spec.node_name for f in snapshot[Relation.WORKLOAD]] == ["n2"]
    assert snapshot[Relation.HOST] == []


@pytest.mark.asyncio
async def test_remove(manager, make_host):
    await manager.initialize()
    await manager.upsert(make_host("n1"))
    result = await manager.remove(make_host("n1"))
    assert [c.weight for c in result.delta["HostFact"]] == [-1]
    assert (await manager.snapshot(Relation.HOST))[Relation.HOST] == []


@pytest.mark.asyncio
async def test_unchanged_fact_commits_empty_delta(manager, make_host):
    await manager.initialize()
    await manager.upsert(make_host("n1"))
    result = await manager.upsert(make_host("n1"))
    assert not result.changed
    assert manager.commits == 3


@pytest.mark.asyncio
async def test_failed_batch_is_atomic(failing_store, sink, make_workload):
    manager = TransactionManager(failing_store, sink)
    await manager.initialize()
    await manager.upsert(make_workload("web-0", node_name="n1"))

    with pytest.raises(EngineFailure):
        await manager.apply(
            [
                FactUpdate.insert(make_workload("web-0", node_name="n9")),
                FactUpdate.insert(make_workload("web-1")),
                FactUpdate.insert(make_workload("boom")),
            ]
        )

    assert failing_store.rollbacks == 1
    assert manager.state is StoreState.READY
    snapshot = await manager.snapshot(Relation.WORKLOAD)
    assert [(f.metadata.name, f.spec.node_name) for f in snapshot[Relation.WORKLOAD]] == [
        ("web-0", "n1")
    ]
    # the failed batch published nothing
    assert len(sink.deltas) == 2


@pytest.mark.asyncio
async def test_manager_keeps_serving_after_failure(failing_store, sink, make_workload):
    manager = TransactionManager(failing_store, sink)
    await manager.initialize()
    with pytest.raises(EngineFailure):
        await manager.upsert(make_workload("boom"))
    result = await manager.upsert(make_workload("web-0"))
    assert result.sequence == 2


@pytest.mark.asyncio
async def test_concurrent_batches_do_not_interleave(slow_store, sink, make_workload):
    manager = TransactionManager(slow_store, sink)
    await manager.initialize()
    slow_store.log.clear()

    batches = [
        [FactUpdate.insert(make_workload(f"{tag}-{i}")) for i in range(3)]
        for tag in ("a", "b", "c")
    ]
    results = await asyncio.gather(*(manager.apply(b) for b in batches))

    expected = []
    for tag in ("a", "b", "c"):
        expected += ["begin"] + [f"apply:{tag}-{i}" for i in range(3)] + ["commit"]
    assert slow_store.log == expected
    assert [r.sequence for r in results] == [2, 3, 4]


@pytest.mark.asyncio
async def test_state_is_committing_during_a_batch(slow_store, make_workload):
    manager = TransactionManager(slow_store)
    await manager.initialize()
    seen = []

    async def watch():
        await asyncio.sleep(0)
        seen.append(manager.state)

    await asyncio.gather(manager.upsert(make_workload("web-0")), watch())
    assert seen == [StoreState.COMMITTING]
    assert manager.state is StoreState.READY


@pytest.mark.asyncio
async def test_sink_failure_does_not_undo_commit(store, make_host):
    class BrokenSink:
        def publish(self, delta):
            raise ValueError("sink down")

    manager = TransactionManager(store, BrokenSink())
    await manager.initialize()
    result = await manager.upsert(make_host("n1"))
    assert result.changed
    assert len((await manager.snapshot(Relation.HOST))[Relation.HOST]) == 1


@pytest.mark.asyncio
async def test_close_returns_to_uninitialized(manager):
    await manager.initialize()
    await manager.close()
    assert manager.state is StoreState.UNINITIALIZED
    with pytest.raises(StoreNotReady):
        await manager.snapshot()


@pytest.mark.asyncio
async def test_logging_sink_output(caplog, store, make_host):
    manager = TransactionManager(store, LoggingDeltaSink())
    await manager.initialize()
    with caplog.at_level(logging.INFO, logger="kubefacts"):
        await manager.upsert(make_host("n1", pod_cidr="10.0.0.0/24"))
    messages = [r.getMessage() for r in caplog.records if r.name == "kubefacts.delta"]
    assert messages[0] == "Changes to relation HostFact"
    assert messages[1].endswith("+1")
    assert "10.0.0.0/24" in messages[1]
