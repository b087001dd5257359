import asyncio
import threading
from dataclasses import replace

import pytest

from torwatch.reconcile import Insert, Remove, Update
from torwatch.store import SnapshotStore

from conftest import make_torrent, settle


@pytest.mark.asyncio
async def test_subscribes_once_and_unsubscribes_on_last_detach(engine):
    store = SnapshotStore(engine, retry_delay=0)
    first = store.attach(lambda u: None)
    second = store.attach(lambda u: None)
    await settle()
    assert engine.subscriptions == 1
    assert engine.watchers == 1

    first.close()
    await settle()
    assert store.is_streaming
    assert engine.watchers == 1

    second.close()
    await settle()
    assert not store.is_streaming
    assert engine.watchers == 0
    assert store.observer_count == 0


@pytest.mark.asyncio
async def test_detach_is_idempotent(engine):
    store = SnapshotStore(engine, retry_delay=0)
    keep = store.attach(lambda u: None)
    sub = store.attach(lambda u: None)
    sub.close()
    sub.close()
    assert store.observer_count == 1
    keep.close()


@pytest.mark.asyncio
async def test_attaching_same_callback_twice_is_one_observer(engine):
    store = SnapshotStore(engine, retry_delay=0)
    updates, seen = [], []
    first = store.attach(updates.append)
    again = store.attach(updates.append)
    projection = store.attach_projection("a", seen.append)
    assert store.attach_projection("a", seen.append) is projection
    assert again is first
    assert store.observer_count == 2

    await settle()
    a = make_torrent("a")
    engine.emit((a,))
    await settle()
    assert [u.snapshots for u in updates] == [(a,)]
    assert seen == [a]

    first.close()
    projection.close()
    assert store.observer_count == 0
    fresh = store.attach(updates.append)
    assert fresh is not first
    fresh.close()


@pytest.mark.asyncio
async def test_observer_detached_mid_emission_gets_nothing(engine):
    store = SnapshotStore(engine, retry_delay=0)
    seen = []
    closer = store.attach(lambda update: projection.close())
    projection = store.attach_projection("a", seen.append)

    store.feed((make_torrent("a"),))

    assert seen == []
    closer.close()


@pytest.mark.asyncio
async def test_emission_replaces_collection_and_publishes_ops(engine):
    store = SnapshotStore(engine, retry_delay=0)
    updates = []
    with store.attach(updates.append):
        await settle()
        a, b = make_torrent("a"), make_torrent("b")
        engine.emit((a, b))
        await settle()
        a2 = replace(a, downloaded_size=300)
        engine.emit((a2,))
        await settle()

    assert [u.snapshots for u in updates] == [(a, b), (a2,)]
    assert updates[0].ops == (Insert("a", 0, a), Insert("b", 1, b))
    assert updates[1].ops == (Remove("b"), Update("a", ("downloaded_size",), a2))
    assert store.current() == (a2,)
    assert store.get("a") == a2
    assert store.get("b") is None


@pytest.mark.asyncio
async def test_late_observer_gets_last_value_immediately(engine):
    store = SnapshotStore(engine, retry_delay=0)
    early = store.attach(lambda u: None)
    await settle()
    engine.emit((make_torrent("a"),))
    await settle()

    received = []
    late = store.attach(received.append)
    assert len(received) == 1
    assert received[0].snapshots == store.current()
    assert [type(op) for op in received[0].ops] == [Insert]
    late.close()
    early.close()


@pytest.mark.asyncio
async def test_observer_without_value_gets_nothing_on_attach(engine):
    store = SnapshotStore(engine, retry_delay=0)
    received = []
    sub = store.attach(received.append)
    assert received == []
    sub.close()


@pytest.mark.asyncio
async def test_projection_narrows_to_one_identity(engine):
    store = SnapshotStore(engine, retry_delay=0)
    seen = []
    sub = store.attach_projection("a", seen.append)
    await settle()

    a, b = make_torrent("a"), make_torrent("b")
    engine.emit((a, b))
    await settle()
    # unrelated change does not re-deliver
    engine.emit((a, replace(b, num_peers=4)))
    await settle()
    a2 = replace(a, num_peers=2)
    engine.emit((a2, b))
    await settle()
    engine.emit((b,))
    await settle()
    engine.emit((replace(b, num_peers=9),))
    await settle()
    sub.close()

    assert seen == [a, a2, None]


@pytest.mark.asyncio
async def test_projection_attach_replays_current_value(engine):
    store = SnapshotStore(engine, retry_delay=0)
    store.feed((make_torrent("a"),))
    seen = []
    async with store.attach_projection("zzz", seen.append):
        pass
    assert seen == [None]
    assert store.observer_count == 0


@pytest.mark.asyncio
async def test_failing_observer_does_not_break_others(engine, caplog):
    store = SnapshotStore(engine, retry_delay=0)

    def boom(update):
        raise ValueError("observer bug")

    received = []
    bad = store.attach(boom)
    good = store.attach(received.append)
    await settle()
    engine.emit((make_torrent("a"),))
    await settle()
    engine.emit((make_torrent("a"), make_torrent("b")))
    await settle()

    assert len(received) == 2
    assert store.observer_count == 2
    assert "observer" in caplog.text
    bad.close()
    good.close()


@pytest.mark.asyncio
async def test_stream_failure_keeps_snapshot_and_resubscribes(engine):
    store = SnapshotStore(engine, retry_delay=0)
    received = []
    sub = store.attach(received.append)
    await settle()
    engine.emit((make_torrent("a"),))
    await settle()

    engine.break_stream(RuntimeError("engine hiccup"))
    await settle(10)

    assert store.current() == (make_torrent("a"),)
    assert engine.subscriptions == 2
    engine.emit((make_torrent("b"),))
    await settle()
    assert received[-1].snapshots == (make_torrent("b"),)
    sub.close()


@pytest.mark.asyncio
async def test_feed_threadsafe_marshals_onto_loop(engine):
    store = SnapshotStore(engine, retry_delay=0)
    seen_threads = []
    sub = store.attach(lambda u: seen_threads.append(threading.get_ident()))
    await settle()

    worker = threading.Thread(target=store.feed_threadsafe, args=((make_torrent("a"),),))
    worker.start()
    worker.join()
    await settle()

    assert seen_threads == [threading.get_ident()]
    assert store.get("a") is not None
    sub.close()


@pytest.mark.asyncio
async def test_clear_empties_held_collection(engine):
    store = SnapshotStore(engine, retry_delay=0)
    store.feed((make_torrent("a"),))
    store.clear()
    assert store.current() == ()
    received = []
    sub = store.attach(received.append)
    assert received == []
    sub.close()
    await asyncio.sleep(0)
