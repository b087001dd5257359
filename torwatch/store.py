"""Single-writer store for the engine's snapshot stream.

The store subscribes to ``engine.watch()`` when the first observer attaches
and cancels that subscription when the last one detaches. Every emission is
handled to completion inside :meth:`SnapshotStore.feed` (replace, diff,
publish) so observers never see two emissions interleaved.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, Optional

from .engine import TorrentEngine
from .logging import get_logger
from .models import SnapshotCollection, TorrentSnapshot
from .reconcile import EditOp, diff


LOG = get_logger(__name__)


@dataclass(frozen=True)
class StoreUpdate:
    snapshots: SnapshotCollection
    ops: tuple[EditOp, ...]


UpdateCallback = Callable[[StoreUpdate], None]
ProjectionCallback = Callable[[Optional[TorrentSnapshot]], None]

_UNSET = object()


class Subscription:
    """Handle returned by ``attach``; closing it detaches the observer.

    Works as a plain or async context manager. ``close`` is idempotent.
    """

    def __init__(self, store: "SnapshotStore", observer: "_Observer"):
        self._store = store
        self._observer = observer
        self.closed = False

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._store._detach(self._observer)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc) -> None:
        self.close()


class _Observer:
    def __init__(self, callback: UpdateCallback):
        self.callback = callback

    def same_as(self, other: "_Observer") -> bool:
        return type(other) is type(self) and other.callback == self.callback

    def deliver(self, update: StoreUpdate) -> None:
        self.callback(update)

    def replay(self, current: SnapshotCollection) -> None:
        self.callback(StoreUpdate(current, tuple(diff((), current))))


class _ProjectionObserver(_Observer):
    def __init__(self, info_hash: str, callback: ProjectionCallback):
        super().__init__(callback)  # type: ignore[arg-type]
        self.info_hash = info_hash
        self.last: object = _UNSET

    def same_as(self, other: "_Observer") -> bool:
        return super().same_as(other) and other.info_hash == self.info_hash  # type: ignore[attr-defined]

    def _project(self, snapshots: SnapshotCollection) -> Optional[TorrentSnapshot]:
        return next((s for s in snapshots if s.info_hash == self.info_hash), None)

    def deliver(self, update: StoreUpdate) -> None:
        value = self._project(update.snapshots)
        if self.last is not _UNSET and value == self.last:
            return
        self.last = value
        self.callback(value)  # type: ignore[arg-type]

    def replay(self, current: SnapshotCollection) -> None:
        self.last = self._project(current)
        self.callback(self.last)  # type: ignore[arg-type]


class SnapshotStore:
    def __init__(self, engine: TorrentEngine, *, retry_delay: float = 3.0):
        self.engine = engine
        self.retry_delay = retry_delay
        self._snapshots: SnapshotCollection = ()
        self._received = False
        self._observers: list[_Observer] = []
        self._subscriptions: dict[_Observer, Subscription] = {}
        self._pump: asyncio.Task | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    # read access

    def current(self) -> SnapshotCollection:
        return self._snapshots

    def get(self, info_hash: str) -> Optional[TorrentSnapshot]:
        for snapshot in self._snapshots:
            if snapshot.info_hash == info_hash:
                return snapshot
        return None

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    @property
    def is_streaming(self) -> bool:
        return self._pump is not None and not self._pump.done()

    # observers

    def attach(self, callback: UpdateCallback) -> Subscription:
        return self._attach(_Observer(callback))

    def attach_projection(self, info_hash: str, callback: ProjectionCallback) -> Subscription:
        """Observe a single torrent; ``callback`` gets ``None`` once it is gone."""
        return self._attach(_ProjectionObserver(info_hash, callback))

    def _attach(self, observer: _Observer) -> Subscription:
        for existing, subscription in self._subscriptions.items():
            if existing.same_as(observer):
                return subscription
        self._observers.append(observer)
        if self._received:
            self._safe(observer.replay, self._snapshots)
        if len(self._observers) == 1:
            self._start()
        subscription = self._subscriptions[observer] = Subscription(self, observer)
        return subscription

    def _detach(self, observer: _Observer) -> None:
        if observer not in self._observers:
            return
        self._observers.remove(observer)
        self._subscriptions.pop(observer, None)
        if not self._observers:
            self._stop()

    # stream

    def _start(self) -> None:
        if self.is_streaming:
            return
        self._loop = asyncio.get_running_loop()
        self._pump = self._loop.create_task(self._run(), name="torwatch:snapshot-stream")
        LOG.debug("Subscribed to engine stream")

    def _stop(self) -> None:
        if self._pump is not None:
            self._pump.cancel()
            self._pump = None
            LOG.debug("Unsubscribed from engine stream")

    async def _run(self) -> None:
        while True:
            try:
                async for collection in self.engine.watch():
                    self.feed(collection)
            except asyncio.CancelledError:
                raise
            except Exception:  # noqa: BLE001
                LOG.exception("Engine stream failed, resubscribing in %.1fs", self.retry_delay)
            else:
                LOG.warning("Engine stream ended, resubscribing in %.1fs", self.retry_delay)
            await asyncio.sleep(self.retry_delay)

    def feed(self, collection) -> StoreUpdate:
        """Replace the held collection and publish the change to observers."""
        previous = self._snapshots
        current: SnapshotCollection = tuple(collection)
        self._snapshots = current
        self._received = True
        update = StoreUpdate(current, tuple(diff(previous, current)))
        for observer in list(self._observers):
            # an earlier callback may have detached it
            if observer in self._observers:
                self._safe(observer.deliver, update)
        return update

    def feed_threadsafe(self, collection) -> None:
        """Hand an emission produced on another thread to the store's loop."""
        if self._loop is None:
            raise RuntimeError("store has no running loop; attach an observer first")
        self._loop.call_soon_threadsafe(self.feed, tuple(collection))

    def clear(self) -> None:
        """Drop the held collection when the owning view goes away."""
        self._snapshots = ()
        self._received = False

    def _safe(self, func, *args) -> None:
        try:
            func(*args)
        except Exception:  # noqa: BLE001
            LOG.exception("Snapshot observer %r raised", func)
