"""Shared fakes for torwatch tests."""

from __future__ import annotations

import asyncio
from typing import Any, Mapping

import pytest

from torwatch.engine import TorrentEngine
from torwatch.models import FileEntry, FilePriority, TorrentSnapshot, TorrentState


class FakeEngine(TorrentEngine):
    """In-memory engine: ``emit`` pushes a collection into every open watch."""

    def __init__(self) -> None:
        self.commands: list[tuple[str, tuple[Any, ...]]] = []
        self.fail_with: Exception | None = None
        self.watchers = 0
        self.subscriptions = 0
        self._queues: list[asyncio.Queue] = []
        self.latest: tuple[TorrentSnapshot, ...] | None = None
        self.gate: asyncio.Event | None = None

    def emit(self, collection) -> None:
        self.latest = tuple(collection)
        for queue in self._queues:
            queue.put_nowait(self.latest)

    async def watch(self):
        queue: asyncio.Queue = asyncio.Queue()
        if self.latest is not None:
            queue.put_nowait(self.latest)
        self._queues.append(queue)
        self.watchers += 1
        self.subscriptions += 1
        try:
            while True:
                item = await queue.get()
                if isinstance(item, Exception):
                    raise item
                yield item
        finally:
            self.watchers -= 1
            self._queues.remove(queue)

    def break_stream(self, exc: Exception) -> None:
        for queue in self._queues:
            queue.put_nowait(exc)

    async def _record(self, name: str, *args: Any) -> None:
        self.commands.append((name, args))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            raise self.fail_with

    async def add_torrent(self, magnet_uri: str, save_path: str) -> None:
        await self._record("add_torrent", magnet_uri, save_path)

    async def pause_torrent(self, info_hash: str) -> None:
        await self._record("pause_torrent", info_hash)

    async def resume_torrent(self, info_hash: str) -> None:
        await self._record("resume_torrent", info_hash)

    async def remove_torrent(self, info_hash: str, delete_files: bool = False) -> None:
        await self._record("remove_torrent", info_hash, delete_files)

    async def set_file_priority(self, info_hash: str, index: int, priority: FilePriority) -> None:
        await self._record("set_file_priority", info_hash, index, priority)

    async def set_file_priorities(self, info_hash: str, mapping: Mapping[int, FilePriority]) -> None:
        await self._record("set_file_priorities", info_hash, dict(mapping))


def make_files(info_hash: str, *paths: str, priority: FilePriority = FilePriority.NORMAL) -> tuple[FileEntry, ...]:
    return tuple(
        FileEntry(info_hash=info_hash, index=i, path=path, size=1000, downloaded=0, priority=priority)
        for i, path in enumerate(paths)
    )


def make_torrent(info_hash: str = "aaa", name: str | None = None, **kwargs: Any) -> TorrentSnapshot:
    kwargs.setdefault("total_size", 1000)
    kwargs.setdefault("state", TorrentState.DOWNLOADING)
    return TorrentSnapshot(info_hash=info_hash, name=name or f"torrent-{info_hash}", **kwargs)


async def settle(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()
