from __future__ import annotations

import asyncio
from typing import Callable

from .commands import CommandIssuer, CommandResult
from .engine import TorrentEngine
from .errors import NotFoundError
from .filetypes import is_video_file
from .logging import get_logger
from .models import BulkIntent, FileEntry, FilePriority, PriorityIntent, SingleFileIntent, TorrentSnapshot
from .store import SnapshotStore


LOG = get_logger(__name__)


class PriorityBatchController:
    """Turns file-priority intents into exactly one engine command each.

    Bulk mappings are computed from the store's snapshot at the moment the
    intent is issued. A newer intent for a torrent with a command still in
    flight is sent as its own fresh command; nothing is queued or cached.
    """

    def __init__(self, engine: TorrentEngine, store: SnapshotStore, issuer: CommandIssuer):
        self.engine = engine
        self.store = store
        self.issuer = issuer
        self._in_flight: dict[str, set[asyncio.Task]] = {}

    def in_flight(self, info_hash: str) -> int:
        return len(self._in_flight.get(info_hash, ()))

    def apply(self, info_hash: str, intent: PriorityIntent) -> "asyncio.Task[CommandResult]":
        snapshot = self._snapshot(info_hash)
        if isinstance(intent, SingleFileIntent):
            if snapshot.file(intent.index) is None:
                raise NotFoundError(info_hash, intent.index)
            return self._track(
                info_hash,
                "set_file_priority",
                lambda: self.engine.set_file_priority(info_hash, intent.index, intent.priority),
            )
        if not snapshot.files:
            # metadata not fetched yet, there is nothing to send
            raise NotFoundError(info_hash, message=f"torrent {snapshot.name} has no file list yet")
        mapping = intent.mapping(snapshot)
        LOG.info("%s on %s: %d files", intent.label, snapshot.name, len(mapping))
        return self._track(
            info_hash,
            "set_file_priorities",
            lambda: self.engine.set_file_priorities(info_hash, mapping),
        )

    def set_file_priority(self, info_hash: str, index: int, priority: FilePriority):
        return self.apply(info_hash, SingleFileIntent(index, priority))

    def select_all(self, info_hash: str, priority: FilePriority = FilePriority.NORMAL):
        return self.apply(info_hash, BulkIntent(lambda _: priority, label="select all"))

    def deselect_all(self, info_hash: str):
        return self.apply(info_hash, BulkIntent(lambda _: FilePriority.SKIP, label="deselect all"))

    def select_matching(
        self,
        info_hash: str,
        predicate: Callable[[FileEntry], bool],
        priority: FilePriority = FilePriority.HIGH,
        *,
        label: str = "select matching",
    ):
        def rule(entry: FileEntry) -> FilePriority:
            return priority if predicate(entry) else FilePriority.SKIP

        return self.apply(info_hash, BulkIntent(rule, label=label))

    def select_videos(self, info_hash: str):
        return self.select_matching(info_hash, lambda entry: is_video_file(entry.path), label="videos only")

    def _snapshot(self, info_hash: str) -> TorrentSnapshot:
        snapshot = self.store.get(info_hash)
        if snapshot is None:
            LOG.warning("Dropping priority change for unknown torrent %s", info_hash)
            raise NotFoundError(info_hash)
        return snapshot

    def _track(self, info_hash: str, command: str, call) -> "asyncio.Task[CommandResult]":
        pending = self._in_flight.setdefault(info_hash, set())
        if pending:
            LOG.debug("%s for %s supersedes %d in-flight command(s)", command, info_hash, len(pending))
        task = self.issuer.issue(command, call, info_hash=info_hash)
        pending.add(task)

        def done(finished: asyncio.Task) -> None:
            tasks = self._in_flight.get(info_hash)
            if tasks is None:
                return
            tasks.discard(finished)
            if not tasks:
                self._in_flight.pop(info_hash, None)

        task.add_done_callback(done)
        return task
