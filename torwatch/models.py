from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Callable, Union


class FilePriority(IntEnum):
    SKIP = 0
    LOW = 1
    NORMAL = 2
    HIGH = 3
    MAXIMUM = 4


class TorrentState(Enum):
    STOPPED = "stopped"
    QUEUED = "queued"
    METADATA_DOWNLOADING = "metadata"
    CHECKING = "checking"
    DOWNLOADING = "downloading"
    SEEDING = "seeding"
    FINISHED = "finished"
    ERROR = "error"


@dataclass(frozen=True)
class FileEntry:
    """One file inside a torrent.

    ``index`` is the engine's position key for the file and never changes
    once the torrent has been added. Sizes are in bytes.
    """

    info_hash: str
    index: int
    path: str
    size: int
    downloaded: int = 0
    priority: FilePriority = FilePriority.NORMAL

    @property
    def key(self) -> tuple[str, int]:
        return (self.info_hash, self.index)

    @property
    def name(self) -> str:
        return self.path.replace("\\", "/").rsplit("/", 1)[-1]

    @property
    def is_selected(self) -> bool:
        return self.priority != FilePriority.SKIP


@dataclass(frozen=True)
class TorrentSnapshot:
    """Immutable point-in-time state of one torrent.

    Sizes are in bytes, speeds in bytes/second. ``uploaded_total`` is the
    engine's cumulative upload counter.
    """

    info_hash: str
    name: str
    total_size: int = 0
    downloaded_size: int = 0
    download_speed: int = 0
    upload_speed: int = 0
    uploaded_total: int = 0
    num_peers: int = 0
    num_seeds: int = 0
    state: TorrentState = TorrentState.STOPPED
    files: tuple[FileEntry, ...] = field(default_factory=tuple)
    save_path: str = ""
    error: str = ""

    def file(self, index: int) -> FileEntry | None:
        for entry in self.files:
            if entry.index == index:
                return entry
        return None


SnapshotCollection = tuple[TorrentSnapshot, ...]


@dataclass(frozen=True)
class SingleFileIntent:
    index: int
    priority: FilePriority


@dataclass(frozen=True)
class BulkIntent:
    """Priority for every file decided by ``rule``."""

    rule: Callable[[FileEntry], FilePriority]
    label: str = "bulk"

    def mapping(self, snapshot: TorrentSnapshot) -> dict[int, FilePriority]:
        return {entry.index: self.rule(entry) for entry in snapshot.files}


PriorityIntent = Union[SingleFileIntent, BulkIntent]
