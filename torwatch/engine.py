import asyncio
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Callable, Mapping

from transmission_rpc import Client, TransmissionError
from transmission_rpc import Torrent

from .config import AppConfig
from .logging import get_logger
from .models import FileEntry, FilePriority, SnapshotCollection, TorrentSnapshot, TorrentState


LOG = get_logger(__name__)


class TorrentEngine(ABC):
    """What torwatch needs from a download engine.

    ``watch`` must yield the current collection as soon as it is iterated and
    a new collection whenever something changes. Every command may raise.
    """

    # file priorities the engine stores as distinct levels
    supported_priorities: tuple[FilePriority, ...] = tuple(FilePriority)

    @abstractmethod
    def watch(self) -> AsyncIterator[SnapshotCollection]: ...

    @abstractmethod
    async def add_torrent(self, magnet_uri: str, save_path: str) -> None: ...

    @abstractmethod
    async def pause_torrent(self, info_hash: str) -> None: ...

    @abstractmethod
    async def resume_torrent(self, info_hash: str) -> None: ...

    @abstractmethod
    async def remove_torrent(self, info_hash: str, delete_files: bool = False) -> None: ...

    @abstractmethod
    async def set_file_priority(self, info_hash: str, index: int, priority: FilePriority) -> None: ...

    @abstractmethod
    async def set_file_priorities(self, info_hash: str, mapping: Mapping[int, FilePriority]) -> None: ...


_STATUS_STATES = {
    "stopped": TorrentState.STOPPED,
    "check pending": TorrentState.QUEUED,
    "download pending": TorrentState.QUEUED,
    "checking": TorrentState.CHECKING,
    "downloading": TorrentState.DOWNLOADING,
    "seed pending": TorrentState.SEEDING,
    "seeding": TorrentState.SEEDING,
}

# transmission file priorities: -1 low, 0 normal, 1 high
_RPC_PRIORITIES = {-1: FilePriority.LOW, 0: FilePriority.NORMAL, 1: FilePriority.HIGH}


class TransmissionEngine(TorrentEngine):
    supported_priorities = (FilePriority.SKIP, FilePriority.LOW, FilePriority.NORMAL, FilePriority.HIGH)

    def __init__(self, config: AppConfig, *, client_factory: Callable[[], Client] | None = None):
        self.config = config
        self._client_factory = client_factory or self._connect
        self._client: Client | None = None
        self._default_retries = max(0, config.rpc.retries)
        self._default_delay = max(0.1, config.rpc.backoff)

    def _connect(self) -> Client:
        return Client(
            host=self.config.rpc.host,
            port=self.config.rpc.port,
            username=self.config.rpc.username,
            password=self.config.rpc.password,
            timeout=self.config.rpc.timeout,
        )

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = self._client_factory()
        return self._client

    def reset(self) -> None:
        self._client = None

    async def _rpc(self, method_name: str, *args, retries: int | None = None, **kwargs):
        """Call Transmission RPC with bounded retries and backoff."""
        attempts = (self._default_retries if retries is None else retries) + 1
        delay = self._default_delay
        last_error: Exception | None = None

        for attempt in range(attempts):
            try:
                method = getattr(self.client, method_name)
                return await asyncio.to_thread(method, *args, **kwargs)
            except TransmissionError as exc:
                last_error = exc
                self.reset()
                LOG.debug("RPC %s failed (%s/%s): %s", method_name, attempt + 1, attempts, exc)
            except OSError as exc:  # network/timeouts
                last_error = exc
                self.reset()
                LOG.debug("RPC %s failed (%s/%s): %s", method_name, attempt + 1, attempts, exc)

            if attempt < attempts - 1:
                await asyncio.sleep(delay)
                delay = min(delay * 1.6, 5.0)

        if last_error:
            raise last_error
        raise TransmissionError("Unknown RPC failure")

    async def _call(self, method_name: str, *args, retries: int | None = None, **kwargs):
        """RPC wrapper with asyncio timeout."""
        timeout = self.config.rpc.timeout * ((self._default_retries if retries is None else retries) + 1)
        return await asyncio.wait_for(self._rpc(method_name, *args, retries=retries, **kwargs), timeout=timeout)

    async def _command(self, method_name: str, *args, **kwargs):
        """Send a mutating RPC exactly once; the caller sees any failure."""
        return await self._call(method_name, *args, retries=0, **kwargs)

    async def list_snapshots(self) -> SnapshotCollection:
        torrents = await self._call("get_torrents")
        return tuple(self._map_torrent(t) for t in torrents)

    async def watch(self) -> AsyncIterator[SnapshotCollection]:
        last: SnapshotCollection | None = None
        while True:
            try:
                collection = await self.list_snapshots()
            except (TransmissionError, OSError, asyncio.TimeoutError) as exc:
                LOG.warning("Polling torrents failed: %s", exc)
            else:
                if collection != last:
                    last = collection
                    yield collection
            await asyncio.sleep(self.config.stream.poll_interval)

    async def add_torrent(self, magnet_uri: str, save_path: str) -> None:
        await self._command("add_torrent", magnet_uri, download_dir=save_path, paused=False)

    async def pause_torrent(self, info_hash: str) -> None:
        await self._command("stop_torrent", [info_hash])

    async def resume_torrent(self, info_hash: str) -> None:
        # bypass_queue so a resume starts now, like Transmission's "Resume Now"
        await self._command("start_torrent", [info_hash], bypass_queue=True)

    async def remove_torrent(self, info_hash: str, delete_files: bool = False) -> None:
        await self._command("remove_torrent", [info_hash], delete_data=delete_files)

    async def set_file_priority(self, info_hash: str, index: int, priority: FilePriority) -> None:
        await self.set_file_priorities(info_hash, {index: priority})

    async def set_file_priorities(self, info_hash: str, mapping: Mapping[int, FilePriority]) -> None:
        kwargs = self.priority_arguments(mapping)
        if kwargs:
            await self._command("change_torrent", [info_hash], **kwargs)

    @staticmethod
    def priority_arguments(mapping: Mapping[int, FilePriority]) -> dict[str, list[int]]:
        """Translate a file priority map into ``change_torrent`` keyword arguments."""
        buckets: dict[str, list[int]] = {
            "files_unwanted": [],
            "files_wanted": [],
            "priority_low": [],
            "priority_normal": [],
            "priority_high": [],
        }
        for index, priority in sorted(mapping.items()):
            if priority == FilePriority.SKIP:
                buckets["files_unwanted"].append(index)
                continue
            buckets["files_wanted"].append(index)
            if priority == FilePriority.LOW:
                buckets["priority_low"].append(index)
            elif priority == FilePriority.NORMAL:
                buckets["priority_normal"].append(index)
            else:
                # no level above high in transmission
                buckets["priority_high"].append(index)
        return {key: ids for key, ids in buckets.items() if ids}

    def _map_torrent(self, t: Torrent) -> TorrentSnapshot:
        info_hash = str(getattr(t, "hash_string", None) or getattr(t, "hashString", "")).lower()
        files = tuple(self._map_files(info_hash, t))

        total = self._as_int(getattr(t, "total_size", None) or getattr(t, "totalSize", None))
        if files:
            downloaded = sum(f.downloaded for f in files)
            total = total or sum(f.size for f in files)
        else:
            left = self._as_int(getattr(t, "left_until_done", None))
            when_done = self._as_int(getattr(t, "size_when_done", None))
            downloaded = max(0, when_done - left)

        return TorrentSnapshot(
            info_hash=info_hash,
            name=str(getattr(t, "name", "") or info_hash),
            total_size=total,
            downloaded_size=min(downloaded, total),
            download_speed=max(0, self._as_int(getattr(t, "rate_download", None))),
            upload_speed=max(0, self._as_int(getattr(t, "rate_upload", None))),
            uploaded_total=max(0, self._as_int(getattr(t, "uploaded_ever", None))),
            num_peers=self._as_int(getattr(t, "peers_connected", None)),
            num_seeds=self._as_int(getattr(t, "peers_sending_to_us", None)),
            state=self._map_state(t),
            files=files,
            save_path=str(getattr(t, "download_dir", "") or ""),
            error=str(getattr(t, "error_string", "") or ""),
        )

    def _map_files(self, info_hash: str, t: Torrent):
        getter = getattr(t, "get_files", None)
        raw_files = getter() if callable(getter) else []
        for position, f in enumerate(raw_files or []):
            size = self._as_int(getattr(f, "size", 0))
            if getattr(f, "selected", True):
                priority = _RPC_PRIORITIES.get(self._as_int(getattr(f, "priority", 0)), FilePriority.NORMAL)
            else:
                priority = FilePriority.SKIP
            index = getattr(f, "id", None)
            yield FileEntry(
                info_hash=info_hash,
                index=position if index is None else int(index),
                path=str(getattr(f, "name", "")),
                size=size,
                downloaded=min(size, self._as_int(getattr(f, "completed", 0))),
                priority=priority,
            )

    def _map_state(self, t: Torrent) -> TorrentState:
        if self._as_int(getattr(t, "error", 0)):
            return TorrentState.ERROR
        raw = getattr(t, "status", "stopped")
        status = str(getattr(raw, "value", raw)).lower()
        state = _STATUS_STATES.get(status, TorrentState.STOPPED)
        if state == TorrentState.DOWNLOADING:
            metadata = getattr(t, "metadata_percent_complete", 1.0)
            if metadata is not None and float(metadata) < 1.0:
                return TorrentState.METADATA_DOWNLOADING
        if state == TorrentState.STOPPED and float(getattr(t, "percent_done", 0.0) or 0.0) >= 1.0:
            return TorrentState.FINISHED
        return state

    @staticmethod
    def _as_int(value: Any) -> int:
        try:
            return int(value or 0)
        except (TypeError, ValueError):
            return 0
