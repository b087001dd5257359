from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from .engine import TorrentEngine
from .errors import CommandFailure, ValidationError
from .logging import get_logger
from .magnet import extract_display_name, validate_magnet_uri
from .metrics import is_active
from .models import TorrentSnapshot


LOG = get_logger(__name__)


@dataclass(frozen=True)
class CommandResult:
    command: str
    info_hash: Optional[str]
    ok: bool
    error: Optional[CommandFailure] = None


@dataclass(frozen=True)
class CommandFailed:
    """Event published for a failed command when failures are surfaced."""

    failure: CommandFailure

    @property
    def message(self) -> str:
        return str(self.failure)


FailureListener = Callable[[CommandFailed], None]


class CommandIssuer:
    """Runs engine commands as tasks the caller does not have to await.

    Each task resolves to a :class:`CommandResult`. A failure is always
    logged; listeners registered with :meth:`on_failure` hear about it only
    when ``surface_failures`` is set.
    """

    def __init__(self, *, surface_failures: bool = False):
        self.surface_failures = surface_failures
        self._listeners: list[FailureListener] = []
        self._tasks: set[asyncio.Task] = set()

    def on_failure(self, listener: FailureListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def issue(
        self,
        command: str,
        call: Callable[[], Awaitable[None]],
        *,
        info_hash: str | None = None,
    ) -> "asyncio.Task[CommandResult]":
        task = asyncio.get_running_loop().create_task(
            self._run(command, call, info_hash), name=f"torwatch:{command}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> list[CommandResult]:
        if not self._tasks:
            return []
        return list(await asyncio.gather(*list(self._tasks)))

    async def _run(self, command: str, call: Callable[[], Awaitable[None]], info_hash: str | None) -> CommandResult:
        try:
            await call()
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # engine and transport errors alike
            failure = CommandFailure(command, info_hash, exc)
            LOG.error("%s", failure)
            if self.surface_failures:
                self._publish(CommandFailed(failure))
            return CommandResult(command, info_hash, ok=False, error=failure)
        LOG.debug("%s%s done", command, f" for {info_hash}" if info_hash else "")
        return CommandResult(command, info_hash, ok=True)

    def _publish(self, event: CommandFailed) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:  # noqa: BLE001
                LOG.exception("Failure listener %r raised", listener)


def _require_id(info_hash: str) -> str:
    value = (info_hash or "").strip()
    if not value:
        raise ValidationError("Torrent id is required")
    return value


class TorrentActions:
    """Add/pause/resume/remove commands against the engine."""

    def __init__(self, engine: TorrentEngine, issuer: CommandIssuer):
        self.engine = engine
        self.issuer = issuer

    def add_torrent(self, magnet_uri: str, save_path: str) -> "asyncio.Task[CommandResult]":
        link = validate_magnet_uri(magnet_uri)
        directory = (save_path or "").strip()
        if not directory:
            raise ValidationError("Download directory is required")
        LOG.info("Adding %s into %s", extract_display_name(link) or link[:60], directory)
        return self.issuer.issue("add_torrent", lambda: self.engine.add_torrent(link, directory))

    def pause_torrent(self, info_hash: str) -> "asyncio.Task[CommandResult]":
        key = _require_id(info_hash)
        return self.issuer.issue("pause_torrent", lambda: self.engine.pause_torrent(key), info_hash=key)

    def resume_torrent(self, info_hash: str) -> "asyncio.Task[CommandResult]":
        key = _require_id(info_hash)
        return self.issuer.issue("resume_torrent", lambda: self.engine.resume_torrent(key), info_hash=key)

    def remove_torrent(self, info_hash: str, delete_files: bool = False) -> "asyncio.Task[CommandResult]":
        key = _require_id(info_hash)
        return self.issuer.issue(
            "remove_torrent",
            lambda: self.engine.remove_torrent(key, delete_files),
            info_hash=key,
        )

    def toggle(self, snapshot: TorrentSnapshot) -> "asyncio.Task[CommandResult]":
        if is_active(snapshot):
            return self.pause_torrent(snapshot.info_hash)
        return self.resume_torrent(snapshot.info_hash)
