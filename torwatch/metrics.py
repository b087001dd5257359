"""Human-facing quantities derived from snapshots.

Every function here is total: zero sizes, zero speeds and negative inputs
have defined outputs instead of raising.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Mapping, Optional

from .models import FileEntry, FilePriority, TorrentSnapshot, TorrentState


BYTE_UNITS = ("B", "KB", "MB", "GB", "TB")
UNBOUNDED = "∞"


def progress_fraction(snapshot: TorrentSnapshot) -> float:
    if snapshot.total_size <= 0:
        return 0.0
    return max(0.0, min(1.0, snapshot.downloaded_size / snapshot.total_size))


def file_progress(entry: FileEntry) -> float:
    if entry.size <= 0:
        return 0.0
    return max(0.0, min(1.0, entry.downloaded / entry.size))


def eta_seconds(snapshot: TorrentSnapshot) -> Optional[int]:
    """Seconds until done at the current rate, ``None`` when unbounded."""
    if snapshot.download_speed <= 0:
        return None
    remaining = max(0, snapshot.total_size - snapshot.downloaded_size)
    return math.ceil(remaining / snapshot.download_speed)


def share_ratio(snapshot: TorrentSnapshot) -> float:
    if snapshot.downloaded_size <= 0:
        return 0.0
    return snapshot.uploaded_total / snapshot.downloaded_size


def selected_file_count(snapshot: TorrentSnapshot) -> int:
    return sum(1 for entry in snapshot.files if entry.priority != FilePriority.SKIP)


def is_active(snapshot: TorrentSnapshot) -> bool:
    return snapshot.state in {
        TorrentState.DOWNLOADING,
        TorrentState.SEEDING,
        TorrentState.METADATA_DOWNLOADING,
    }


def format_byte_count(n: int | float) -> str:
    if n <= 0:
        return "0 B"
    exponent = min(int(math.log(n, 1024)), len(BYTE_UNITS) - 1) if n >= 1 else 0
    value = n / (1024**exponent)
    # log() can land a hair under an exact power of 1024
    if value >= 1024 and exponent < len(BYTE_UNITS) - 1:
        exponent += 1
        value /= 1024
    elif value < 1 and exponent > 0:
        exponent -= 1
        value *= 1024
    # 1048575 B would print as "1024.0 KB"
    if round(value, 1) >= 1024 and exponent < len(BYTE_UNITS) - 1:
        exponent += 1
        value /= 1024
    return f"{value:.1f} {BYTE_UNITS[exponent]}"


def format_speed(bytes_per_second: int | float) -> str:
    if bytes_per_second <= 0:
        return "0 B/s"
    return f"{format_byte_count(bytes_per_second)}/s"


def format_duration(seconds: Optional[int | float]) -> str:
    if seconds is None or seconds < 0:
        return UNBOUNDED
    seconds = int(seconds)
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes:02d}m"
    if minutes:
        return f"{minutes}m {secs:02d}s"
    return f"{secs}s"


def format_percent(fraction: float) -> str:
    return f"{fraction * 100:5.1f}%"


PRIORITY_LABELS: Mapping[FilePriority, str] = {
    FilePriority.SKIP: "Don't download",
    FilePriority.LOW: "Low",
    FilePriority.NORMAL: "Normal",
    FilePriority.HIGH: "High",
    FilePriority.MAXIMUM: "Maximum",
}

PRIORITY_STYLES: Mapping[FilePriority, str] = {
    FilePriority.SKIP: "dim",
    FilePriority.LOW: "grey70",
    FilePriority.NORMAL: "default",
    FilePriority.HIGH: "cyan",
    FilePriority.MAXIMUM: "bold green",
}

STATE_LABELS: Mapping[TorrentState, str] = {
    TorrentState.STOPPED: "⏸  Stopped",
    TorrentState.QUEUED: "⏳ Queued",
    TorrentState.METADATA_DOWNLOADING: "🧲 Metadata",
    TorrentState.CHECKING: "🔎 Checking",
    TorrentState.DOWNLOADING: "⬇️  Downloading",
    TorrentState.SEEDING: "⬆️  Seeding",
    TorrentState.FINISHED: "✅ Finished",
    TorrentState.ERROR: "❌ Error",
}

STATE_STYLES: Mapping[TorrentState, str] = {
    TorrentState.STOPPED: "yellow",
    TorrentState.QUEUED: "yellow",
    TorrentState.METADATA_DOWNLOADING: "green",
    TorrentState.CHECKING: "yellow",
    TorrentState.DOWNLOADING: "green",
    TorrentState.SEEDING: "blue",
    TorrentState.FINISHED: "magenta",
    TorrentState.ERROR: "red",
}


def _require_total(table: Mapping, enum: type[Enum], name: str) -> None:
    missing = [member.name for member in enum if member not in table]
    if missing:
        raise RuntimeError(f"{name} is missing entries for {', '.join(missing)}")


_require_total(PRIORITY_LABELS, FilePriority, "PRIORITY_LABELS")
_require_total(PRIORITY_STYLES, FilePriority, "PRIORITY_STYLES")
_require_total(STATE_LABELS, TorrentState, "STATE_LABELS")
_require_total(STATE_STYLES, TorrentState, "STATE_STYLES")
