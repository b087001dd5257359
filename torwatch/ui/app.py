from __future__ import annotations

import shutil
from typing import Callable, Iterable, Optional, Sequence

import humanize
from textual import events, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal, Vertical
from textual.widgets import DataTable, Footer, Header, Markdown, RichLog, Static

from ..commands import CommandFailed, CommandIssuer, TorrentActions
from ..config import AppConfig
from ..engine import TorrentEngine, TransmissionEngine
from ..errors import NotFoundError, ValidationError
from ..filetypes import file_icon
from ..logging import get_logger
from ..metrics import (
    PRIORITY_LABELS,
    PRIORITY_STYLES,
    STATE_LABELS,
    eta_seconds,
    file_progress,
    format_byte_count,
    format_duration,
    format_percent,
    format_speed,
    progress_fraction,
    selected_file_count,
    share_ratio,
)
from ..models import FileEntry, FilePriority, TorrentSnapshot
from ..priority import PriorityBatchController
from ..reconcile import EditOp, Insert, Remove, Update, diff_files
from ..store import SnapshotStore, StoreUpdate, Subscription
from .modals import AddTorrentScreen, HelpScreen, PriorityPickScreen, RemoveTorrentScreen


LOG = get_logger(__name__)

TORRENT_COLUMNS = (("name", "Name"), ("done", "Done"), ("eta", "ETA"), ("down", "↓"), ("up", "↑"), ("ratio", "Ratio"), ("state", "Status"))
FILE_COLUMNS = (("name", "File"), ("size", "Size"), ("done", "Done"), ("priority", "Priority"))

# any field change refreshes these columns
TORRENT_FIELD_COLUMNS = {
    "name": ("name",),
    "downloaded_size": ("done", "eta", "ratio"),
    "total_size": ("done", "eta"),
    "download_speed": ("down", "eta"),
    "upload_speed": ("up",),
    "uploaded_total": ("ratio",),
    "state": ("state",),
}
FILE_FIELD_COLUMNS = {
    "path": ("name",),
    "size": ("size", "done"),
    "downloaded": ("done",),
    "priority": ("priority",),
}

def next_priority(current: FilePriority, supported: Sequence[FilePriority]) -> FilePriority:
    """The level after ``current`` among ``supported``, wrapping to the lowest."""
    levels = sorted(supported)
    return next((p for p in levels if p > current), levels[0])


def torrent_cells(t: TorrentSnapshot) -> dict[str, str]:
    return {
        "name": t.name,
        "done": format_percent(progress_fraction(t)),
        "eta": format_duration(eta_seconds(t)),
        "down": format_speed(t.download_speed),
        "up": format_speed(t.upload_speed),
        "ratio": f"{share_ratio(t):.2f}",
        "state": STATE_LABELS[t.state],
    }


def file_cells(f: FileEntry) -> dict[str, str]:
    style = PRIORITY_STYLES[f.priority]
    return {
        "name": f"{file_icon(f.path)} {f.path}",
        "size": format_byte_count(f.size),
        "done": format_percent(file_progress(f)),
        "priority": f"[{style}]{PRIORITY_LABELS[f.priority]}[/]",
    }


def row_key(key) -> str:
    if isinstance(key, tuple):
        return ":".join(str(part) for part in key)
    return str(key)


def apply_table_ops(
    table: DataTable,
    ops: Iterable[EditOp],
    cells: Callable[[object], dict[str, str]],
    columns: Sequence[tuple[str, str]],
    field_columns: dict[str, tuple[str, ...]],
) -> bool:
    """Apply reconciler ops to ``table``.

    Returns False when an insert lands mid-table (DataTable only appends); the
    caller must rebuild the table then.
    """
    for op in ops:
        if isinstance(op, Remove):
            table.remove_row(row_key(op.key))
        elif isinstance(op, Insert):
            if op.position != table.row_count:
                return False
            values = cells(op.item)
            table.add_row(*(values[key] for key, _ in columns), key=row_key(op.key))
        elif isinstance(op, Update):
            values = cells(op.item)
            touched = {col for name in op.changed_fields for col in field_columns.get(name, ())}
            for column in touched:
                table.update_cell(row_key(op.key), column, values[column])
    return True


def rebuild_table(table: DataTable, items: Iterable, key, cells, columns) -> None:
    table.clear()
    for item in items:
        values = cells(item)
        table.add_row(*(values[k] for k, _ in columns), key=row_key(key(item)))


class TorwatchApp(App):
    TITLE = "torwatch"
    DEFAULT_CSS = """
    #left { width: 60%; }
    #right { width: 40%; }
    #log { height: 8; }
    #files { height: 1fr; }
    .panel-title { text-style: bold; background: $boost; padding: 0 1; }
    .modal-container { border: tall $accent; width: 80%; max-width: 100; height: auto; background: $panel; padding: 1 2; }
    .modal-title { text-style: bold; padding-bottom: 1; }
    .buttons { height: auto; padding-top: 1; }
    AddTorrentScreen, RemoveTorrentScreen, PriorityPickScreen, HelpScreen { align: center middle; }
    """
    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("a", "add", "Add"),
        Binding("d", "delete", "Delete"),
        Binding("space", "toggle", "Pause/Start"),
        Binding("A", "select_all", "All files"),
        Binding("N", "deselect_all", "No files"),
        Binding("v", "videos", "Videos only"),
        Binding("p", "cycle_priority", "File priority"),
        Binding("?", "help", "Help"),
    ]

    def __init__(self, config: AppConfig, engine: TorrentEngine | None = None):
        super().__init__()
        self.config = config
        self.engine = engine or TransmissionEngine(config)
        self.store = SnapshotStore(self.engine, retry_delay=config.stream.retry_delay)
        self.issuer = CommandIssuer(surface_failures=config.commands.surface_failures)
        self.actions = TorrentActions(self.engine, self.issuer)
        self.priorities = PriorityBatchController(self.engine, self.store, self.issuer)
        self.selected_hash: Optional[str] = None
        self.selected: Optional[TorrentSnapshot] = None
        self._list_sub: Subscription | None = None
        self._detail_sub: Subscription | None = None
        self._unlisten: Callable[[], None] | None = None

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        with Container(id="main"):
            with Horizontal():
                with Vertical(id="left"):
                    yield Static("Torrents", classes="panel-title")
                    yield DataTable(id="table", zebra_stripes=True, cursor_type="row")
                    yield RichLog(id="log", highlight=True, markup=True)
                with Vertical(id="right"):
                    yield Static("Details", classes="panel-title")
                    yield Markdown("_Nothing selected_", id="details")
                    yield DataTable(id="files", cursor_type="row")
                    yield Static(id="stats")
        yield Footer()

    def on_mount(self) -> None:
        table = self.query_one("#table", DataTable)
        for key, label in TORRENT_COLUMNS:
            table.add_column(label, key=key)
        files = self.query_one("#files", DataTable)
        for key, label in FILE_COLUMNS:
            files.add_column(label, key=key)
        self._unlisten = self.issuer.on_failure(self._on_command_failed)
        self._list_sub = self.store.attach(self._on_update)

    def on_unmount(self) -> None:
        for sub in (self._detail_sub, self._list_sub):
            if sub is not None:
                sub.close()
        if self._unlisten:
            self._unlisten()
        self.store.clear()

    # stream consumers

    def _on_update(self, update: StoreUpdate) -> None:
        table = self.query_one("#table", DataTable)
        if not apply_table_ops(table, update.ops, torrent_cells, TORRENT_COLUMNS, TORRENT_FIELD_COLUMNS):
            LOG.debug("Rebuilding torrent table")
            rebuild_table(table, update.snapshots, lambda t: t.info_hash, torrent_cells, TORRENT_COLUMNS)
        if self.selected_hash is not None and self.store.get(self.selected_hash) is None:
            self._select(None)
        if self.selected_hash is None and update.snapshots:
            self._select(update.snapshots[0].info_hash)
        self._render_stats(update.snapshots)

    def _on_selected(self, snapshot: TorrentSnapshot | None) -> None:
        previous, self.selected = self.selected, snapshot
        files = self.query_one("#files", DataTable)
        ops = diff_files(previous, snapshot)
        if not apply_table_ops(files, ops, file_cells, FILE_COLUMNS, FILE_FIELD_COLUMNS):
            rebuild_table(files, snapshot.files if snapshot else (), lambda f: f.key, file_cells, FILE_COLUMNS)
        self._render_details()

    def _select(self, info_hash: str | None) -> None:
        if info_hash == self.selected_hash:
            return
        if self._detail_sub is not None:
            self._detail_sub.close()
            self._detail_sub = None
        self.selected_hash = info_hash
        self._on_selected(None)
        if info_hash is not None:
            self._detail_sub = self.store.attach_projection(info_hash, self._on_selected)

    def _on_command_failed(self, event: CommandFailed) -> None:
        self._log(f"[red]{event.message}[/]")

    # rendering

    def _render_details(self) -> None:
        details = self.query_one("#details", Markdown)
        t = self.selected
        if t is None:
            details.update("_Nothing selected_")
            return
        md = f"""
**{t.name}**

- Status: `{STATE_LABELS[t.state]}`
- Done: `{format_percent(progress_fraction(t))}` ({format_byte_count(t.downloaded_size)} / {format_byte_count(t.total_size)})
- ETA: `{format_duration(eta_seconds(t))}`
- Speed: `↓ {format_speed(t.download_speed)}` / `↑ {format_speed(t.upload_speed)}`
- Ratio: `{share_ratio(t):.2f}`
- Peers: `{t.num_peers}` (seeds {t.num_seeds})
- Files: `{selected_file_count(t)}` of `{len(t.files)}` selected
- Path: `{t.save_path}`
"""
        if t.error:
            md += f"\n**Error:** {t.error}\n"
        details.update(md)

    def _render_stats(self, snapshots: Sequence[TorrentSnapshot]) -> None:
        down = sum(t.download_speed for t in snapshots)
        up = sum(t.upload_speed for t in snapshots)
        try:
            usage = shutil.disk_usage(self.config.paths.download_dir)
            disk = f"{humanize.naturalsize(usage.free, binary=True)} free"
        except OSError:
            disk = "disk n/a"
        self.query_one("#stats", Static).update(
            f"[b]↓ {format_speed(down)}[/] · [b]↑ {format_speed(up)}[/] · {len(snapshots)} torrents · {disk}"
        )

    def _log(self, message: str) -> None:
        self.query_one("#log", RichLog).write(message)

    # actions

    @work(exclusive=True)
    async def action_add(self) -> None:
        result = await self.push_screen_wait(AddTorrentScreen(str(self.config.paths.download_dir)))
        if not result:
            return
        link, directory = result
        try:
            self.actions.add_torrent(link, directory)
        except ValidationError as exc:
            self._log(f"[red]{exc}[/]")
            return
        self._log(f"[green]Adding:[/] {link[:60]}")

    def action_toggle(self) -> None:
        if self.selected is None:
            return
        self.actions.toggle(self.selected)
        self._log(f"[yellow]Toggled:[/] {self.selected.name}")

    @work(exclusive=True)
    async def action_delete(self) -> None:
        torrent = self.selected
        if torrent is None:
            return
        answer = await self.push_screen_wait(RemoveTorrentScreen(torrent))
        if answer is None:
            return
        self.actions.remove_torrent(torrent.info_hash, delete_files=answer)
        self._log(f"[red]Removing:[/] {torrent.name} (data: {'yes' if answer else 'no'})")

    @work(exclusive=True)
    async def action_select_all(self) -> None:
        if self.selected_hash is None:
            return
        priority = await self.push_screen_wait(
            PriorityPickScreen(self.config.ui.default_priority, self.engine.supported_priorities)
        )
        if priority is None:
            return
        self._priority_intent(lambda h: self.priorities.select_all(h, priority))

    def action_deselect_all(self) -> None:
        self._priority_intent(self.priorities.deselect_all)

    def action_videos(self) -> None:
        self._priority_intent(self.priorities.select_videos)

    def action_cycle_priority(self) -> None:
        files = self.query_one("#files", DataTable)
        if self.selected is None or files.row_count == 0:
            return
        key = files.coordinate_to_cell_key(files.cursor_coordinate).row_key.value
        index = int(str(key).rsplit(":", 1)[-1])
        entry = self.selected.file(index)
        if entry is None:
            return
        nxt = next_priority(entry.priority, self.engine.supported_priorities)
        self._priority_intent(lambda h: self.priorities.set_file_priority(h, index, nxt))

    def _priority_intent(self, issue: Callable[[str], object]) -> None:
        if self.selected_hash is None:
            return
        try:
            issue(self.selected_hash)
        except NotFoundError as exc:
            self._log(f"[yellow]{exc}[/]")

    async def action_help(self) -> None:
        await self.push_screen(HelpScreen(self.BINDINGS))

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        if event.data_table.id != "table" or event.row_key is None:
            return
        self._select(str(event.row_key.value))

    def on_resize(self, event: events.Resize) -> None:
        self._render_details()
