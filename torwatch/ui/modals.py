from __future__ import annotations

from typing import Iterable, TypeVar

from textual.binding import Binding
from textual.containers import Container, Horizontal
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, Markdown, Static

from ..logging import get_logger
from ..magnet import extract_display_name, is_valid_magnet_uri
from ..metrics import PRIORITY_LABELS, format_byte_count
from ..models import FilePriority, TorrentSnapshot

T = TypeVar("T")
LOG = get_logger(__name__)


class BaseModalScreen(ModalScreen[T]):
    """Modal screen that closes on Escape."""

    BINDINGS = [Binding("escape", "cancel", "Cancel", priority=True)]

    def action_cancel(self) -> None:
        self.dismiss(None)


class AddTorrentScreen(BaseModalScreen[tuple[str, str] | None]):
    """Magnet link + download directory."""

    def __init__(self, download_dir: str) -> None:
        super().__init__()
        self.download_dir = download_dir

    def compose(self):
        with Container(classes="modal-container", id="add-box"):
            yield Static("Add Torrent", classes="modal-title")
            yield Label("Magnet Link:")
            yield Input(placeholder="magnet:?xt=urn:btih:...", id="link")
            yield Label("", id="magnet-name", classes="modal-label")
            yield Label("Download Directory:")
            yield Input(value=self.download_dir, id="dir")
            with Horizontal(classes="buttons"):
                yield Button("Add", variant="primary", id="ok")
                yield Button("Cancel", id="cancel")

    def on_mount(self) -> None:
        self.query_one("#link", Input).focus()

    def on_input_changed(self, event: Input.Changed) -> None:
        if event.input.id != "link":
            return
        hint = self.query_one("#magnet-name", Label)
        link = event.value.strip()
        if not link:
            hint.update("")
        elif not is_valid_magnet_uri(link):
            hint.update("[red]Not a magnet link[/]")
        else:
            hint.update(f"[green]{extract_display_name(link) or 'Unnamed torrent'}[/]")

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self._submit()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "ok":
            self._submit()
        else:
            self.dismiss(None)

    def _submit(self) -> None:
        link = self.query_one("#link", Input).value.strip()
        directory = self.query_one("#dir", Input).value.strip()
        LOG.info("AddTorrentScreen submit: link='%s', dir='%s'", link[:80], directory)
        if link:
            self.dismiss((link, directory or self.download_dir))
        else:
            self.dismiss(None)


class RemoveTorrentScreen(BaseModalScreen[bool | None]):
    """Ask whether to remove a torrent and its data.

    Dismisses with ``True`` to delete downloaded files as well, ``False`` to
    keep them and ``None`` when the user backs out.
    """

    BINDINGS = [
        Binding("escape", "cancel", "Cancel", priority=True),
        Binding("y", "choose(True)", "Remove + data"),
        Binding("n", "choose(False)", "Keep data"),
    ]

    def __init__(self, torrent: TorrentSnapshot) -> None:
        super().__init__()
        self.torrent = torrent

    def compose(self):
        t = self.torrent
        with Container(classes="modal-container", id="remove-box"):
            yield Static(f"Remove {t.name}?", classes="modal-title")
            yield Label(
                f"{format_byte_count(t.downloaded_size)} downloaded to {t.save_path or 'the default directory'}",
                classes="modal-label",
            )
            with Horizontal(classes="buttons"):
                yield Button("Remove + data", id="delete", variant="error")
                yield Button("Keep data", id="keep", variant="primary")
                yield Button("Cancel", id="cancel")

    def on_mount(self) -> None:
        self.query_one("#keep", Button).focus()

    def action_choose(self, delete_files: bool) -> None:
        self.dismiss(delete_files)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        choice = {"delete": True, "keep": False}.get(event.button.id or "")
        self.dismiss(choice)


class PriorityPickScreen(BaseModalScreen[FilePriority | None]):
    """Pick the priority used for "select all"."""

    CHOICES = (FilePriority.NORMAL, FilePriority.HIGH, FilePriority.MAXIMUM)

    def __init__(
        self,
        default: FilePriority = FilePriority.NORMAL,
        supported: Iterable[FilePriority] = tuple(FilePriority),
    ) -> None:
        super().__init__()
        allowed = set(supported)
        self.choices = tuple(p for p in self.CHOICES if p in allowed) or (FilePriority.NORMAL,)
        self.default = default if default in self.choices else self.choices[-1]

    def compose(self):
        with Container(classes="modal-container", id="prio-box"):
            yield Static("Select all files at", classes="modal-title")
            with Horizontal(classes="buttons"):
                for priority in self.choices:
                    yield Button(PRIORITY_LABELS[priority], id=f"prio-{priority.name.lower()}")
                yield Button("Cancel", id="cancel")

    def on_mount(self) -> None:
        self.query_one(f"#prio-{self.default.name.lower()}", Button).focus()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        for priority in self.choices:
            if event.button.id == f"prio-{priority.name.lower()}":
                self.dismiss(priority)
                return
        self.dismiss(None)


class HelpScreen(BaseModalScreen[None]):
    """Key reference built from the bindings the app actually has."""

    def __init__(self, bindings: Iterable[Binding]) -> None:
        super().__init__()
        self.shortcuts = [b for b in bindings if b.show]

    def _markdown(self) -> str:
        rows = [f"| `{'Space' if b.key == 'space' else b.key}` | {b.description} |" for b in self.shortcuts]
        return "\n".join(["| Key | Action |", "|-----|--------|", *rows, "| `Tab` | Switch between torrents and files |"])

    def compose(self):
        with Container(classes="modal-container", id="help-box"):
            yield Static("Keys", classes="modal-title")
            yield Markdown(self._markdown())
            with Horizontal(classes="buttons"):
                yield Button("Close", id="close", variant="primary")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(None)
