from dataclasses import replace

import pytest

from torwatch import metrics
from torwatch.filetypes import file_extension, file_icon, is_archive_file, is_audio_file, is_video_file
from torwatch.metrics import (
    eta_seconds,
    file_progress,
    format_byte_count,
    format_duration,
    format_speed,
    is_active,
    progress_fraction,
    selected_file_count,
    share_ratio,
)
from torwatch.models import FileEntry, FilePriority, TorrentState

from conftest import make_files, make_torrent


@pytest.mark.parametrize(
    "downloaded,total,expected",
    [(0, 1000, 0.0), (500, 1000, 0.5), (1000, 1000, 1.0), (0, 0, 0.0), (10, 0, 0.0)],
)
def test_progress_fraction(downloaded, total, expected):
    snap = make_torrent(total_size=total, downloaded_size=downloaded)
    assert progress_fraction(snap) == expected


def test_progress_fraction_is_bounded():
    for done in range(0, 1001, 37):
        value = progress_fraction(make_torrent(total_size=1000, downloaded_size=done))
        assert 0.0 <= value <= 1.0


def test_file_progress_zero_size():
    entry = FileEntry(info_hash="a", index=0, path="x", size=0)
    assert file_progress(entry) == 0.0
    assert file_progress(FileEntry(info_hash="a", index=0, path="x", size=4, downloaded=1)) == 0.25


def test_eta_unbounded_without_speed():
    assert eta_seconds(make_torrent(download_speed=0)) is None


def test_eta_rounds_up():
    snap = make_torrent(total_size=1000, downloaded_size=0, download_speed=300)
    assert eta_seconds(snap) == 4


def test_eta_when_complete():
    snap = make_torrent(total_size=1000, downloaded_size=1000, download_speed=10)
    assert eta_seconds(snap) == 0


def test_share_ratio():
    assert share_ratio(make_torrent(downloaded_size=0, uploaded_total=500)) == 0.0
    assert share_ratio(make_torrent(downloaded_size=400, uploaded_total=600)) == 1.5


def test_format_byte_count():
    assert format_byte_count(1536) == "1.5 KB"
    assert format_byte_count(0) == "0 B"
    assert format_byte_count(-5) == "0 B"
    assert format_byte_count(1024) == "1.0 KB"
    assert format_byte_count(1023) == "1023.0 B"
    assert format_byte_count(5 * 1024**3) == "5.0 GB"
    assert format_byte_count(2048 * 1024**4) == "2048.0 TB"


def test_format_byte_count_scaled_range():
    for n in (1, 999, 1024, 10**6, 3 * 10**9, 7 * 10**12):
        value, unit = format_byte_count(n).split()
        assert 1 <= float(value) < 1024
        assert unit in metrics.BYTE_UNITS


def test_format_byte_count_rounds_up_into_next_unit():
    assert format_byte_count(1048575) == "1.0 MB"
    assert format_byte_count(1024**3 - 1) == "1.0 GB"
    assert format_byte_count(1023.96) == "1.0 KB"


def test_format_speed():
    assert format_speed(0) == "0 B/s"
    assert format_speed(1536) == "1.5 KB/s"


@pytest.mark.parametrize(
    "seconds,expected",
    [(3661, "1h 01m"), (45, "45s"), (-1, "∞"), (None, "∞"), (0, "0s"), (61, "1m 01s"), (7200, "2h 00m")],
)
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected


def test_selected_file_count():
    files = make_files("a", "one.mkv", "two.txt", "three.nfo")
    files = (files[0], replace(files[1], priority=FilePriority.SKIP), files[2])
    assert selected_file_count(make_torrent("a", files=files)) == 2


def test_is_active():
    assert is_active(make_torrent(state=TorrentState.DOWNLOADING))
    assert is_active(make_torrent(state=TorrentState.METADATA_DOWNLOADING))
    assert not is_active(make_torrent(state=TorrentState.STOPPED))
    assert not is_active(make_torrent(state=TorrentState.FINISHED))


def test_label_tables_cover_every_member():
    assert set(metrics.PRIORITY_LABELS) == set(FilePriority)
    assert set(metrics.STATE_LABELS) == set(TorrentState)
    assert set(metrics.STATE_STYLES) == set(TorrentState)


def test_label_table_check_rejects_gaps():
    with pytest.raises(RuntimeError, match="LOW"):
        metrics._require_total({FilePriority.SKIP: "x"}, FilePriority, "table")


def test_file_types():
    assert file_extension("Show/S01E01.MKV") == "mkv"
    assert file_extension("README") == ""
    assert file_extension("dir.v2/notes") == ""
    assert is_video_file("a/b/movie.mp4")
    assert not is_video_file("a/b/movie.srt")
    assert is_audio_file("track.flac")
    assert is_archive_file("pack.7z")
    assert file_icon("x.rar") == "📦"
