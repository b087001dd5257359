import asyncio

import pytest

from torwatch.commands import CommandIssuer, TorrentActions
from torwatch.errors import CommandFailure, ValidationError
from torwatch.models import TorrentState

from conftest import make_torrent

MAGNET = "magnet:?xt=urn:btih:ABC123&dn=Foo"


@pytest.mark.asyncio
async def test_add_torrent_issues_command(engine):
    actions = TorrentActions(engine, CommandIssuer())
    result = await actions.add_torrent(f"  {MAGNET} ", "/tmp/dl")
    assert result.ok
    assert engine.commands == [("add_torrent", (MAGNET, "/tmp/dl"))]


@pytest.mark.asyncio
@pytest.mark.parametrize("link,path", [("http://example.com", "/tmp"), ("", "/tmp"), (MAGNET, "  ")])
async def test_add_torrent_validation_never_reaches_engine(engine, link, path):
    actions = TorrentActions(engine, CommandIssuer())
    with pytest.raises(ValidationError):
        actions.add_torrent(link, path)
    await asyncio.sleep(0)
    assert engine.commands == []


@pytest.mark.asyncio
async def test_pause_resume_remove(engine):
    actions = TorrentActions(engine, CommandIssuer())
    await actions.pause_torrent("a")
    await actions.resume_torrent("a")
    await actions.remove_torrent("a", delete_files=True)
    assert engine.commands == [
        ("pause_torrent", ("a",)),
        ("resume_torrent", ("a",)),
        ("remove_torrent", ("a", True)),
    ]
    with pytest.raises(ValidationError):
        actions.pause_torrent(" ")


@pytest.mark.asyncio
async def test_toggle_follows_state(engine):
    actions = TorrentActions(engine, CommandIssuer())
    await actions.toggle(make_torrent("a", state=TorrentState.DOWNLOADING))
    await actions.toggle(make_torrent("b", state=TorrentState.STOPPED))
    assert [name for name, _ in engine.commands] == ["pause_torrent", "resume_torrent"]


@pytest.mark.asyncio
async def test_failures_are_logged_only_by_default(engine, caplog):
    engine.fail_with = RuntimeError("engine said no")
    issuer = CommandIssuer()
    events = []
    issuer.on_failure(events.append)

    result = await TorrentActions(engine, issuer).pause_torrent("a")

    assert not result.ok
    assert isinstance(result.error, CommandFailure)
    assert result.error.info_hash == "a"
    assert events == []
    assert "engine said no" in caplog.text


@pytest.mark.asyncio
async def test_failures_surface_as_events_when_enabled(engine):
    engine.fail_with = RuntimeError("engine said no")
    issuer = CommandIssuer(surface_failures=True)
    events = []
    remove = issuer.on_failure(events.append)

    await TorrentActions(engine, issuer).resume_torrent("a")
    assert len(events) == 1
    assert events[0].failure.command == "resume_torrent"
    assert "engine said no" in events[0].message

    remove()
    await TorrentActions(engine, issuer).resume_torrent("a")
    assert len(events) == 1


@pytest.mark.asyncio
async def test_broken_listener_does_not_leak(engine):
    engine.fail_with = RuntimeError("nope")
    issuer = CommandIssuer(surface_failures=True)

    def bad_listener(event):
        raise KeyError("listener bug")

    issuer.on_failure(bad_listener)
    result = await TorrentActions(engine, issuer).pause_torrent("a")
    assert not result.ok


@pytest.mark.asyncio
async def test_issue_does_not_block_caller(engine):
    engine.gate = asyncio.Event()
    issuer = CommandIssuer()
    task = TorrentActions(engine, issuer).pause_torrent("a")
    await asyncio.sleep(0)
    assert not task.done()
    assert issuer.pending == 1
    engine.gate.set()
    results = await issuer.drain()
    assert [r.ok for r in results] == [True]
    assert issuer.pending == 0
