import asyncio
import dataclasses
import logging
import mimetypes
import sys
from pathlib import Path

import click

from .acquisition.gemini import GeminiService
from .acquisition.session import AcquisitionSession, AcquisitionState, Failure, FailureKind
from .chordpro import ChordProFormatter, default_filename
from .chords import LineType, RenderedLine, render
from .config import Settings, load_settings
from .exceptions import ChordflowError, ConfigurationError
from .models import Setlist, Song
from .perform import PerformanceSession
from .storage import Library

CHORD_STYLE = {"fg": "yellow", "bold": True}


def _fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def _report_failure(failure: Failure | None) -> None:
    if failure is None:
        _fail("request was superseded")
    msg = failure.message
    if failure.kind == FailureKind.CONFIGURATION:
        msg += " (set CHORDFLOW_API_KEY)"
    _fail(msg)


class _Group(click.Group):
    """Command group that turns library errors into a one-line message."""

    def invoke(self, ctx: click.Context):
        try:
            return super().invoke(ctx)
        except ChordflowError as exc:
            _fail(str(exc))


class _App:
    def __init__(self, settings: Settings):
        self.settings = settings
        self.library = Library.open(settings.data_dir)

    def song(self, song_id: str) -> Song:
        """Look up a song by id or unique id prefix."""
        matches = [s for s in self.library.get_songs() if s.id.startswith(song_id)]
        exact = [s for s in matches if s.id == song_id]
        if exact:
            return exact[0]
        if len(matches) != 1:
            _fail(f"No song matches id {song_id!r}" if not matches else f"Ambiguous song id {song_id!r}")
        return matches[0]

    def setlist(self, setlist_id: str) -> Setlist:
        matches = [s for s in self.library.get_setlists() if s.id.startswith(setlist_id)]
        exact = [s for s in matches if s.id == setlist_id]
        if exact:
            return exact[0]
        if len(matches) != 1:
            _fail(
                f"No setlist matches id {setlist_id!r}"
                if not matches
                else f"Ambiguous setlist id {setlist_id!r}"
            )
        return matches[0]


pass_app = click.make_pass_decorator(_App)


def _song_row(song: Song) -> str:
    audio = " [audio]" if song.has_audio else ""
    return f"{song.id}  {song.title} - {song.artist}{audio}"


def _echo_line(line: RenderedLine) -> None:
    click.echo(
        "".join(
            click.style(f"[{seg.text}]" if line.kind == LineType.INLINE else seg.text, **CHORD_STYLE)
            if seg.is_chord
            else seg.text
            for seg in line.segments
        )
    )


def _echo_performance(session: PerformanceSession) -> None:
    song = session.song
    header = f"{song.title} - {song.artist}"
    if session.index is not None:
        header += f"  [{session.index + 1}/{len(session.setlist_songs)}]"
    if session.transpose:
        header += f"  (transpose {session.transpose:+d})"
    if session.audio is not None:
        header += "  [playing]" if session.is_playing else "  [audio paused]"
    click.echo()
    click.secho(header, bold=True)
    click.echo()
    for line in session.render():
        _echo_line(line)


def _run_session(settings: Settings, action) -> AcquisitionSession:
    """Run *action(session)* on a fresh acquisition session and return the session."""

    async def _go() -> AcquisitionSession:
        service = GeminiService(settings)
        session = AcquisitionSession(service)
        try:
            await action(session)
        finally:
            await service.aclose()
        return session

    return asyncio.run(_go())


@click.group(cls=_Group)
@click.option("--data-dir", type=click.Path(file_okay=False, path_type=Path), default=None,
              envvar="CHORDFLOW_DATA_DIR", help="Library location (default: ~/.chordflow).")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Log debug output to stderr.")
@click.pass_context
def main(ctx: click.Context, data_dir: Path | None, verbose: bool) -> None:
    """Store chord sheets, build setlists, and import songs from the web."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        settings = load_settings()
    except ConfigurationError as exc:
        _fail(str(exc))
    if data_dir is not None:
        settings.data_dir = data_dir.expanduser()
    ctx.obj = _App(settings)


# ---------------------------------------------------------------------------
# Songs
# ---------------------------------------------------------------------------


@main.command("list")
@click.argument("query", required=False, default="")
@pass_app
def list_songs(app: _App, query: str) -> None:
    """List songs, optionally filtered by title or artist."""
    songs = app.library.search_songs(query)
    if not songs:
        click.echo("No songs.")
        return
    for song in songs:
        click.echo(_song_row(song))


@main.command()
@click.argument("song_id")
@click.option("-t", "--transpose", default=0, show_default=True, help="Semitones to shift chords.")
@pass_app
def show(app: _App, song_id: str, transpose: int) -> None:
    """Print a song with chords highlighted."""
    song = app.song(song_id)
    header = f"{song.title} - {song.artist}"
    if transpose:
        header += f"  (transpose {transpose:+d})"
    click.secho(header, bold=True)
    click.echo()
    for line in render(song.content, transpose):
        _echo_line(line)


@main.command()
@click.argument("song_id")
@click.argument("source", type=click.File("r", encoding="utf-8"), required=False)
@click.option("--title", default=None)
@click.option("--artist", default=None)
@click.option("--key", default=None, help="Original key; pass '' to clear it.")
@pass_app
def edit(app: _App, song_id: str, source, title: str | None, artist: str | None,
         key: str | None) -> None:
    """Change a song's details, or replace its content from SOURCE ('-' reads stdin).

    The song keeps its id, so setlists and offline audio still refer to it.
    """
    song = app.song(song_id)
    changes = {}
    if title is not None:
        if not title.strip():
            _fail("title must not be empty")
        changes["title"] = title
    if artist is not None:
        changes["artist"] = artist
    if key is not None:
        changes["key"] = key.strip() or None
    if source is not None:
        changes["content"] = source.read()
    if not changes:
        _fail("nothing to change: give --title, --artist, --key or a SOURCE file")

    updated = app.library.save_song(dataclasses.replace(song, **changes))
    click.echo(f"Updated {updated.title} ({updated.id})")


@main.command()
@click.argument("source", type=click.File("r", encoding="utf-8"))
@click.option("--title", required=True)
@click.option("--artist", default="", show_default=False)
@click.option("--key", default=None, help="Original key, e.g. G.")
@pass_app
def add(app: _App, source, title: str, artist: str, key: str | None) -> None:
    """Add a song from a text file ('-' reads stdin)."""
    song = app.library.save_song(Song(title=title, artist=artist, content=source.read(), key=key))
    click.echo(f"Added {song.title} ({song.id})")


@main.command()
@click.argument("song_id")
@click.option("--yes", is_flag=True, default=False, help="Do not ask for confirmation.")
@pass_app
def delete(app: _App, song_id: str, yes: bool) -> None:
    """Delete a song, its audio, and its setlist entries."""
    song = app.song(song_id)
    if not yes:
        click.confirm(f"Delete {song.title}?", abort=True)
    app.library.delete_song(song.id)
    click.echo(f"Deleted {song.title}")


@main.command()
@click.argument("song_id")
@click.option("-o", "--output", "output_path", default=None, metavar="PATH",
              help="Output file path (default: <artist>-<title>.cho)")
@click.option("--stdout", is_flag=True, default=False,
              help="Print to stdout instead of writing a file.")
@click.option("-t", "--transpose", default=0, show_default=True, help="Semitones to shift chords.")
@pass_app
def export(app: _App, song_id: str, output_path: str | None, stdout: bool, transpose: int) -> None:
    """Export a song as ChordPro."""
    song = app.song(song_id)
    text = ChordProFormatter().render(song, transpose=transpose)

    if stdout:
        click.echo(text, nl=False)
        return

    dest = Path(output_path) if output_path else Path(default_filename(song))
    dest.write_text(text, encoding="utf-8")
    click.echo(f"Written to {dest}")


# ---------------------------------------------------------------------------
# Performance
# ---------------------------------------------------------------------------

PERFORM_KEYS = "keys: n next, p previous, +/- transpose, 0 reset, space play/pause, q quit"


@main.command()
@click.argument("song_id", required=False)
@click.option("-s", "--setlist", "setlist_id", default=None, metavar="ID",
              help="Step through this setlist (starts at SONG_ID or the first song).")
@click.option("-t", "--transpose", default=0, show_default=True, help="Starting transpose.")
@pass_app
def perform(app: _App, song_id: str | None, setlist_id: str | None, transpose: int) -> None:
    """Play a song or setlist from the keyboard."""
    sl = app.setlist(setlist_id) if setlist_id else None
    if song_id:
        song = app.song(song_id)
    elif sl is not None:
        songs = app.library.setlist_songs(sl)
        if not songs:
            _fail(f"Setlist {sl.name} has no songs")
        song = songs[0]
    else:
        _fail("give a SONG_ID or --setlist")

    async def _perform() -> None:
        async with PerformanceSession(app.library, song, sl) as session:
            session.transpose = transpose
            _echo_performance(session)
            click.echo(PERFORM_KEYS, err=True)
            while True:
                # end of input counts as quit
                key = await asyncio.to_thread(click.getchar)
                if key in ("", "q", "Q"):
                    break
                if key == "n":
                    changed = session.next_song() is not None
                elif key == "p":
                    changed = session.previous_song() is not None
                elif key in ("+", "="):
                    session.transpose_up()
                    changed = True
                elif key == "-":
                    session.transpose_down()
                    changed = True
                elif key == "0":
                    changed = session.transpose != 0
                    session.reset_transpose()
                elif key == " ":
                    changed = session.audio is not None
                    session.toggle_play()
                else:
                    changed = False
                if changed:
                    _echo_performance(session)

    asyncio.run(_perform())


# ---------------------------------------------------------------------------
# Acquisition
# ---------------------------------------------------------------------------


@main.command("import")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--mime-type", default=None, help="Override the guessed MIME type.")
@pass_app
def import_file(app: _App, path: Path, mime_type: str | None) -> None:
    """Transcribe a chord sheet (image, PDF, HTML or text) into a new song."""
    mime = mime_type or mimetypes.guess_type(path.name)[0] or "text/plain"
    data = path.read_bytes()

    session = _run_session(app.settings, lambda s: s.extract(data, mime))
    if session.state != AcquisitionState.IMPORTED:
        _report_failure(session.failure)

    song = app.library.import_result(session.result)
    click.echo(f"Imported {song.title} - {song.artist} ({song.id})")


@main.command()
@click.argument("query")
@click.option("--pick", type=int, default=None, metavar="N",
              help="Import result N without prompting.")
@pass_app
def search(app: _App, query: str, pick: int | None) -> None:
    """Search the web for a song and import the chosen result."""
    if not query.strip():
        _fail("search query must not be empty")

    async def _search_and_fetch(session: AcquisitionSession) -> None:
        if not await session.search(query):
            return
        for n, c in enumerate(session.candidates, start=1):
            click.echo(f"{n}. {c.title} - {c.artist}")
            if c.snippet:
                click.echo(f"   {c.snippet}")
        choice = pick
        if choice is None:
            choice = click.prompt(
                "Import which result?", type=click.IntRange(1, len(session.candidates))
            )
        if not 1 <= choice <= len(session.candidates):
            _fail(f"--pick must be between 1 and {len(session.candidates)}")
        await session.select(choice - 1)

    session = _run_session(app.settings, _search_and_fetch)
    if session.state != AcquisitionState.IMPORTED:
        _report_failure(session.failure)

    song = app.library.import_result(session.result)
    click.echo(f"Imported {song.title} - {song.artist} ({song.id})")


# ---------------------------------------------------------------------------
# Audio
# ---------------------------------------------------------------------------


@main.group()
def audio() -> None:
    """Manage offline audio tracks."""


@audio.command("attach")
@click.argument("song_id")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@pass_app
def audio_attach(app: _App, song_id: str, path: Path) -> None:
    """Store an audio file for offline playback."""
    song = app.library.attach_audio(app.song(song_id), path.read_bytes())
    click.echo(f"Attached {path.name} to {song.title}")


@audio.command("detach")
@click.argument("song_id")
@pass_app
def audio_detach(app: _App, song_id: str) -> None:
    """Remove a song's offline audio."""
    song = app.library.detach_audio(app.song(song_id))
    click.echo(f"Removed audio from {song.title}")


# ---------------------------------------------------------------------------
# Setlists
# ---------------------------------------------------------------------------


@main.group()
def setlist() -> None:
    """Create and edit setlists."""


@setlist.command("new")
@click.argument("name")
@pass_app
def setlist_new(app: _App, name: str) -> None:
    try:
        created = app.library.create_setlist(name)
    except ValueError as exc:
        _fail(str(exc))
    click.echo(f"Created {created.name} ({created.id})")


@setlist.command("list")
@pass_app
def setlist_list(app: _App) -> None:
    setlists = app.library.get_setlists()
    if not setlists:
        click.echo("No setlists.")
    for s in setlists:
        click.echo(f"{s.id}  {s.name} ({len(s.song_ids)} songs)")


@setlist.command("show")
@click.argument("setlist_id")
@pass_app
def setlist_show(app: _App, setlist_id: str) -> None:
    sl = app.setlist(setlist_id)
    click.secho(sl.name, bold=True)
    for n, song in enumerate(app.library.setlist_songs(sl), start=1):
        click.echo(f"{n:>3}. {_song_row(song)}")


@setlist.command("add")
@click.argument("setlist_id")
@click.argument("song_id")
@pass_app
def setlist_add(app: _App, setlist_id: str, song_id: str) -> None:
    sl, song = app.setlist(setlist_id), app.song(song_id)
    app.library.add_to_setlist(sl, song.id)
    click.echo(f"Added {song.title} to {sl.name}")


@setlist.command("remove")
@click.argument("setlist_id")
@click.argument("song_id")
@pass_app
def setlist_remove(app: _App, setlist_id: str, song_id: str) -> None:
    sl = app.setlist(setlist_id)
    # the song may already be gone; match against the raw ids
    target = next((i for i in sl.song_ids if i.startswith(song_id)), song_id)
    app.library.remove_from_setlist(sl, target)
    click.echo(f"Removed {target} from {sl.name}")


@setlist.command("rename")
@click.argument("setlist_id")
@click.argument("name")
@pass_app
def setlist_rename(app: _App, setlist_id: str, name: str) -> None:
    sl = app.setlist(setlist_id)
    try:
        app.library.rename_setlist(sl, name)
    except ValueError as exc:
        _fail(str(exc))
    click.echo(f"Renamed to {sl.name}")


@setlist.command("delete")
@click.argument("setlist_id")
@pass_app
def setlist_delete(app: _App, setlist_id: str) -> None:
    sl = app.setlist(setlist_id)
    app.library.delete_setlist(sl.id)
    click.echo(f"Deleted {sl.name}")
