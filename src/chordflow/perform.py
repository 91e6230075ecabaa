"""Performance mode: one song on screen, optionally within a setlist.

The session owns three live controls and two resources:

- ``transpose``, ``font_size`` and ``scroll_speed`` are plain attributes with
  clamped setters.  :meth:`PerformanceSession.render` always renders the
  stored song content with the current offset.
- auto-scroll is a single asyncio task, replaced whenever the speed changes
  and cancelled when the session closes.
- offline audio is copied to a temporary file (:class:`AudioHandle`) while the
  song is loaded.  The handle is released before the next song's handle is
  acquired, and on close.
"""

import asyncio
import contextlib
import logging
import tempfile
from collections.abc import Callable
from pathlib import Path

from . import chords
from .models import Setlist, Song
from .storage import Library

logger = logging.getLogger(__name__)

DEFAULT_FONT_SIZE = 18
MIN_FONT_SIZE = 12
MAX_FONT_SIZE = 48
FONT_STEP = 2

MAX_SCROLL_SPEED = 10


def scroll_interval(speed: int) -> float:
    """Seconds between one-step scrolls: 46 ms at speed 1 down to 10 ms at speed 10."""
    return (50 - speed * 4) / 1000


class AudioHandle:
    """A song's audio blob materialised as a temporary file."""

    def __init__(self, path: Path):
        self.path = path

    @classmethod
    def from_bytes(cls, data: bytes, suffix: str = ".audio") -> "AudioHandle":
        with tempfile.NamedTemporaryFile(prefix="chordflow-", suffix=suffix, delete=False) as fh:
            fh.write(data)
        return cls(Path(fh.name))

    @property
    def released(self) -> bool:
        return not self.path.exists()

    def release(self) -> None:
        self.path.unlink(missing_ok=True)

    def __enter__(self) -> "AudioHandle":
        return self

    def __exit__(self, *exc) -> None:
        self.release()


class PerformanceSession:
    def __init__(
        self,
        library: Library,
        song: Song,
        setlist: Setlist | None = None,
        on_scroll: Callable[[int], None] | None = None,
    ):
        self.library = library
        self.setlist = setlist
        self.on_scroll = on_scroll

        self.transpose = 0
        self.font_size = DEFAULT_FONT_SIZE
        self.scroll_speed = 0
        self.scroll_position = 0
        self.is_playing = False
        self.audio: AudioHandle | None = None
        self._scroll_task: asyncio.Task | None = None

        self.setlist_songs: list[Song] = library.setlist_songs(setlist) if setlist else []
        self.index: int | None = next(
            (i for i, s in enumerate(self.setlist_songs) if s.id == song.id), None
        )
        self.song = song
        self._acquire_audio()

    async def __aenter__(self) -> "PerformanceSession":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    # --- Rendering ---

    def render(self) -> list[chords.RenderedLine]:
        return chords.render(self.song.content, self.transpose)

    def transpose_up(self) -> int:
        self.transpose += 1
        return self.transpose

    def transpose_down(self) -> int:
        self.transpose -= 1
        return self.transpose

    def reset_transpose(self) -> None:
        self.transpose = 0

    def set_font_size(self, size: int) -> int:
        self.font_size = max(MIN_FONT_SIZE, min(MAX_FONT_SIZE, size))
        return self.font_size

    def larger_text(self) -> int:
        return self.set_font_size(self.font_size + FONT_STEP)

    def smaller_text(self) -> int:
        return self.set_font_size(self.font_size - FONT_STEP)

    # --- Auto-scroll ---

    @property
    def scrolling(self) -> bool:
        return self._scroll_task is not None and not self._scroll_task.done()

    def set_scroll_speed(self, speed: int) -> None:
        """Change the scroll speed (0 stops).  Must be called from a running loop."""
        self.scroll_speed = max(0, min(MAX_SCROLL_SPEED, speed))
        self._stop_scroll()
        if self.scroll_speed:
            interval = scroll_interval(self.scroll_speed)
            self._scroll_task = asyncio.get_running_loop().create_task(self._scroll(interval))

    async def _scroll(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.scroll_position += 1
            if self.on_scroll is not None:
                self.on_scroll(1)

    def _stop_scroll(self) -> asyncio.Task | None:
        task, self._scroll_task = self._scroll_task, None
        if task is not None:
            task.cancel()
        return task

    # --- Audio ---

    def toggle_play(self) -> bool:
        """Flip play/pause.  Without loaded audio this does nothing."""
        if self.audio is None:
            return False
        self.is_playing = not self.is_playing
        return self.is_playing

    def _acquire_audio(self) -> None:
        if not self.song.has_audio:
            return
        data = self.library.get_audio(self.song.id)
        if data is None:
            logger.warning("Song %s is flagged as having audio but no blob was found", self.song.id)
            return
        self.audio = AudioHandle.from_bytes(data)

    def _release_audio(self) -> None:
        self.is_playing = False
        if self.audio is not None:
            self.audio.release()
            self.audio = None

    # --- Songs and setlist navigation ---

    def load_song(self, song: Song) -> None:
        self._release_audio()
        self.song = song
        self.scroll_position = 0
        self._acquire_audio()

    def select(self, index: int) -> Song:
        """Jump to the song at *index* in the setlist."""
        if not 0 <= index < len(self.setlist_songs):
            raise IndexError(f"setlist has no song at position {index}")
        song = self.setlist_songs[index]
        self.index = index
        self.load_song(song)
        return song

    def next_song(self) -> Song | None:
        if self.index is None or self.index + 1 >= len(self.setlist_songs):
            return None
        return self.select(self.index + 1)

    def previous_song(self) -> Song | None:
        if self.index is None or self.index == 0:
            return None
        return self.select(self.index - 1)

    # --- Teardown ---

    async def aclose(self) -> None:
        task = self._stop_scroll()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._release_audio()
