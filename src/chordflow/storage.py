"""Persistence for songs, setlists and offline audio.

Two independent stores are involved:

records
    Holds the ``chordflow_songs`` and ``chordflow_setlists`` collections, each
    a JSON array.  Every save reads the whole collection, replaces or appends
    one record, and writes the whole collection back.

blobs
    One audio file per song id.  Nothing in the substrate ties a blob to its
    song; :class:`Library` keeps them consistent.

Deleting a song is a best-effort cascade and is not transactional::

    1. delete the audio blob       (failure logged, not raised)
    2. drop the song record
    3. strip the id from every setlist, saving each one

A failure part-way through step 3 leaves setlists pointing at a song that no
longer exists.  That is tolerated: :meth:`Library.setlist_songs` skips ids it
cannot resolve.
"""

import json
import logging
import re
from pathlib import Path
from typing import Protocol

from .exceptions import StorageError
from .models import ImportResult, Setlist, Song

logger = logging.getLogger(__name__)

SONGS_KEY = "chordflow_songs"
SETLISTS_KEY = "chordflow_setlists"

# Keys become file names in DirectoryStore
_SAFE_KEY_RE = re.compile(r"[\w.-]+")


# ---------------------------------------------------------------------------
# Key-value substrate
# ---------------------------------------------------------------------------


class KeyValueStore(Protocol):
    def get(self, key: str) -> bytes | None: ...

    def set(self, key: str, value: bytes) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    """In-process store, mostly for tests."""

    def __init__(self):
        self.data: dict[str, bytes] = {}

    def get(self, key: str) -> bytes | None:
        return self.data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self.data[key] = bytes(value)

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


class DirectoryStore:
    """One file per key under *root*."""

    def __init__(self, root: Path, suffix: str = ""):
        self.root = Path(root)
        self.suffix = suffix

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY_RE.fullmatch(key) or key.startswith("."):
            raise StorageError(key, "key is not a safe file name")
        return self.root / f"{key}{self.suffix}"

    def get(self, key: str) -> bytes | None:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError(key, str(exc)) from exc

    def set(self, key: str, value: bytes) -> None:
        path = self._path(key)
        tmp = path.with_name(path.name + ".tmp")
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(value)
            tmp.replace(path)
        except OSError as exc:
            raise StorageError(key, str(exc)) from exc

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(key, str(exc)) from exc


# ---------------------------------------------------------------------------
# Library
# ---------------------------------------------------------------------------


class Library:
    """Songs, setlists and audio, with the consistency rules between them."""

    def __init__(self, records: KeyValueStore, blobs: KeyValueStore):
        self.records = records
        self.blobs = blobs

    @classmethod
    def open(cls, data_dir: Path) -> "Library":
        data_dir = Path(data_dir)
        return cls(
            DirectoryStore(data_dir, suffix=".json"),
            DirectoryStore(data_dir / "audio"),
        )

    # --- Songs ---

    def get_songs(self) -> list[Song]:
        return [Song.from_dict(d) for d in self._load(SONGS_KEY)]

    def get_song(self, song_id: str) -> Song | None:
        return next((s for s in self.get_songs() if s.id == song_id), None)

    def save_song(self, song: Song) -> Song:
        """Replace the song with the same id, or append it."""
        songs = self.get_songs()
        _upsert(songs, song)
        self._dump(SONGS_KEY, [s.to_dict() for s in songs])
        return song

    def delete_song(self, song_id: str) -> None:
        try:
            self.blobs.delete(song_id)
        except StorageError as exc:
            logger.warning("Could not delete audio for song %s: %s", song_id, exc)

        songs = [s for s in self.get_songs() if s.id != song_id]
        self._dump(SONGS_KEY, [s.to_dict() for s in songs])

        for setlist in self.get_setlists():
            if song_id in setlist.song_ids:
                setlist.song_ids = [i for i in setlist.song_ids if i != song_id]
                self.save_setlist(setlist)

    def search_songs(self, query: str) -> list[Song]:
        """Case-insensitive substring match on title or artist."""
        q = query.strip().lower()
        songs = self.get_songs()
        if not q:
            return songs
        return [s for s in songs if q in s.title.lower() or q in s.artist.lower()]

    def import_result(self, result: ImportResult) -> Song:
        """Store an acquisition result as a new song."""
        return self.save_song(result.to_song())

    # --- Setlists ---

    def get_setlists(self) -> list[Setlist]:
        return [Setlist.from_dict(d) for d in self._load(SETLISTS_KEY)]

    def get_setlist(self, setlist_id: str) -> Setlist | None:
        return next((s for s in self.get_setlists() if s.id == setlist_id), None)

    def save_setlist(self, setlist: Setlist) -> Setlist:
        setlists = self.get_setlists()
        _upsert(setlists, setlist)
        self._dump(SETLISTS_KEY, [s.to_dict() for s in setlists])
        return setlist

    def delete_setlist(self, setlist_id: str) -> None:
        setlists = [s for s in self.get_setlists() if s.id != setlist_id]
        self._dump(SETLISTS_KEY, [s.to_dict() for s in setlists])

    def create_setlist(self, name: str) -> Setlist:
        name = name.strip()
        if not name:
            raise ValueError("setlist name must not be empty")
        return self.save_setlist(Setlist(name=name))

    def rename_setlist(self, setlist: Setlist, name: str) -> Setlist:
        name = name.strip()
        if not name:
            raise ValueError("setlist name must not be empty")
        setlist.name = name
        return self.save_setlist(setlist)

    def add_to_setlist(self, setlist: Setlist, song_id: str) -> Setlist:
        """Append *song_id*.  Duplicates are allowed; existence is not checked."""
        setlist.song_ids.append(song_id)
        return self.save_setlist(setlist)

    def remove_from_setlist(self, setlist: Setlist, song_id: str) -> Setlist:
        """Remove every occurrence of *song_id*."""
        setlist.song_ids = [i for i in setlist.song_ids if i != song_id]
        return self.save_setlist(setlist)

    def setlist_songs(self, setlist: Setlist) -> list[Song]:
        """Resolve a setlist in order, skipping ids with no matching song."""
        by_id = {s.id: s for s in self.get_songs()}
        return [by_id[i] for i in setlist.song_ids if i in by_id]

    # --- Audio ---

    def attach_audio(self, song: Song, data: bytes) -> Song:
        """Store *data* as the song's audio and mark the song as having audio."""
        self.blobs.set(song.id, data)
        song.has_audio = True
        return self.save_song(song)

    def get_audio(self, song_id: str) -> bytes | None:
        """Return the audio blob, or ``None`` if missing or unreadable."""
        try:
            return self.blobs.get(song_id)
        except StorageError as exc:
            logger.error("Could not read audio for song %s: %s", song_id, exc)
            return None

    def detach_audio(self, song: Song) -> Song:
        self.blobs.delete(song.id)
        song.has_audio = False
        return self.save_song(song)

    # --- Internal helpers ---

    def _load(self, key: str) -> list[dict]:
        raw = self.records.get(key)
        if raw is None:
            return []
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise StorageError(key, f"corrupt collection: {exc}") from exc
        if not isinstance(data, list):
            raise StorageError(key, "collection is not a JSON array")
        return data

    def _dump(self, key: str, items: list[dict]) -> None:
        # compact separators keep the array on one line
        self.records.set(key, json.dumps(items, separators=(",", ":")).encode("utf-8"))


def _upsert(items: list, item) -> None:
    for i, existing in enumerate(items):
        if existing.id == item.id:
            items[i] = item
            return
    items.append(item)
