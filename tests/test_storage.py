import json
import logging

import pytest

from chordflow.exceptions import StorageError
from chordflow.models import ImportResult, Setlist, Song
from chordflow.storage import SETLISTS_KEY, SONGS_KEY, DirectoryStore, Library, MemoryStore

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FailingDeleteStore(MemoryStore):
    def delete(self, key):
        raise StorageError(key, "disk on fire")


@pytest.fixture
def library() -> Library:
    return Library(MemoryStore(), MemoryStore())


def _song(song_id: str, title: str = "Song", artist: str = "Artist") -> Song:
    return Song(id=song_id, title=title, artist=artist, content="[G]la")


# ---------------------------------------------------------------------------
# Songs
# ---------------------------------------------------------------------------


def test_empty_library(library):
    assert library.get_songs() == []
    assert library.get_setlists() == []


def test_save_new_song_appends(library):
    library.save_song(_song("a"))
    library.save_song(_song("b"))
    assert [s.id for s in library.get_songs()] == ["a", "b"]


def test_save_existing_song_replaces_in_place(library):
    library.save_song(_song("a"))
    library.save_song(_song("b"))
    library.save_song(_song("a", title="Renamed"))
    songs = library.get_songs()
    assert len(songs) == 2
    assert songs[0].id == "a"
    assert songs[0].title == "Renamed"


def test_songs_persisted_as_single_line_json(library):
    library.save_song(Song(id="a", title="T", artist="A", content="line 1\nline 2"))
    raw = library.records.get(SONGS_KEY)
    assert b"\n" not in raw
    assert json.loads(raw)[0]["content"] == "line 1\nline 2"


def test_get_song(library):
    library.save_song(_song("a"))
    assert library.get_song("a").id == "a"
    assert library.get_song("missing") is None


def test_search_songs_matches_title_or_artist(library):
    library.save_song(_song("a", title="Amazing Grace", artist="Newton"))
    library.save_song(_song("b", title="The Weight", artist="The Band"))
    assert [s.id for s in library.search_songs("grace")] == ["a"]
    assert [s.id for s in library.search_songs("BAND")] == ["b"]
    assert len(library.search_songs("  ")) == 2


def test_import_result_creates_new_song(library):
    song = library.import_result(ImportResult("T", "A", "[C]hi"))
    assert library.get_song(song.id).content == "[C]hi"


def test_corrupt_collection_raises_storage_error(library):
    library.records.set(SONGS_KEY, b"{not json")
    with pytest.raises(StorageError):
        library.get_songs()


# ---------------------------------------------------------------------------
# Cascade delete
# ---------------------------------------------------------------------------


def test_delete_song_cascades(library):
    library.save_song(_song("a"))
    library.save_song(_song("b"))
    library.attach_audio(library.get_song("a"), b"mp3")
    first = library.save_setlist(Setlist(id="s1", name="One", song_ids=["a", "b", "a"]))
    library.save_setlist(Setlist(id="s2", name="Two", song_ids=["b"]))

    library.delete_song("a")

    assert library.get_song("a") is None
    assert library.blobs.get("a") is None
    assert library.get_setlist(first.id).song_ids == ["b"]
    assert library.get_setlist("s2").song_ids == ["b"]
    for setlist in library.get_setlists():
        assert "a" not in setlist.song_ids


def test_delete_song_continues_when_blob_delete_fails(caplog):
    library = Library(MemoryStore(), FailingDeleteStore())
    library.save_song(_song("a"))
    library.save_setlist(Setlist(id="s1", name="One", song_ids=["a"]))

    with caplog.at_level(logging.WARNING):
        library.delete_song("a")

    assert library.get_song("a") is None
    assert library.get_setlist("s1").song_ids == []
    assert "disk on fire" in caplog.text


def test_delete_unknown_song_is_harmless(library):
    library.save_song(_song("a"))
    library.delete_song("zzz")
    assert len(library.get_songs()) == 1


# ---------------------------------------------------------------------------
# Setlists
# ---------------------------------------------------------------------------


def test_create_setlist(library):
    setlist = library.create_setlist("  Sunday ")
    assert setlist.name == "Sunday"
    assert library.get_setlist(setlist.id).name == "Sunday"


def test_create_setlist_requires_name(library):
    with pytest.raises(ValueError):
        library.create_setlist("   ")


def test_rename_setlist(library):
    setlist = library.create_setlist("Old")
    library.rename_setlist(setlist, "New")
    assert library.get_setlist(setlist.id).name == "New"
    assert len(library.get_setlists()) == 1


def test_add_to_setlist_allows_duplicates_and_unknown_ids(library):
    setlist = library.create_setlist("Gig")
    library.add_to_setlist(setlist, "a")
    library.add_to_setlist(setlist, "a")
    library.add_to_setlist(setlist, "ghost")
    assert library.get_setlist(setlist.id).song_ids == ["a", "a", "ghost"]


def test_remove_from_setlist_removes_all_occurrences(library):
    setlist = library.save_setlist(Setlist(name="Gig", song_ids=["a", "b", "a"]))
    library.remove_from_setlist(setlist, "a")
    assert library.get_setlist(setlist.id).song_ids == ["b"]


def test_setlist_songs_skips_dangling_ids(library):
    library.save_song(_song("a", title="First"))
    library.save_song(_song("b", title="Second"))
    setlist = Setlist(name="Gig", song_ids=["b", "gone", "a", "b"])
    assert [s.title for s in library.setlist_songs(setlist)] == ["Second", "First", "Second"]


def test_delete_setlist_keeps_songs(library):
    library.save_song(_song("a"))
    setlist = library.save_setlist(Setlist(name="Gig", song_ids=["a"]))
    library.delete_setlist(setlist.id)
    assert library.get_setlists() == []
    assert library.get_song("a") is not None
    assert json.loads(library.records.get(SETLISTS_KEY)) == []


# ---------------------------------------------------------------------------
# Audio
# ---------------------------------------------------------------------------


def test_attach_and_detach_audio(library):
    song = library.save_song(_song("a"))
    library.attach_audio(song, b"\x00\x01")
    assert library.get_song("a").has_audio is True
    assert library.get_audio("a") == b"\x00\x01"

    library.detach_audio(library.get_song("a"))
    assert library.get_song("a").has_audio is False
    assert library.get_audio("a") is None


# ---------------------------------------------------------------------------
# DirectoryStore
# ---------------------------------------------------------------------------


def test_directory_store_round_trip(tmp_path):
    store = DirectoryStore(tmp_path / "data", suffix=".json")
    assert store.get("k") is None
    store.set("k", b"[]")
    assert (tmp_path / "data" / "k.json").read_bytes() == b"[]"
    assert store.get("k") == b"[]"
    store.delete("k")
    store.delete("k")
    assert store.get("k") is None


@pytest.mark.parametrize("key", ["../escape", "a/b", ".hidden", "", "song\n", "trailing\n"])
def test_directory_store_rejects_unsafe_keys(tmp_path, key):
    with pytest.raises(StorageError):
        DirectoryStore(tmp_path).get(key)


def test_library_open_on_disk(tmp_path):
    library = Library.open(tmp_path)
    song = library.save_song(_song("a"))
    library.attach_audio(song, b"mp3")
    assert (tmp_path / f"{SONGS_KEY}.json").exists()
    assert (tmp_path / "audio" / "a").read_bytes() == b"mp3"
    assert Library.open(tmp_path).get_song("a").has_audio is True
