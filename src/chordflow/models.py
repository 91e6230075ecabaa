import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from .exceptions import InvalidStructuredDataError


def new_id() -> str:
    return uuid.uuid4().hex


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class Song:
    """A stored song.

    ``content`` is the raw body exactly as entered: chords are either embedded
    inline (``[Am]Amazing [G]grace``) or sit on their own line above the lyric.
    It is never rewritten by transposition.
    """

    title: str
    artist: str
    content: str = ""
    id: str = field(default_factory=new_id)
    key: str | None = None
    has_audio: bool = False
    created_at: int = field(default_factory=now_ms)

    def to_dict(self) -> dict[str, Any]:
        data = {
            "id": self.id,
            "title": self.title,
            "artist": self.artist,
            "content": self.content,
            "hasAudio": self.has_audio,
            "createdAt": self.created_at,
        }
        if self.key:
            data["key"] = self.key
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Song":
        return cls(
            id=str(data["id"]),
            title=data.get("title") or "",
            artist=data.get("artist") or "",
            content=data.get("content") or "",
            key=data.get("key") or None,
            has_audio=bool(data.get("hasAudio", False)),
            created_at=int(data.get("createdAt") or 0),
        )


@dataclass
class Setlist:
    """An ordered list of song ids.

    Ids are not checked against the song collection when written; readers
    must skip ids whose song no longer exists.
    """

    name: str
    song_ids: list[str] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    created_at: int = field(default_factory=now_ms)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "songIds": list(self.song_ids),
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Setlist":
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            song_ids=[str(i) for i in data.get("songIds") or []],
            created_at=int(data.get("createdAt") or 0),
        )


def _require_str(payload: dict, name: str, required: bool = True) -> str:
    value = payload.get(name)
    if value is None and not required:
        return ""
    if not isinstance(value, str):
        raise InvalidStructuredDataError(f"field {name!r} missing or not a string")
    return value


@dataclass(frozen=True)
class SearchCandidate:
    """One hit from a remote search. Never stored."""

    title: str
    artist: str
    snippet: str = ""

    @classmethod
    def from_payload(cls, payload: Any) -> "SearchCandidate":
        if not isinstance(payload, dict):
            raise InvalidStructuredDataError("search result is not an object")
        return cls(
            title=_require_str(payload, "title").strip(),
            artist=_require_str(payload, "artist").strip(),
            snippet=_require_str(payload, "snippet", required=False).strip(),
        )


@dataclass(frozen=True)
class ImportResult:
    """Song-shaped output of the acquisition pipeline."""

    title: str
    artist: str
    content: str

    @classmethod
    def from_payload(cls, payload: Any) -> "ImportResult":
        if not isinstance(payload, dict):
            raise InvalidStructuredDataError("expected an object with title/artist/content")
        result = cls(
            title=_require_str(payload, "title").strip(),
            artist=_require_str(payload, "artist").strip(),
            # leading spaces matter: chord rows are column-aligned
            content=_require_str(payload, "content").strip("\n"),
        )
        if not result.content.strip():
            raise InvalidStructuredDataError("field 'content' is empty")
        return result

    def to_song(self) -> Song:
        return Song(title=self.title, artist=self.artist, content=self.content)
