"""ChordPro export.

Renders a stored :class:`~chordflow.models.Song` to ChordPro (``.cho``) text::

    {title: Amazing Grace}
    {artist: John Newton}
    {key: G}

    [G]Amazing [C]grace

The body is written as stored.  Chord rows stay chord rows: ChordPro readers
display unrecognised lines verbatim, so a chords-over-lyrics layout survives
the round trip.  An optional transpose offset is applied to every chord
through :func:`~chordflow.chords.transpose_content`.

Usage::

    from chordflow.chordpro import ChordProFormatter
    text = ChordProFormatter().render(song, transpose=2)
    Path(default_filename(song)).write_text(text)
"""

import re

from .chords import transpose_chord, transpose_content
from .models import Song


def slugify(text: str) -> str:
    """Convert a string to a lowercase hyphenated slug suitable for filenames."""
    text = text.lower()
    text = re.sub(r"[^\w\s-]", "", text)  # drop punctuation
    text = re.sub(r"[\s_]+", "-", text)  # spaces/underscores → hyphens
    text = re.sub(r"-{2,}", "-", text)  # collapse multiple hyphens
    return text.strip("-")


def default_filename(song: Song) -> str:
    return f"{slugify(song.artist) or 'unknown'}-{slugify(song.title) or 'untitled'}.cho"


class ChordProFormatter:
    """Render a :class:`~chordflow.models.Song` to ChordPro text."""

    def render(self, song: Song, transpose: int = 0) -> str:
        """Return ChordPro text for *song*.

        The returned string ends with a single newline and uses Unix line
        endings (``\\n``) throughout.
        """
        parts = [f"{{title: {song.title}}}", f"{{artist: {song.artist}}}"]
        if song.key:
            key = transpose_chord(song.key, transpose) if transpose else song.key
            parts.append(f"{{key: {key}}}")

        body = transpose_content(song.content, transpose) if transpose else song.content
        body = "\n".join(body.splitlines()).strip("\n")
        if body:
            parts.append("")  # blank line between metadata and body
            parts.append(body)

        return "\n".join(parts) + "\n"
