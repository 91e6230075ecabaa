"""Chord notation engine: line classification, transposition and rendering.

Song bodies mix two chord notations:

  inline      ChordPro brackets inside the lyric:  ``[Am]Amazing [G]grace``
  chord row   a line of bare chords above the lyric it belongs to::

                    Am        G
                    Amazing grace

Every function here is pure.  Stored content is never rewritten; callers keep
the stored text and pass a single live transpose offset to :func:`render`
on every redraw, so repeated renders cannot accumulate drift.

Only sharp spellings are produced after transposition (``Bb`` + 0 → ``A#``).
"""

import re
from dataclasses import dataclass
from enum import Enum, auto

# ---------------------------------------------------------------------------
# Regexes
# ---------------------------------------------------------------------------

_ROOT = r"[A-G][#b]?"

# Quality suffixes come from a fixed set and may repeat: m7, maj7, madd9,
# m11.  "maj" must come before "m" so the alternation does not stop after
# the "m".  Other digits (sus4, A2, G5) are not chord suffixes here.
_QUALITY = r"(?:maj|m|dim|aug|sus|add|7|9|11|13)*"

_CHORD_PAT = rf"{_ROOT}{_QUALITY}(?:/{_ROOT})?"

# A single chord token, e.g. A, Am7, Cmaj7, G/B, Bbsus/F
CHORD_TOKEN_RE = re.compile(
    rf"^(?P<root>{_ROOT})(?P<quality>{_QUALITY})(?:/(?P<bass>{_ROOT}))?$"
)

# A bracketed chord token inside a lyric line.  Brackets holding anything
# else ([Chorus], [x2]) are left as lyric text.
BRACKETED_CHORD_RE = re.compile(rf"\[({_CHORD_PAT})\]")

# Lines at least this long are prose even if every word looks like a chord.
CHORD_ROW_MAX_LENGTH = 100

# ---------------------------------------------------------------------------
# Pitch tables
# ---------------------------------------------------------------------------

NOTES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]

FLAT_TO_SHARP = {"Db": "C#", "Eb": "D#", "Gb": "F#", "Ab": "G#", "Bb": "A#"}


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------


class LineType(Enum):
    INLINE = auto()  # lyric with [chord] tokens embedded
    CHORD_ROW = auto()  # chord-only line: Am  G  C/E
    LYRIC = auto()  # everything else, rendered verbatim


@dataclass(frozen=True)
class Segment:
    text: str
    is_chord: bool = False


@dataclass(frozen=True)
class RenderedLine:
    kind: LineType
    segments: tuple[Segment, ...]

    @property
    def text(self) -> str:
        """Plain text of the line with chord brackets removed."""
        return "".join(s.text for s in self.segments)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def is_chord(token: str) -> bool:
    return CHORD_TOKEN_RE.match(token) is not None


def classify_line(line: str) -> LineType:
    """Classify one line of a song body.

    Precedence: inline-annotated, then chord row, then lyric.  A short lyric
    that happens to spell a chord ("A", "Am") is classified as a chord row;
    that false positive is part of the heuristic.
    """
    if BRACKETED_CHORD_RE.search(line):
        return LineType.INLINE

    tokens = line.split()
    if tokens and len(line) < CHORD_ROW_MAX_LENGTH and all(is_chord(t) for t in tokens):
        return LineType.CHORD_ROW

    return LineType.LYRIC


# ---------------------------------------------------------------------------
# Transposition
# ---------------------------------------------------------------------------


def _shift_note(note: str, semitones: int) -> str:
    sharp = FLAT_TO_SHARP.get(note, note)
    if sharp not in NOTES:
        # Cb, Fb, E#, B#: outside the normalization table, left as written
        return note
    # Python's % is already non-negative for a positive modulus
    return NOTES[(NOTES.index(sharp) + semitones) % 12]


def transpose_chord(token: str, semitones: int) -> str:
    """Shift *token* by *semitones*, preserving quality and slash bass.

    Anything that is not a chord token is returned unchanged.

    >>> transpose_chord("Am7", 2)
    'Bm7'
    >>> transpose_chord("Bb/D", 0)
    'A#/D'
    """
    m = CHORD_TOKEN_RE.match(token)
    if not m:
        return token
    result = _shift_note(m.group("root"), semitones) + m.group("quality")
    if m.group("bass"):
        result += "/" + _shift_note(m.group("bass"), semitones)
    return result


def transpose_chord_row(line: str, semitones: int) -> str:
    """Transpose every chord in a chord row, keeping the whitespace between them."""
    return re.sub(r"\S+", lambda m: transpose_chord(m.group(), semitones), line)


def transpose_content(content: str, semitones: int) -> str:
    """Return *content* with every chord shifted, as text.

    Used for export.  Display goes through :func:`render`, which never
    produces a rewritten body.
    """
    out: list[str] = []
    for line in content.splitlines():
        kind = classify_line(line)
        if kind == LineType.INLINE:
            line = BRACKETED_CHORD_RE.sub(
                lambda m: f"[{transpose_chord(m.group(1), semitones)}]", line
            )
        elif kind == LineType.CHORD_ROW:
            line = transpose_chord_row(line, semitones)
        out.append(line)
    return "\n".join(out)


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def render_line(line: str, offset: int = 0) -> RenderedLine:
    kind = classify_line(line)

    if kind == LineType.INLINE:
        # re.split with one capture group alternates text / chord / text ...
        parts = BRACKETED_CHORD_RE.split(line)
        segments = []
        for i, part in enumerate(parts):
            if i % 2:
                segments.append(Segment(_display_chord(part, offset), is_chord=True))
            elif part:
                segments.append(Segment(part))
        return RenderedLine(kind, tuple(segments))

    if kind == LineType.CHORD_ROW:
        text = transpose_chord_row(line, offset) if offset else line
        return RenderedLine(kind, (Segment(text, is_chord=True),))

    return RenderedLine(kind, (Segment(line),))


def render(content: str, offset: int = 0) -> list[RenderedLine]:
    """Render a song body with a live transpose offset.

    With ``offset == 0`` chords are shown as stored (flats kept); any other
    offset yields sharp spellings.
    """
    return [render_line(line, offset) for line in content.splitlines()]


def _display_chord(chord: str, offset: int) -> str:
    return transpose_chord(chord, offset) if offset else chord
