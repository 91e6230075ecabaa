import pytest

from chordflow.chords import (
    NOTES,
    LineType,
    Segment,
    classify_line,
    is_chord,
    render,
    render_line,
    transpose_chord,
    transpose_chord_row,
    transpose_content,
)

# ---------------------------------------------------------------------------
# is_chord
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "token", ["A", "Am", "Am7", "Cmaj7", "F#m", "Bb", "Dsus", "Cadd9", "Am11", "G13", "Gdim", "Eaug", "G/B", "Bb/F"]
)
def test_is_chord_accepts_common_chords(token):
    assert is_chord(token)


@pytest.mark.parametrize("token", ["H", "am", "Chorus", "Amazing", "x2", "G/", "", "Dsus4", "A2", "G5"])
def test_is_chord_rejects_non_chords(token):
    assert not is_chord(token)


# ---------------------------------------------------------------------------
# classify_line
# ---------------------------------------------------------------------------


def test_classify_inline():
    assert classify_line("[Am]Hello [G]world") == LineType.INLINE


def test_classify_chord_row():
    assert classify_line("Am G C F") == LineType.CHORD_ROW


def test_classify_chord_row_with_alignment_spaces():
    assert classify_line("   Am        G/B     C") == LineType.CHORD_ROW


def test_classify_lyric():
    assert classify_line("just some words") == LineType.LYRIC


def test_classify_blank_is_lyric():
    assert classify_line("") == LineType.LYRIC
    assert classify_line("   ") == LineType.LYRIC


@pytest.mark.parametrize("line", ["Dsus4", "A2 B52", "G5 D5 E1999"])
def test_classify_digits_outside_quality_set_are_lyric(line):
    assert classify_line(line) == LineType.LYRIC


def test_lyric_with_stray_digits_is_not_transposed():
    assert transpose_content("A2 B52", 2) == "A2 B52"


def test_classify_section_bracket_is_not_inline():
    assert classify_line("[Chorus]") == LineType.LYRIC


def test_classify_inline_beats_chord_row():
    assert classify_line("[D] [G] [A]") == LineType.INLINE


def test_classify_long_chord_line_is_lyric():
    line = " ".join(["Am"] * 40)  # 119 characters
    assert len(line) >= 100
    assert classify_line(line) == LineType.LYRIC


def test_classify_single_letter_lyric_is_chord_row():
    # Known heuristic false positive: a lyric line "A" looks like a chord.
    assert classify_line("A") == LineType.CHORD_ROW


# ---------------------------------------------------------------------------
# transpose_chord
# ---------------------------------------------------------------------------


def test_transpose_up():
    assert transpose_chord("C", 2) == "D"
    assert transpose_chord("Am7", 2) == "Bm7"


def test_transpose_wraps_around():
    assert transpose_chord("B", 1) == "C"
    assert transpose_chord("C", -1) == "B"


def test_transpose_large_negative():
    assert transpose_chord("E", -25) == "D#"


def test_transpose_zero_normalizes_flats():
    assert transpose_chord("Bb", 0) == "A#"
    assert transpose_chord("Ebm7", 0) == "D#m7"
    assert transpose_chord("G", 0) == "G"


def test_transpose_slash_bass_follows_root():
    assert transpose_chord("G/B", 2) == "A/C#"
    assert transpose_chord("Ab/Eb", 1) == "A/E"


def test_transpose_preserves_quality():
    assert transpose_chord("Cmaj7", 5) == "Fmaj7"
    assert transpose_chord("Dsus", -2) == "Csus"


def test_transpose_non_chord_unchanged():
    assert transpose_chord("Chorus", 3) == "Chorus"


def test_transpose_composes():
    chords = ["C", "Db", "Am7", "G/B", "Bbmaj7/F", "F#dim"]
    for chord in chords:
        for a in range(-13, 14):
            for b in range(-13, 14):
                assert transpose_chord(transpose_chord(chord, a), b) == transpose_chord(
                    chord, (a + b) % 12
                )


def test_transpose_full_octave_is_normalized_identity():
    for note in NOTES:
        assert transpose_chord(note, 12) == note


# ---------------------------------------------------------------------------
# transpose_chord_row / transpose_content
# ---------------------------------------------------------------------------


def test_transpose_chord_row_keeps_spacing():
    assert transpose_chord_row("  C     G   Am", 2) == "  D     A   Bm"


def test_transpose_content_touches_only_chords():
    content = "[Chorus]\n[G]Amazing [C]grace\nG   D\nhow sweet the sound"
    assert transpose_content(content, 2) == (
        "[Chorus]\n[A]Amazing [D]grace\nA   E\nhow sweet the sound"
    )


# ---------------------------------------------------------------------------
# render
# ---------------------------------------------------------------------------


def test_render_inline_segments():
    line = render_line("[Am]Hello [G]world")
    assert line.kind == LineType.INLINE
    assert line.segments == (
        Segment("Am", is_chord=True),
        Segment("Hello "),
        Segment("G", is_chord=True),
        Segment("world"),
    )


def test_render_inline_transposed():
    line = render_line("[Am]Hello [G]world", 2)
    assert [s.text for s in line.segments if s.is_chord] == ["Bm", "A"]


def test_render_inline_keeps_non_chord_brackets_as_text():
    line = render_line("[G]Sing it [x2]")
    assert line.segments[-1] == Segment("Sing it [x2]")


def test_render_chord_row():
    line = render_line("Am  G", 1)
    assert line.kind == LineType.CHORD_ROW
    assert line.segments == (Segment("A#m  G#", is_chord=True),)


def test_render_zero_offset_keeps_stored_spelling():
    assert render_line("Bb  F").segments[0].text == "Bb  F"


def test_render_lyric_verbatim():
    line = render_line("how sweet the sound", 5)
    assert line.kind == LineType.LYRIC
    assert line.text == "how sweet the sound"


def test_render_does_not_accumulate():
    content = "[C]one\nC  F"
    first = render(content, 3)
    second = render(content, 3)
    assert first == second
    assert render(content, 0)[0].segments[0].text == "C"


def test_render_line_count():
    assert len(render("a\nb\n\nc")) == 4
