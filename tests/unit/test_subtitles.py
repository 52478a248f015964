import pytest

from app.services.subtitles import describe, parse_webvtt

SAMPLE = """WEBVTT
Kind: captions
Language: es

intro
00:00:01.000 --> 00:00:03.500
Bienvenidos al
lanzamiento de primavera.

00:00:03.000 --> 00:00:04.000 align:start
Hoy presentamos tres funciones nuevas y muchas sorpresas.

NOTE this block is not a cue

00:00:05.000 --> 00:00:08.000
Gracias.
"""


def test_parse_webvtt_reads_cues_after_the_header():
    document = parse_webvtt(SAMPLE)

    assert len(document.cues) == 3
    first, second, third = document.cues
    assert first.identifier == "intro"
    assert (first.start, first.end) == (1.0, 3.5)
    assert first.text == "Bienvenidos al\nlanzamiento de primavera."
    assert first.word_count == 5
    assert first.char_count == 36
    assert second.identifier is None
    assert second.end == 4.0
    assert third.text == "Gracias."


def test_document_statistics():
    document = parse_webvtt(SAMPLE)

    assert document.total_duration == 8.0
    assert document.total_word_count == 5 + 8 + 1
    assert document.average_cue_duration == pytest.approx((2.5 + 1.0 + 3.0) / 3)
    assert document.overlapping_cues() == [2]
    assert document.fast_cues() == [2]
    assert document.max_chars_per_second == pytest.approx(50.0)


def test_describe_summarizes_the_document():
    summary = describe(parse_webvtt(SAMPLE))

    assert summary.startswith("Cue statistics: 3 cues; 14 words; duration 00:00:08; average cue 2.17s")
    assert "cues over 20 chars/s: 2" in summary
    assert summary.endswith("overlapping cues: 2")


@pytest.mark.parametrize("content", ["", "   \n", "WEBVTT\n", "WEBVTT\n\nnot a cue\nstill not a cue\n"])
def test_content_without_cues(content):
    document = parse_webvtt(content)

    assert document.cues == []
    assert document.total_duration == 0.0
    assert document.average_cue_duration == 0.0
    assert describe(document).endswith("overlapping cues: none")


def test_windows_line_endings_and_long_timestamps():
    document = parse_webvtt("WEBVTT\r\n\r\n01:02:03.250 --> 01:02:05.000\r\nHola\r\n")

    assert len(document.cues) == 1
    assert document.cues[0].start == pytest.approx(3723.25)
    assert document.cues[0].text == "Hola"
