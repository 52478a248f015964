import re
from dataclasses import dataclass, field

TIMESTAMP_PATTERN = re.compile(
    r"(\d{2}):(\d{2}):(\d{2})\.(\d{3})\s*-->\s*(\d{2}):(\d{2}):(\d{2})\.(\d{3})"
)
READING_SPEED_LIMIT = 20.0


def _seconds(hours: str, minutes: str, seconds: str, millis: str) -> float:
    return int(hours) * 3600 + int(minutes) * 60 + int(seconds) + int(millis) / 1000


@dataclass
class SubtitleCue:
    start: float
    end: float
    text: str = ""
    identifier: str | None = None

    @property
    def duration(self) -> float:
        return self.end - self.start

    @property
    def word_count(self) -> int:
        return len(self.text.split())

    @property
    def char_count(self) -> int:
        return len("".join(self.text.split()))

    @property
    def chars_per_second(self) -> float:
        return self.char_count / self.duration if self.duration > 0 else 0.0


@dataclass
class SubtitleDocument:
    cues: list[SubtitleCue] = field(default_factory=list)

    @property
    def total_duration(self) -> float:
        return max((cue.end for cue in self.cues), default=0.0)

    @property
    def total_word_count(self) -> int:
        return sum(cue.word_count for cue in self.cues)

    @property
    def average_cue_duration(self) -> float:
        if not self.cues:
            return 0.0
        return sum(cue.duration for cue in self.cues) / len(self.cues)

    @property
    def max_chars_per_second(self) -> float:
        return max((cue.chars_per_second for cue in self.cues), default=0.0)

    def fast_cues(self, limit: float = READING_SPEED_LIMIT) -> list[int]:
        """1-based numbers of cues read faster than ``limit`` characters per second."""
        return [index for index, cue in enumerate(self.cues, start=1) if cue.chars_per_second > limit]

    def overlapping_cues(self) -> list[int]:
        """1-based numbers of cues that start before the previous cue ends."""
        return [
            index
            for index, (previous, cue) in enumerate(zip(self.cues, self.cues[1:]), start=2)
            if cue.start < previous.end
        ]


def parse_webvtt(content: str) -> SubtitleDocument:
    """Parse WebVTT text into cues; lines that are not part of a cue are skipped."""
    document = SubtitleDocument()
    if not content or not content.strip():
        return document

    lines = content.splitlines()
    index = 0
    # Header block: "WEBVTT" plus any metadata up to the first blank line.
    while index < len(lines) and lines[index].strip():
        index += 1

    while index < len(lines):
        while index < len(lines) and not lines[index].strip():
            index += 1
        if index >= len(lines):
            break

        identifier = None
        if "-->" not in lines[index]:
            identifier = lines[index].strip()
            index += 1
            if index >= len(lines):
                break

        match = TIMESTAMP_PATTERN.search(lines[index])
        index += 1
        if match is None:
            continue

        text_lines = []
        while index < len(lines) and lines[index].strip():
            text_lines.append(lines[index])
            index += 1
        document.cues.append(
            SubtitleCue(
                start=_seconds(*match.group(1, 2, 3, 4)),
                end=_seconds(*match.group(5, 6, 7, 8)),
                text="\n".join(text_lines),
                identifier=identifier,
            )
        )
    return document


def _clock(seconds: float) -> str:
    whole = int(seconds)
    return f"{whole // 3600:02d}:{whole % 3600 // 60:02d}:{whole % 60:02d}"


def describe(document: SubtitleDocument) -> str:
    """One-line statistics block shown to reviewers ahead of the raw file."""
    fast = document.fast_cues()
    overlapping = document.overlapping_cues()
    parts = [
        f"{len(document.cues)} cues",
        f"{document.total_word_count} words",
        f"duration {_clock(document.total_duration)}",
        f"average cue {document.average_cue_duration:.2f}s",
        f"max reading speed {document.max_chars_per_second:.1f} chars/s",
        f"cues over {READING_SPEED_LIMIT:.0f} chars/s: {', '.join(map(str, fast)) or 'none'}",
        f"overlapping cues: {', '.join(map(str, overlapping)) or 'none'}",
    ]
    return "Cue statistics: " + "; ".join(parts)
