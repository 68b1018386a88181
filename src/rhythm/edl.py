"""Edit decision list (CMX 3600 style) parsing into authoritative cut lists."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

DEFAULT_FPS = 24.0
DROP_FRAME_FPS = 29.97
DEDUP_EPSILON_SEC = 0.001

_TC = r"\d{2}:\d{2}:\d{2}[:;]\d{2}"
_TIMECODE_RE = re.compile(r"(\d{2}):(\d{2}):(\d{2})[:;](\d{2})")
_FCM_RE = re.compile(r"^\s*FCM:\s*(?P<mode>.*)$", re.IGNORECASE | re.MULTILINE)
_TITLE_RE = re.compile(r"^\s*TITLE:\s*(?P<title>.*?)\s*$", re.IGNORECASE | re.MULTILINE)
_EVENT_RE = re.compile(
    r"^\s*(?P<event>\d+)\s+(?P<reel>\S.*?)\s+(?P<track>\S+)\s+(?P<edit>[A-Za-z]\w*)"
    r"(?:\s+(?P<trim>\d+))?\s+"
    rf"(?P<source_in>{_TC})\s+(?P<source_out>{_TC})\s+(?P<record_in>{_TC})\s+(?P<record_out>{_TC})"
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EdlEvent:
    number: int
    reel: str
    track: str
    edit: str
    record_in: float
    record_out: float


@dataclass(frozen=True)
class EdlParseResult:
    """Outcome of parsing an EDL; ``ok`` is False when nothing usable was found."""

    cuts: Tuple[float, ...] = ()
    fps: float = DEFAULT_FPS
    drop_frame: bool = False
    title: Optional[str] = None
    events: Tuple[EdlEvent, ...] = field(default_factory=tuple)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.cuts)

    @property
    def event_count(self) -> int:
        return len(self.events)


def timecode_to_seconds(timecode: str, fps: float = DEFAULT_FPS) -> Optional[float]:
    """``HH:MM:SS:FF`` (or ``;FF``) to seconds; ``None`` when malformed."""

    match = _TIMECODE_RE.fullmatch(timecode.strip())
    if not match or fps <= 0:
        return None
    hours, minutes, seconds, frames = (int(part) for part in match.groups())
    return hours * 3600 + minutes * 60 + seconds + frames / fps


def infer_frame_rate(max_frame_field: int, base_fps: float = DEFAULT_FPS) -> float:
    """Raise ``base_fps`` to the smallest common rate that can hold ``max_frame_field``."""

    inferred = base_fps
    if max_frame_field >= 50:
        inferred = 60.0
    elif max_frame_field >= 30:
        inferred = 50.0
    elif max_frame_field >= 25:
        inferred = 30.0
    elif max_frame_field >= 24:
        inferred = 25.0
    return max(base_fps, inferred)


def _is_drop_frame(text: str) -> bool:
    for match in _FCM_RE.finditer(text):
        mode = match.group("mode").upper().replace("-", " ")
        if "DROP" in mode and "NON" not in mode:
            return True
    return False


def _decode(data: bytes | str) -> str:
    if isinstance(data, str):
        return data
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def dedupe_cuts(values: List[float], epsilon: float = DEDUP_EPSILON_SEC) -> List[float]:
    cuts: List[float] = []
    for value in sorted(values):
        if cuts and value - cuts[-1] < epsilon:
            continue
        cuts.append(value)
    return cuts


def parse_edl(data: bytes | str) -> EdlParseResult:
    """Parse EDL text into a sorted, deduplicated list of cut times.

    Times are relative to the first record-in seen. Both record-in and
    record-out of every event are collected. Malformed input never raises;
    it produces a result whose ``ok`` is False.
    """

    text = _decode(data)
    drop_frame = _is_drop_frame(text)
    fps = DROP_FRAME_FPS if drop_frame else DEFAULT_FPS

    frame_fields = [int(match.group(4)) for match in _TIMECODE_RE.finditer(text)]
    if frame_fields:
        fps = infer_frame_rate(max(frame_fields), fps)

    title_match = _TITLE_RE.search(text)
    title = title_match.group("title") if title_match else None

    events: List[EdlEvent] = []
    origin: Optional[float] = None
    candidates: List[float] = []
    for line in text.splitlines():
        match = _EVENT_RE.match(line)
        if not match:
            continue
        record_in = timecode_to_seconds(match.group("record_in"), fps)
        record_out = timecode_to_seconds(match.group("record_out"), fps)
        if record_in is None or record_out is None:
            continue
        if origin is None:
            origin = record_in
        events.append(
            EdlEvent(
                number=int(match.group("event")),
                reel=match.group("reel"),
                track=match.group("track"),
                edit=match.group("edit"),
                record_in=record_in,
                record_out=record_out,
            )
        )
        candidates.extend((record_in - origin, record_out - origin))

    if not events:
        logger.debug("EDL contained no event lines")
        return EdlParseResult(fps=fps, drop_frame=drop_frame, title=title, error="no event lines matched")

    cuts = dedupe_cuts([value for value in candidates if value >= 0])
    logger.debug("Parsed %d EDL events into %d cuts at %.2f fps", len(events), len(cuts), fps)
    return EdlParseResult(
        cuts=tuple(cuts),
        fps=fps,
        drop_frame=drop_frame,
        title=title,
        events=tuple(events),
    )


__all__ = [
    "EdlEvent",
    "EdlParseResult",
    "dedupe_cuts",
    "infer_frame_rate",
    "parse_edl",
    "timecode_to_seconds",
]
