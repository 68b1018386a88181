from __future__ import annotations

import pytest

from src.rhythm.edl import (
    DROP_FRAME_FPS,
    dedupe_cuts,
    infer_frame_rate,
    parse_edl,
    timecode_to_seconds,
)

SIMPLE_EDL = """TITLE: Demo Sequence
FCM: NON-DROP FRAME

001  AX       V     C        00:00:00:00 00:00:04:00 01:00:00:00 01:00:04:00
* FROM CLIP NAME: opening.mov
002  AX       V     C        00:00:10:00 00:00:13:12 01:00:04:00 01:00:07:12
003  BX       V     D    012 00:00:20:00 00:00:22:00 01:00:07:12 01:00:09:12
"""


def test_parse_simple_edl() -> None:
    result = parse_edl(SIMPLE_EDL)

    assert result.ok
    assert result.title == "Demo Sequence"
    assert result.fps == 24.0
    assert not result.drop_frame
    assert result.event_count == 3
    assert result.cuts == pytest.approx((0.0, 4.0, 7.5, 9.5))
    assert [event.reel for event in result.events] == ["AX", "AX", "BX"]
    assert result.events[2].edit == "D"


def test_parse_accepts_bytes_with_bom() -> None:
    result = parse_edl(b"\xef\xbb\xbf" + SIMPLE_EDL.encode("utf-8"))
    assert result.ok
    assert result.title == "Demo Sequence"


def test_parse_is_idempotent_and_strictly_increasing() -> None:
    first = parse_edl(SIMPLE_EDL)
    second = parse_edl(SIMPLE_EDL)
    assert first == second
    for earlier, later in zip(first.cuts, first.cuts[1:]):
        assert later - earlier >= 0.001


def test_drop_frame_header_sets_2997() -> None:
    text = (
        "TITLE: DF\n"
        "FCM: DROP FRAME\n"
        "001  AX V C 00:00:00;00 00:00:01;15 00:59:58;00 00:59:59;15\n"
    )
    result = parse_edl(text)
    assert result.drop_frame
    assert result.fps == DROP_FRAME_FPS
    assert result.cuts == pytest.approx((0.0, 1 + 15 / DROP_FRAME_FPS))


def test_large_frame_field_raises_fps() -> None:
    text = "001  AX V C 00:00:00:00 00:00:01:26 01:00:00:00 01:00:01:26\n"
    result = parse_edl(text)
    assert result.fps == 30.0
    assert result.cuts == pytest.approx((0.0, 1 + 26 / 30))


@pytest.mark.parametrize(
    "max_field, base, expected",
    [
        (10, 24.0, 24.0),
        (24, 24.0, 25.0),
        (26, 24.0, 30.0),
        (31, 24.0, 50.0),
        (55, 24.0, 60.0),
        (10, DROP_FRAME_FPS, DROP_FRAME_FPS),
        (26, DROP_FRAME_FPS, 30.0),
    ],
)
def test_infer_frame_rate(max_field, base, expected) -> None:
    assert infer_frame_rate(max_field, base) == expected


def test_timecode_to_seconds() -> None:
    assert timecode_to_seconds("00:01:02:12", 24.0) == pytest.approx(62.5)
    assert timecode_to_seconds("01:00:00;15", 30.0) == pytest.approx(3600.5)
    assert timecode_to_seconds("1:00:00:00") is None
    assert timecode_to_seconds("garbage") is None


def test_dedupe_cuts_within_a_millisecond() -> None:
    assert dedupe_cuts([1.0, 0.0, 0.0005, 1.0009, 2.0]) == [0.0, 1.0, 2.0]


def test_audio_events_are_accepted() -> None:
    text = "001  AX A C 00:00:00:00 00:00:02:00 00:00:10:00 00:00:12:00\n"
    result = parse_edl(text)
    assert result.ok
    assert result.cuts == pytest.approx((0.0, 2.0))


@pytest.mark.parametrize(
    "payload",
    [
        "",
        "hello world",
        "TITLE: only a header\nFCM: NON-DROP FRAME\n",
        b"\xff\xfe\x00garbage\x00",
    ],
)
def test_malformed_input_reports_failure_without_raising(payload) -> None:
    result = parse_edl(payload)
    assert not result.ok
    assert result.cuts == ()
    assert result.error
