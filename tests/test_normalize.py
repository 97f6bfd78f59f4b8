from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from slotwise.models import Event
from slotwise.normalize import find_free_gaps, merge_day_blocks

TZ = ZoneInfo("Europe/Copenhagen")
DAY_START = datetime(2026, 3, 10, 8, 0, tzinfo=TZ)
DAY_END = datetime(2026, 3, 10, 18, 0, tzinfo=TZ)


def _at(hour: int, minute: int = 0, day: int = 10) -> datetime:
    return datetime(2026, 3, day, hour, minute, tzinfo=TZ)


def _event(start: datetime, end: datetime, lat=None, long=None, title="Visit") -> Event:
    return Event(source="google", title=title, start=start, end=end, lat=lat, long=long)


def test_overlapping_events_merge_into_one_block():
    blocks = merge_day_blocks(
        DAY_START,
        DAY_END,
        [_event(_at(9), _at(10)), _event(_at(9, 30), _at(11))],
    )

    assert len(blocks) == 1
    assert blocks[0].start == _at(9)
    assert blocks[0].end == _at(11)


def test_touching_events_merge_and_disjoint_events_do_not():
    blocks = merge_day_blocks(
        DAY_START,
        DAY_END,
        [
            _event(_at(13), _at(14)),
            _event(_at(9), _at(10)),
            _event(_at(10), _at(11)),
        ],
    )

    assert [(b.start, b.end) for b in blocks] == [(_at(9), _at(11)), (_at(13), _at(14))]


def test_events_are_clipped_to_working_hours_and_outside_events_dropped():
    blocks = merge_day_blocks(
        DAY_START,
        DAY_END,
        [
            _event(_at(6), _at(9)),
            _event(_at(17), _at(20)),
            _event(_at(19), _at(21)),
            _event(_at(5), _at(8)),
            _event(_at(9, day=11), _at(10, day=11)),
        ],
    )

    assert [(b.start, b.end) for b in blocks] == [(_at(8), _at(9)), (_at(17), _at(18))]


def test_entry_is_first_event_and_exit_is_last_departing_event():
    blocks = merge_day_blocks(
        DAY_START,
        DAY_END,
        [
            _event(_at(9), _at(12), lat=55.0, long=12.0, title="long"),
            _event(_at(10), _at(11), lat=56.0, long=10.0, title="inside"),
            _event(_at(11, 30), _at(12, 30), lat=57.0, long=9.0, title="overrun"),
        ],
    )

    assert len(blocks) == 1
    block = blocks[0]
    assert (block.entry_lat, block.entry_long) == (55.0, 12.0)
    assert (block.exit_lat, block.exit_long) == (57.0, 9.0)
    assert block.end == _at(12, 30)


def test_single_event_block_has_same_entry_and_exit():
    blocks = merge_day_blocks(DAY_START, DAY_END, [_event(_at(9), _at(10), lat=55.5, long=12.5)])

    assert (blocks[0].entry_lat, blocks[0].entry_long) == (blocks[0].exit_lat, blocks[0].exit_long)


def test_events_without_coordinates_still_merge_and_keep_none():
    blocks = merge_day_blocks(
        DAY_START,
        DAY_END,
        [
            _event(_at(9), _at(10), lat=55.0, long=12.0),
            _event(_at(9, 30), _at(11)),
        ],
    )

    assert len(blocks) == 1
    assert blocks[0].entry_lat == 55.0
    assert blocks[0].exit_lat is None
    assert blocks[0].exit_long is None


def test_negative_duration_event_is_a_zero_width_point():
    blocks = merge_day_blocks(DAY_START, DAY_END, [_event(_at(11), _at(10))])

    assert [(b.start, b.end) for b in blocks] == [(_at(11), _at(11))]


def test_negative_duration_event_ending_before_the_window_is_kept():
    blocks = merge_day_blocks(DAY_START, DAY_END, [_event(_at(9), _at(7))])

    assert [(b.start, b.end) for b in blocks] == [(_at(9), _at(9))]


def test_no_events_gives_one_gap_spanning_the_window():
    gaps = find_free_gaps(DAY_START, DAY_END, merge_day_blocks(DAY_START, DAY_END, []))

    assert len(gaps) == 1
    assert (gaps[0].start, gaps[0].end) == (DAY_START, DAY_END)
    assert gaps[0].prev_block is None
    assert gaps[0].next_block is None


def test_gaps_carry_neighbouring_blocks():
    blocks = merge_day_blocks(
        DAY_START,
        DAY_END,
        [_event(_at(10), _at(11)), _event(_at(14), _at(15))],
    )
    gaps = find_free_gaps(DAY_START, DAY_END, blocks)

    assert [(g.start, g.end) for g in gaps] == [
        (_at(8), _at(10)),
        (_at(11), _at(14)),
        (_at(15), _at(18)),
    ]
    assert gaps[0].prev_block is None and gaps[0].next_block == blocks[0]
    assert gaps[1].prev_block == blocks[0] and gaps[1].next_block == blocks[1]
    assert gaps[2].prev_block == blocks[1] and gaps[2].next_block is None


def test_no_leading_or_trailing_gap_when_blocks_touch_the_edges():
    blocks = merge_day_blocks(
        DAY_START,
        DAY_END,
        [_event(_at(7), _at(9)), _event(_at(17), _at(19))],
    )
    gaps = find_free_gaps(DAY_START, DAY_END, blocks)

    assert [(g.start, g.end) for g in gaps] == [(_at(9), _at(17))]


def test_gaps_and_blocks_add_up_to_the_window():
    events = [
        _event(_at(7), _at(8, 30)),
        _event(_at(9), _at(10)),
        _event(_at(9, 45), _at(11, 15)),
        _event(_at(12), _at(12)),
        _event(_at(13), _at(14)),
        _event(_at(13, 30), _at(13, 45)),
        _event(_at(16), _at(19)),
    ]
    blocks = merge_day_blocks(DAY_START, DAY_END, events)
    gaps = find_free_gaps(DAY_START, DAY_END, blocks)

    for earlier, later in zip(blocks, blocks[1:]):
        assert earlier.end < later.start

    busy = sum((b.end - b.start for b in blocks), timedelta())
    free = sum((g.end - g.start for g in gaps), timedelta())
    assert busy + free == DAY_END - DAY_START
