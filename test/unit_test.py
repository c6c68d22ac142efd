import random
from datetime import datetime, timedelta, time, date, timezone

import pytest
from zoneinfo import ZoneInfo

from main import aggregate, aggregate_segments, build_segments, calculate_night_hours, compute_segment_hours
from models.schema import EntryType, RawClockEvent, WorkSegment

DAY = date(2024, 3, 1)
HOUR_MS = 3_600_000


def at(hour, minute=0, day=DAY):
    return datetime.combine(day, time(hour, minute))


def event(entry_type, timestamp):
    return RawClockEvent(entry_type=entry_type, timestamp=timestamp)


def workday_events():
    return [
        event(EntryType.CLOCK_IN, at(9)),
        event(EntryType.BREAK_START, at(12)),
        event(EntryType.BREAK_END, at(13)),
        event(EntryType.CLOCK_OUT, at(17)),
    ]


def test_regular_day_with_break():
    segments = build_segments(workday_events())

    assert len(segments) == 1
    assert segments[0].clock_in == at(9)
    assert segments[0].clock_out == at(17)
    assert segments[0].break_duration_ms == HOUR_MS

    hours = compute_segment_hours(segments[0].clock_in, segments[0].clock_out, segments[0].break_duration_ms)
    assert hours.total_hours == 7.0
    assert hours.night_hours == 0.0
    assert hours.worked_ms == 7 * HOUR_MS


def test_build_is_repeatable():
    events = workday_events()
    assert build_segments(events) == build_segments(events)


def test_build_ignores_input_order():
    events = workday_events() + [
        event(EntryType.CLOCK_IN, at(23, day=DAY + timedelta(days=1))),
        event(EntryType.CLOCK_OUT, at(2, day=DAY + timedelta(days=2))),
        event(EntryType.CLOCK_IN, at(8, day=DAY + timedelta(days=3))),
        event(EntryType.BREAK_START, at(10, day=DAY + timedelta(days=3))),
        event(EntryType.BREAK_END, at(10, 30, day=DAY + timedelta(days=3))),
        event(EntryType.CLOCK_OUT, at(16, day=DAY + timedelta(days=3))),
    ]
    shuffled = list(events)
    random.Random(7).shuffle(shuffled)

    assert build_segments(shuffled) == build_segments(events)


def test_build_does_not_mutate_input():
    events = list(reversed(workday_events()))
    snapshot = list(events)

    build_segments(events)
    aggregate(events, at(0), at(23, 59))

    assert events == snapshot


def test_lone_clock_in_is_closed_at_now():
    segments = build_segments([event(EntryType.CLOCK_IN, at(9))], now=at(11, 30))

    assert len(segments) == 1
    assert segments[0].clock_out == at(11, 30)
    hours = compute_segment_hours(segments[0].clock_in, segments[0].clock_out)
    assert hours.total_hours == 2.5


def test_open_session_keeps_accumulated_break():
    events = [
        event(EntryType.CLOCK_IN, at(9)),
        event(EntryType.BREAK_START, at(10)),
        event(EntryType.BREAK_END, at(10, 30)),
        event(EntryType.BREAK_START, at(11)),
    ]
    segments = build_segments(events, now=at(12))

    assert segments == [WorkSegment(clock_in=at(9), clock_out=at(12), break_duration_ms=HOUR_MS / 2)]


def test_dangling_clock_in_closed_at_end_of_its_day():
    events = [
        event(EntryType.CLOCK_IN, at(9)),
        event(EntryType.CLOCK_IN, at(15)),
        event(EntryType.CLOCK_OUT, at(18)),
    ]
    segments = build_segments(events)

    assert len(segments) == 2
    assert segments[0].clock_in == at(9)
    assert segments[0].clock_out == datetime.combine(DAY, time(23, 59, 59, 999000))
    assert segments[1].clock_in == at(15)
    assert segments[1].clock_out == at(18)


def test_dangling_session_keeps_its_break():
    events = [
        event(EntryType.CLOCK_IN, at(9)),
        event(EntryType.BREAK_START, at(10)),
        event(EntryType.BREAK_END, at(11)),
        event(EntryType.CLOCK_IN, at(9, day=DAY + timedelta(days=1))),
        event(EntryType.CLOCK_OUT, at(10, day=DAY + timedelta(days=1))),
    ]
    segments = build_segments(events)

    assert segments[0].break_duration_ms == HOUR_MS
    assert segments[1].break_duration_ms == 0


def test_orphan_events_are_ignored():
    events = [
        event(EntryType.CLOCK_OUT, at(7)),
        event(EntryType.BREAK_START, at(7, 30)),
        event(EntryType.BREAK_END, at(7, 45)),
        event(EntryType.CLOCK_IN, at(8)),
        event(EntryType.BREAK_END, at(9)),
        event(EntryType.BREAK_START, at(10)),
        event(EntryType.BREAK_START, at(10, 15)),
        event(EntryType.BREAK_END, at(10, 30)),
        event(EntryType.CLOCK_OUT, at(12)),
        event(EntryType.CLOCK_OUT, at(13)),
    ]
    segments = build_segments(events)

    assert segments == [WorkSegment(clock_in=at(8), clock_out=at(12), break_duration_ms=HOUR_MS / 2)]


def test_no_events_no_segments():
    assert build_segments([]) == []
    assert aggregate([]).total_ms == 0


def test_plain_rows_are_parsed_and_invalid_rows_skipped():
    rows = [
        {"id": "a", "entry_type": "clock_in", "timestamp": "2024-03-01T09:00:00", "is_active": True},
        {"id": "b", "entry_type": "lunch", "timestamp": "2024-03-01T12:00:00"},
        {"id": "c", "entry_type": "clock_out", "timestamp": "not a date"},
        {"id": "d", "entry_type": "clock_out", "timestamp": "2024-03-01T17:00:00"},
    ]
    segments = build_segments(rows)

    assert segments == [WorkSegment(clock_in=at(9), clock_out=at(17))]


def test_early_morning_segment_is_all_night():
    hours = compute_segment_hours(at(1), at(5))
    assert hours.total_hours == 4
    assert hours.night_hours == 4


def test_daytime_segment_has_no_night_hours():
    hours = compute_segment_hours(at(10), at(14))
    assert hours.total_hours == 4
    assert hours.night_hours == 0


def test_overnight_segment():
    hours = compute_segment_hours(at(23), at(2, day=DAY + timedelta(days=1)))
    assert hours.total_hours == 3
    assert hours.night_hours == 3


def test_partial_night_overlap():
    hours = compute_segment_hours(at(18), at(2, day=DAY + timedelta(days=1)))
    assert hours.total_hours == 8
    assert hours.night_hours == 4


def test_clock_out_before_clock_in_is_treated_as_next_day():
    hours = compute_segment_hours(at(23), at(2))
    assert hours.total_hours == 3
    assert hours.night_hours == 3


def test_wall_clock_wrap_assumes_shift_shorter_than_a_day():
    # a clock_out two hours "earlier" is read as a 22 hour shift
    hours = compute_segment_hours(at(10), at(8))
    assert hours.total_hours == 22


def test_break_is_deducted():
    hours = compute_segment_hours(at(9), at(17), HOUR_MS)
    assert hours.total_hours == 7


def test_break_longer_than_segment_gives_zero():
    hours = compute_segment_hours(at(9), at(10), 2 * HOUR_MS)
    assert hours.total_hours == 0
    assert hours.worked_ms == 0
    assert hours.night_hours == 0


def test_night_hours_capped_by_worked_hours():
    hours = compute_segment_hours(at(22), at(2, day=DAY + timedelta(days=1)), 2 * HOUR_MS)
    assert hours.total_hours == 2
    assert hours.night_hours == 2


def test_zero_length_segment():
    hours = compute_segment_hours(at(9), at(9))
    assert hours.total_hours == 0
    assert hours.night_hours == 0


def test_calculate_night_hours_spans_two_windows():
    assert calculate_night_hours(at(5), at(23)) == 2


def test_range_clamps_segment():
    events = [event(EntryType.CLOCK_IN, at(8)), event(EntryType.CLOCK_OUT, at(20))]
    totals = aggregate(events, at(10), at(14))

    assert totals.total_ms == 4 * HOUR_MS
    assert totals.total_hours == 4
    assert totals.total_night_hours == 0


def test_range_keeps_full_break_for_clamped_segment():
    events = [
        event(EntryType.CLOCK_IN, at(8)),
        event(EntryType.BREAK_START, at(9)),
        event(EntryType.BREAK_END, at(10)),
        event(EntryType.CLOCK_OUT, at(20)),
    ]
    # break happened before the range but is still deducted
    totals = aggregate(events, at(12), at(14))
    assert totals.total_ms == HOUR_MS


def test_range_excludes_segments_outside():
    events = workday_events() + [
        event(EntryType.CLOCK_IN, at(9, day=DAY + timedelta(days=2))),
        event(EntryType.CLOCK_OUT, at(12, day=DAY + timedelta(days=2))),
    ]
    next_day = DAY + timedelta(days=1)
    totals = aggregate(events, at(0, day=next_day), datetime.combine(next_day, time(23, 59, 59, 999000)))

    assert totals.total_ms == 0
    assert totals.total_night_hours == 0


def test_unbounded_range_sums_everything():
    events = workday_events() + [
        event(EntryType.CLOCK_IN, at(22, day=DAY + timedelta(days=1))),
        event(EntryType.CLOCK_OUT, at(6, day=DAY + timedelta(days=2))),
    ]
    totals = aggregate(events)

    assert totals.total_hours == 15
    assert totals.total_night_hours == 8


def test_one_sided_ranges():
    segments = [
        WorkSegment(clock_in=at(8), clock_out=at(12)),
        WorkSegment(clock_in=at(14), clock_out=at(18)),
    ]
    assert aggregate_segments(segments, range_start=at(16)).total_hours == 2
    assert aggregate_segments(segments, range_end=at(10)).total_hours == 2


def test_overnight_segment_split_by_day_ranges():
    events = [
        event(EntryType.CLOCK_IN, at(23)),
        event(EntryType.CLOCK_OUT, at(2, day=DAY + timedelta(days=1))),
    ]
    first = aggregate(events, at(0), datetime.combine(DAY, time(23, 59, 59, 999000)))
    second = aggregate(events, at(0, day=DAY + timedelta(days=1)), at(23, day=DAY + timedelta(days=1)))

    assert first.total_hours == pytest.approx(1, abs=1e-6)
    assert second.total_hours == 2
    assert second.total_night_hours == 2


def test_results_never_negative():
    segments = [
        WorkSegment(clock_in=at(21), clock_out=at(3, day=DAY + timedelta(days=1)), break_duration_ms=HOUR_MS),
        WorkSegment(clock_in=at(9), clock_out=at(9), break_duration_ms=HOUR_MS),
        WorkSegment(clock_in=at(4), clock_out=at(7), break_duration_ms=5 * HOUR_MS),
    ]
    ranges = [(None, None), (at(0), at(23)), (at(22), at(23)), (at(5), at(6)), (at(8), None)]

    for segment in segments:
        for range_start, range_end in ranges:
            totals = aggregate_segments([segment], range_start, range_end)
            assert totals.total_ms >= 0
            assert 0 <= totals.total_night_hours <= totals.total_hours + 1e-9


def test_timezone_context_moves_night_window():
    utc_rows = [
        {"entry_type": "clock_in", "timestamp": "2024-03-01T21:00:00+00:00"},
        {"entry_type": "clock_out", "timestamp": "2024-03-02T01:00:00+00:00"},
    ]
    plus_one = timezone(timedelta(hours=1))

    assert aggregate(utc_rows).total_night_hours == 3
    assert aggregate(utc_rows, tz=plus_one).total_night_hours == 4
    assert aggregate(utc_rows, tz=plus_one).total_hours == 4


def test_timezone_context_applies_to_naive_timestamps():
    plus_one = timezone(timedelta(hours=1))
    segments = build_segments(workday_events(), tz=plus_one)

    assert segments[0].clock_in == datetime(2024, 3, 1, 9, tzinfo=plus_one)


def test_daylight_saving_change_uses_elapsed_time():
    madrid = ZoneInfo("Europe/Madrid")
    # clocks jump from 02:00 to 03:00 on this night
    events = [
        event(EntryType.CLOCK_IN, at(1, day=date(2024, 3, 31))),
        event(EntryType.CLOCK_OUT, at(5, day=date(2024, 3, 31))),
    ]
    totals = aggregate(events, tz=madrid)

    assert totals.total_hours == 3
    assert totals.total_night_hours == 3
