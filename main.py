import logging
from datetime import datetime, time, timedelta, timezone, tzinfo
from functools import reduce
from typing import Iterable, List, Mapping, NamedTuple, Optional, Tuple, Union

from pydantic import ValidationError

from models.schema import EntryType, RawClockEvent, RangeAggregate, SegmentHours, WorkSegment

NIGHT_START = time(22, 0)
NIGHT_END = time(6, 0)
MS_PER_HOUR = 3_600_000

_ONE_MS = timedelta(milliseconds=1)

# Equal timestamps are replayed in session lifecycle order.
_ENTRY_ORDER = {
    EntryType.CLOCK_IN: 0,
    EntryType.BREAK_START: 1,
    EntryType.BREAK_END: 2,
    EntryType.CLOCK_OUT: 3,
}

ClockEventLike = Union[RawClockEvent, Mapping]


class _BuilderState(NamedTuple):
    current_in: Optional[datetime] = None
    break_start: Optional[datetime] = None
    break_accum_ms: float = 0.0
    segments: Tuple[WorkSegment, ...] = ()


def localize(timestamp: datetime, tz: Optional[tzinfo]) -> datetime:
    if tz is None:
        return timestamp
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=tz)
    return timestamp.astimezone(tz)


def elapsed_ms(start: datetime, end: datetime) -> float:
    if start.tzinfo is not None and end.tzinfo is not None:
        start = start.astimezone(timezone.utc)
        end = end.astimezone(timezone.utc)
    return (end - start) / _ONE_MS


def end_of_day(timestamp: datetime) -> datetime:
    return timestamp.replace(hour=23, minute=59, second=59, microsecond=999000)


def _current_instant(reference: datetime, tz: Optional[tzinfo]) -> datetime:
    if tz is not None:
        return datetime.now(tz)
    if reference.tzinfo is not None:
        return datetime.now(reference.tzinfo)
    return datetime.now()


def parse_events(events: Iterable[ClockEventLike], tz: Optional[tzinfo] = None) -> List[RawClockEvent]:
    parsed = []
    for event in events:
        if not isinstance(event, RawClockEvent):
            try:
                event = RawClockEvent.model_validate(event)
            except ValidationError as exc:
                logging.warning(f"Skipping invalid time entry {event!r}: {exc.error_count()} validation error(s)")
                continue
        if tz is not None:
            event = event.model_copy(update={"timestamp": localize(event.timestamp, tz)})
        parsed.append(event)
    return parsed


def _event_sort_key(event: RawClockEvent):
    return event.timestamp, _ENTRY_ORDER[event.entry_type]


def _close(state: _BuilderState, clock_out: datetime) -> _BuilderState:
    segment = WorkSegment(
        clock_in=state.current_in,
        clock_out=clock_out,
        break_duration_ms=state.break_accum_ms,
    )
    return _BuilderState(segments=state.segments + (segment,))


def _advance(state: _BuilderState, event: RawClockEvent) -> _BuilderState:
    ts = event.timestamp

    if event.entry_type == EntryType.CLOCK_IN:
        if state.current_in is not None:
            logging.warning(
                f"Missing clock_out for session opened at {state.current_in.isoformat()}, "
                f"closing it at end of day"
            )
            state = _close(state, end_of_day(state.current_in))
        return state._replace(current_in=ts, break_start=None, break_accum_ms=0.0)

    if state.current_in is None:
        logging.debug(f"Ignoring {event.entry_type.value} at {ts.isoformat()}: no open session")
        return state

    if event.entry_type == EntryType.BREAK_START:
        if state.break_start is not None:
            logging.debug(f"Ignoring break_start at {ts.isoformat()}: break already in progress")
            return state
        return state._replace(break_start=ts)

    if event.entry_type == EntryType.BREAK_END:
        if state.break_start is None:
            logging.debug(f"Ignoring break_end at {ts.isoformat()}: no break in progress")
            return state
        break_ms = max(0.0, elapsed_ms(state.break_start, ts))
        return state._replace(break_start=None, break_accum_ms=state.break_accum_ms + break_ms)

    return _close(state, ts)


def build_segments(
    events: Iterable[ClockEventLike],
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> List[WorkSegment]:
    """Pair one employee's clock events into work segments.

    Events are sorted by timestamp before replay, and events that do not fit
    the current session state are ignored. A clock_in that arrives while a
    session is still open closes that session at 23:59:59.999 of its own
    clock-in day. A session left open at the end is closed at ``now``.
    """
    ordered = sorted(parse_events(events, tz), key=_event_sort_key)
    state = reduce(_advance, ordered, _BuilderState())

    if state.current_in is not None:
        if now is None:
            now = _current_instant(state.current_in, tz)
        state = _close(state, localize(now, tz))

    return list(state.segments)


def calculate_night_hours(start: datetime, end: datetime) -> float:
    """Hours of ``[start, end]`` that fall inside a 22:00-06:00 window."""
    if start.tzinfo is not None and end.tzinfo is not None:
        end = end.astimezone(start.tzinfo)
    if end < start:
        end += timedelta(days=1)

    night_ms = 0.0
    # the window opened the evening before covers early-morning starts
    day = start.date() - timedelta(days=1)
    while day <= end.date():
        night_start = datetime.combine(day, NIGHT_START, tzinfo=start.tzinfo)
        night_end = datetime.combine(day + timedelta(days=1), NIGHT_END, tzinfo=start.tzinfo)
        overlap_start = max(start, night_start)
        overlap_end = min(end, night_end)
        if overlap_start < overlap_end:
            night_ms += elapsed_ms(overlap_start, overlap_end)
        day += timedelta(days=1)

    return night_ms / MS_PER_HOUR


def compute_segment_hours(clock_in: datetime, clock_out: datetime, break_duration_ms: float = 0.0) -> SegmentHours:
    """Worked and night hours of one segment, net of breaks.

    A clock_out earlier than clock_in is treated as crossing midnight and
    moved forward 24 hours, so sessions longer than a day are understated.
    Night hours are capped at the worked total.
    """
    corrected_out = clock_out
    if corrected_out < clock_in:
        corrected_out = corrected_out + timedelta(days=1)

    gross_ms = max(0.0, elapsed_ms(clock_in, corrected_out))
    worked_ms = max(0.0, gross_ms - (break_duration_ms or 0.0))
    total_hours = worked_ms / MS_PER_HOUR

    night = calculate_night_hours(clock_in, corrected_out)
    night_hours = max(0.0, min(night, total_hours))

    return SegmentHours(total_hours=total_hours, night_hours=night_hours, worked_ms=worked_ms)


def aggregate_segments(
    segments: Iterable[WorkSegment],
    range_start: Optional[datetime] = None,
    range_end: Optional[datetime] = None,
) -> RangeAggregate:
    """Sum worked and night time of segments clamped to a range.

    Either bound may be omitted. A clamped segment still has its whole break
    deducted, even when the break happened outside the range.
    """
    total_ms = 0.0
    total_night_hours = 0.0

    for segment in segments:
        start = segment.clock_in
        end = segment.clock_out
        if range_start is not None and end < range_start:
            continue
        if range_end is not None and start > range_end:
            continue

        if range_start is not None and start < range_start:
            start = range_start
        if range_end is not None and end > range_end:
            end = range_end

        hours = compute_segment_hours(start, end, segment.break_duration_ms)
        total_ms += hours.worked_ms
        total_night_hours += hours.night_hours

    return RangeAggregate(total_ms=total_ms, total_night_hours=total_night_hours)


def aggregate(
    events: Iterable[ClockEventLike],
    range_start: Optional[datetime] = None,
    range_end: Optional[datetime] = None,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> RangeAggregate:
    segments = build_segments(events, now=now, tz=tz)
    if range_start is not None:
        range_start = localize(range_start, tz)
    if range_end is not None:
        range_end = localize(range_end, tz)
    return aggregate_segments(segments, range_start, range_end)
