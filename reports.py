import logging
from collections import defaultdict
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Iterable, List, Mapping, Optional

from main import (
    ClockEventLike,
    aggregate,
    build_segments,
    compute_segment_hours,
    elapsed_ms,
    end_of_day,
    localize,
    parse_events,
)
from models.schema import (
    AnnualSummary,
    DailyHours,
    EntryType,
    HoursAlarm,
    LateClockIn,
    ScheduleAlarm,
    ScheduleAlarmType,
    WorkSchedule,
)

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
SCHEDULE_DEVIATION_HOURS = 0.5
MISSED_CLOCK_OUT_GRACE = timedelta(hours=1)


def daily_breakdown(
    events: Iterable[ClockEventLike],
    start_day: date,
    end_day: date,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> List[DailyHours]:
    """One row per calendar day of ``[start_day, end_day]``.

    Segments count towards the day they were clocked in on, so an overnight
    shift stays on a single row. Days without segments are kept with zero
    totals.
    """
    segments_by_day = defaultdict(list)
    for segment in build_segments(events, now=now, tz=tz):
        segments_by_day[segment.clock_in.date()].append(segment)

    rows = []
    day = start_day
    while day <= end_day:
        day_segments = segments_by_day.get(day, [])
        total_hours = night_hours = worked_ms = 0.0
        for segment in day_segments:
            hours = compute_segment_hours(segment.clock_in, segment.clock_out, segment.break_duration_ms)
            total_hours += hours.total_hours
            night_hours += hours.night_hours
            worked_ms += hours.worked_ms
        rows.append(DailyHours(
            day=day,
            segments=day_segments,
            total_hours=total_hours,
            night_hours=night_hours,
            worked_ms=worked_ms,
        ))
        day += timedelta(days=1)
    return rows


def annual_summary(
    events: Iterable[ClockEventLike],
    year: int,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> AnnualSummary:
    monthly_hours = [0.0] * 12
    monthly_night_hours = [0.0] * 12

    for segment in build_segments(events, now=now, tz=tz):
        if segment.clock_in.year != year:
            continue
        hours = compute_segment_hours(segment.clock_in, segment.clock_out, segment.break_duration_ms)
        month = segment.clock_in.month - 1
        monthly_hours[month] += hours.total_hours
        monthly_night_hours[month] += hours.night_hours

    return AnnualSummary(
        year=year,
        monthly_hours=monthly_hours,
        monthly_night_hours=monthly_night_hours,
        total_hours=sum(monthly_hours),
        night_hours=sum(monthly_night_hours),
    )


def hours_limit_alarms(
    entries_by_employee: Mapping[str, Iterable[ClockEventLike]],
    limit_hours: float,
    range_start: Optional[datetime] = None,
    range_end: Optional[datetime] = None,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> List[HoursAlarm]:
    alarms = []
    for employee_id, entries in entries_by_employee.items():
        totals = aggregate(entries, range_start, range_end, now=now, tz=tz)
        if totals.total_hours > limit_hours:
            logging.warning(
                f"Employee {employee_id} worked {totals.total_hours:.2f}h, over the {limit_hours}h limit"
            )
            alarms.append(HoursAlarm(
                employee_id=str(employee_id),
                total_hours=totals.total_hours,
                night_hours=totals.total_night_hours,
                limit_hours=limit_hours,
            ))
    return alarms


def _schedule_for(schedule: Iterable[WorkSchedule], day: date) -> Optional[WorkSchedule]:
    day_name = WEEKDAYS[day.weekday()]
    for entry in schedule:
        if entry.day.lower() == day_name:
            return entry
    return None


def late_clock_ins(
    events: Iterable[ClockEventLike],
    schedule: List[WorkSchedule],
    tolerance_minutes: int = 15,
    tz: Optional[tzinfo] = None,
) -> List[LateClockIn]:
    alarms = []
    clock_ins = [e for e in parse_events(events, tz) if e.entry_type == EntryType.CLOCK_IN]

    for event in sorted(clock_ins, key=lambda e: e.timestamp):
        ts = event.timestamp
        day_schedule = _schedule_for(schedule, ts.date())
        if not day_schedule or not day_schedule.is_working or day_schedule.start_time is None:
            continue

        scheduled = datetime.combine(ts.date(), day_schedule.start_time, tzinfo=ts.tzinfo)
        delay_minutes = elapsed_ms(scheduled, ts) / 60_000
        if delay_minutes > tolerance_minutes:
            alarms.append(LateClockIn(
                alarm_date=ts.date(),
                timestamp=ts,
                scheduled_start=day_schedule.start_time,
                delay_minutes=delay_minutes,
                hours_involved=delay_minutes / 60,
            ))
    return alarms


def scheduled_hours(schedule: Iterable[WorkSchedule], day: date) -> float:
    day_schedule = _schedule_for(schedule, day)
    if not day_schedule or not day_schedule.is_working:
        return 0.0
    if day_schedule.start_time is None or day_schedule.end_time is None:
        return 0.0

    start = day_schedule.start_time
    end = day_schedule.end_time
    start_minutes = start.hour * 60 + start.minute
    end_minutes = end.hour * 60 + end.minute
    if end_minutes < start_minutes:
        end_minutes += 24 * 60
    total_minutes = end_minutes - start_minutes - day_schedule.break_minutes
    return max(0, total_minutes) / 60


def _working_days(schedule: List[WorkSchedule], start_day: date, end_day: date):
    day = start_day
    while day <= end_day:
        day_schedule = _schedule_for(schedule, day)
        if day_schedule and day_schedule.is_working:
            yield day, day_schedule
        day += timedelta(days=1)


def _reference_now(now: Optional[datetime], tz: Optional[tzinfo]) -> datetime:
    if now is not None:
        return localize(now, tz)
    return datetime.now(tz) if tz is not None else datetime.now()


def _events_by_day(events: Iterable[ClockEventLike], tz: Optional[tzinfo]):
    by_day = defaultdict(list)
    for event in parse_events(events, tz):
        by_day[event.timestamp.date()].append(event)
    return by_day


def _day_start(day: date, now: datetime) -> datetime:
    return datetime.combine(day, time(0, 0), tzinfo=now.tzinfo)


def _worked_hours_on(day_events, day: date, now: datetime) -> float:
    if not day_events:
        return 0.0
    # an open session runs until now but never past the end of its own day
    close_at = min(now, end_of_day(_day_start(day, now)))
    total_hours = 0.0
    for segment in build_segments(day_events, now=close_at):
        total_hours += compute_segment_hours(segment.clock_in, segment.clock_out, segment.break_duration_ms).total_hours
    return total_hours


def _scheduled_end(day: date, day_schedule: WorkSchedule, now: datetime) -> datetime:
    end = datetime.combine(day, day_schedule.end_time, tzinfo=now.tzinfo)
    if day_schedule.start_time is not None and day_schedule.end_time < day_schedule.start_time:
        end += timedelta(days=1)
    return end


def missed_clock_ins(
    events: Iterable[ClockEventLike],
    schedule: List[WorkSchedule],
    start_day: date,
    end_day: date,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> List[ScheduleAlarm]:
    """Working days with no clock_in, or with no clock_out an hour past the scheduled end.

    Days that have not started yet relative to ``now`` are skipped.
    """
    now = _reference_now(now, tz)
    by_day = _events_by_day(events, tz)
    alarms = []

    for day, day_schedule in _working_days(schedule, start_day, end_day):
        if _day_start(day, now) >= now:
            continue
        entry_types = {e.entry_type for e in by_day.get(day, [])}
        if EntryType.CLOCK_IN not in entry_types:
            alarms.append(ScheduleAlarm(
                alarm_type=ScheduleAlarmType.MISSED_CLOCK_IN,
                alarm_date=day,
                scheduled_hours=scheduled_hours(schedule, day),
            ))
        elif EntryType.CLOCK_OUT not in entry_types and day_schedule.end_time is not None:
            if now > _scheduled_end(day, day_schedule, now) + MISSED_CLOCK_OUT_GRACE:
                alarms.append(ScheduleAlarm(
                    alarm_type=ScheduleAlarmType.MISSED_CLOCK_OUT,
                    alarm_date=day,
                    scheduled_hours=scheduled_hours(schedule, day),
                ))
    return alarms


def overtime_alarms(
    events: Iterable[ClockEventLike],
    schedule: List[WorkSchedule],
    start_day: date,
    end_day: date,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
    threshold_hours: float = SCHEDULE_DEVIATION_HOURS,
) -> List[ScheduleAlarm]:
    now = _reference_now(now, tz)
    by_day = _events_by_day(events, tz)
    alarms = []

    for day, _ in _working_days(schedule, start_day, end_day):
        planned = scheduled_hours(schedule, day)
        worked = _worked_hours_on(by_day.get(day, []), day, now)
        if worked - planned > threshold_hours:
            alarms.append(ScheduleAlarm(
                alarm_type=ScheduleAlarmType.OVERTIME,
                alarm_date=day,
                scheduled_hours=planned,
                worked_hours=worked,
                hours_involved=worked - planned,
            ))
    return alarms


def work_shortfall_alarms(
    events: Iterable[ClockEventLike],
    schedule: List[WorkSchedule],
    start_day: date,
    end_day: date,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
    threshold_hours: float = SCHEDULE_DEVIATION_HOURS,
) -> List[ScheduleAlarm]:
    now = _reference_now(now, tz)
    by_day = _events_by_day(events, tz)
    alarms = []

    for day, _ in _working_days(schedule, start_day, end_day):
        if _day_start(day, now) >= now:
            continue
        planned = scheduled_hours(schedule, day)
        worked = _worked_hours_on(by_day.get(day, []), day, now)
        if planned - worked > threshold_hours:
            alarms.append(ScheduleAlarm(
                alarm_type=ScheduleAlarmType.WORK_SHORTFALL,
                alarm_date=day,
                scheduled_hours=planned,
                worked_hours=worked,
                hours_involved=planned - worked,
            ))
    return alarms


def schedule_alarms(
    events: Iterable[ClockEventLike],
    schedule: List[WorkSchedule],
    start_day: date,
    end_day: date,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> List[ScheduleAlarm]:
    events = list(events)
    alarms = (
        missed_clock_ins(events, schedule, start_day, end_day, now=now, tz=tz)
        + overtime_alarms(events, schedule, start_day, end_day, now=now, tz=tz)
        + work_shortfall_alarms(events, schedule, start_day, end_day, now=now, tz=tz)
    )
    return sorted(alarms, key=lambda a: a.alarm_date)
