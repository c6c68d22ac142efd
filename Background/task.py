from datetime import date, datetime
from typing import List, Optional
from fastapi import BackgroundTasks, FastAPI, HTTPException, Query
import logging

import config
from main import aggregate, localize, parse_events
from models.schema import (
    AnnualSummary,
    DailyHours,
    EntryType,
    HoursAlarm,
    LateClockIn,
    ScheduleAlarm,
    TimeEntryIn,
    WorkedTimeResponse,
)
from reports import annual_summary, daily_breakdown, hours_limit_alarms, late_clock_ins, schedule_alarms
from utils.helper import get_active_employees, get_employee, get_time_entries, insert_time_entry
from utils.ranges import Period, day_bounds, period_bounds

logging.basicConfig(level=config.LOG_LEVEL)

app = FastAPI(title="Worked Time Engine")


def _now() -> datetime:
    return datetime.now(config.TIMEZONE) if config.TIMEZONE else datetime.now()


def _store_timestamp(timestamp: datetime) -> datetime:
    # without a configured zone the store only holds naive local times
    if config.TIMEZONE is None and timestamp.tzinfo is not None:
        return timestamp.astimezone().replace(tzinfo=None)
    return localize(timestamp, config.TIMEZONE)


def _check_day_range(start: date, end: date) -> None:
    if end < start:
        raise HTTPException(status_code=422, detail="end must not be before start")


def _require_employee(employee_id: str) -> dict:
    employee = get_employee(employee_id)
    if not employee or not employee["is_active"]:
        logging.error(f"Unknown or inactive employee: {employee_id}")
        raise HTTPException(status_code=404, detail="Employee not found")
    return employee


@app.post("/time-entries")
def receive_time_entry(entry: TimeEntryIn, background_tasks: BackgroundTasks):
    _require_employee(entry.employee_id)
    row = entry.model_dump()
    row["timestamp"] = _store_timestamp(entry.timestamp)
    background_tasks.add_task(insert_time_entry, row)
    return {"status": "Time entry received, processing in background."}


@app.get("/employees/{employee_id}/worked-time", response_model=WorkedTimeResponse)
def worked_time(employee_id: str, period: Period = Period.TODAY):
    _require_employee(employee_id)
    now = _now()
    range_start, range_end = period_bounds(period, now)
    totals = aggregate(get_time_entries(employee_id), range_start, range_end, now=now, tz=config.TIMEZONE)
    return WorkedTimeResponse(
        employee_id=employee_id,
        period=period.value,
        range_start=range_start,
        range_end=range_end,
        total_ms=totals.total_ms,
        total_hours=totals.total_hours,
        total_night_hours=totals.total_night_hours,
    )


@app.get("/employees/{employee_id}/daily", response_model=List[DailyHours])
def daily_hours(employee_id: str, start: date, end: date):
    _require_employee(employee_id)
    _check_day_range(start, end)
    return daily_breakdown(get_time_entries(employee_id), start, end, now=_now(), tz=config.TIMEZONE)


@app.get("/employees/{employee_id}/annual", response_model=AnnualSummary)
def annual_hours(employee_id: str, year: int = Query(..., ge=1970, le=9999)):
    _require_employee(employee_id)
    return annual_summary(get_time_entries(employee_id), year, now=_now(), tz=config.TIMEZONE)


@app.get("/employees/{employee_id}/late-clock-ins", response_model=List[LateClockIn])
def late_entries(employee_id: str, start: date, end: date):
    employee = _require_employee(employee_id)
    _check_day_range(start, end)
    range_start = day_bounds(start, config.TIMEZONE)[0]
    range_end = day_bounds(end, config.TIMEZONE)[1]
    entries = get_time_entries(employee_id, range_start, range_end)
    return late_clock_ins(entries, employee["schedule"], config.LATE_TOLERANCE_MINUTES, tz=config.TIMEZONE)


@app.get("/employees/{employee_id}/schedule-alarms", response_model=List[ScheduleAlarm])
def schedule_alarm_entries(employee_id: str, start: date, end: date):
    employee = _require_employee(employee_id)
    _check_day_range(start, end)
    return schedule_alarms(get_time_entries(employee_id), employee["schedule"], start, end, now=_now(), tz=config.TIMEZONE)


@app.get("/alarms/hours", response_model=List[HoursAlarm])
def hours_alarms(period: Period = Period.WEEK, limit: Optional[float] = Query(None, gt=0)):
    now = _now()
    range_start, range_end = period_bounds(period, now)
    entries_by_employee = {emp["id"]: get_time_entries(emp["id"]) for emp in get_active_employees()}
    limit_hours = limit if limit is not None else config.HOURS_LIMIT
    return hours_limit_alarms(entries_by_employee, limit_hours, range_start, range_end, now=now, tz=config.TIMEZONE)


def run_end_of_day_check() -> List[str]:
    logging.info("Running end-of-day open session check for all employees")
    still_clocked_in = []
    for emp in get_active_employees():
        events = parse_events(get_time_entries(emp["id"]), config.TIMEZONE)
        last_in = max((e.timestamp for e in events if e.entry_type == EntryType.CLOCK_IN), default=None)
        last_out = max((e.timestamp for e in events if e.entry_type == EntryType.CLOCK_OUT), default=None)
        if last_in is not None and (last_out is None or last_out < last_in):
            logging.warning(f"Employee {emp['id']} is still clocked in since {last_in.isoformat()}")
            still_clocked_in.append(emp["id"])
    logging.info("End-of-day open session check completed.")
    return still_clocked_in
