from datetime import datetime, time, date
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict


class EntryType(str, Enum):
    CLOCK_IN = "clock_in"
    BREAK_START = "break_start"
    BREAK_END = "break_end"
    CLOCK_OUT = "clock_out"


class RawClockEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    entry_type: EntryType
    timestamp: datetime
    employee_id: Optional[Union[str, int]] = None


class WorkSegment(BaseModel):
    model_config = ConfigDict(frozen=True)

    clock_in: datetime
    clock_out: datetime
    break_duration_ms: float = 0.0


class SegmentHours(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_hours: float
    night_hours: float
    worked_ms: float


class RangeAggregate(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_ms: float = 0.0
    total_night_hours: float = 0.0

    @property
    def total_hours(self) -> float:
        return self.total_ms / 3_600_000


class DailyHours(BaseModel):
    day: date
    segments: List[WorkSegment] = []
    total_hours: float = 0.0
    night_hours: float = 0.0
    worked_ms: float = 0.0


class AnnualSummary(BaseModel):
    year: int
    monthly_hours: List[float]
    monthly_night_hours: List[float]
    total_hours: float
    night_hours: float


class HoursAlarm(BaseModel):
    employee_id: str
    total_hours: float
    night_hours: float
    limit_hours: float


class WorkSchedule(BaseModel):
    day: str
    is_working: bool = True
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    break_minutes: int = 0


class LateClockIn(BaseModel):
    alarm_date: date
    timestamp: datetime
    scheduled_start: time
    delay_minutes: float
    hours_involved: float


class ScheduleAlarmType(str, Enum):
    MISSED_CLOCK_IN = "missed_clock_in"
    MISSED_CLOCK_OUT = "missed_clock_out"
    OVERTIME = "overtime"
    WORK_SHORTFALL = "work_shortfall"


class ScheduleAlarm(BaseModel):
    alarm_type: ScheduleAlarmType
    alarm_date: date
    scheduled_hours: float = 0.0
    worked_hours: float = 0.0
    hours_involved: float = 0.0


class TimeEntryIn(BaseModel):
    employee_id: str
    entry_type: EntryType
    timestamp: datetime


class WorkedTimeResponse(BaseModel):
    employee_id: str
    period: str
    range_start: Optional[datetime] = None
    range_end: Optional[datetime] = None
    total_ms: float
    total_hours: float
    total_night_hours: float
