from typing import Optional, List
from datetime import datetime, time

from models.schema import EntryType, WorkSchedule

# Mock employee and time entry data stores
mock_employees = [
    {
        "id": "1",
        "name": "Ana Torres",
        "is_active": True,
        "schedule": [
            WorkSchedule(day=day, start_time=time(9, 0), end_time=time(17, 0), break_minutes=60)
            for day in ("monday", "tuesday", "wednesday", "thursday", "friday")
        ] + [
            WorkSchedule(day="saturday", is_working=False),
            WorkSchedule(day="sunday", is_working=False),
        ],
    },
    {
        "id": "2",
        "name": "Luis Gomez",
        "is_active": True,
        "schedule": [
            WorkSchedule(day=day, start_time=time(22, 0), end_time=time(6, 0))
            for day in ("monday", "tuesday", "wednesday", "thursday", "friday")
        ],
    },
]

mock_time_entries = []


def get_employee(employee_id: str) -> Optional[dict]:
    for emp in mock_employees:
        if emp["id"] == employee_id:
            return emp
    return None


def get_active_employees() -> List[dict]:
    return [emp for emp in mock_employees if emp["is_active"]]


def insert_time_entry(entry: dict) -> None:
    mock_time_entries.append({
        "employee_id": str(entry["employee_id"]),
        "entry_type": EntryType(entry["entry_type"]).value,
        "timestamp": entry["timestamp"],
    })


def get_time_entries(employee_id: str, start: Optional[datetime] = None, end: Optional[datetime] = None) -> List[dict]:
    entries = [e for e in mock_time_entries if e["employee_id"] == employee_id]
    if start is not None:
        entries = [e for e in entries if e["timestamp"] >= start]
    if end is not None:
        entries = [e for e in entries if e["timestamp"] <= end]
    return sorted(entries, key=lambda x: x["timestamp"])
