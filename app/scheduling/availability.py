"""
Doctor weekly availability.

A doctor's open hours are a template of TimeSlot rows, one or more per
weekday. When a weekday carries several rows the windows are merged, so a
request is accepted if it fits inside the union of that day's windows.
"""
from datetime import date, time
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from ..models.doctor import TimeSlot

Window = Tuple[time, time]

def day_of_week_for(day: date) -> int:
    """Weekday number as stored on time slots: 0 = Sunday ... 6 = Saturday."""
    return day.isoweekday() % 7

def available_windows(db: Session, doctor_id: int, day_of_week: int) -> List[TimeSlot]:
    """All time slots a doctor has on a weekday, earliest first."""
    return (
        db.query(TimeSlot)
        .filter(TimeSlot.doctor_id == doctor_id, TimeSlot.day_of_week == day_of_week)
        .order_by(TimeSlot.start_time)
        .all()
    )

def merge_windows(windows: Iterable) -> List[Window]:
    """Union of windows; overlapping or touching windows become one span."""
    spans = sorted(
        (w.start_time, w.end_time) if hasattr(w, "start_time") else tuple(w)
        for w in windows
    )
    merged: List[Window] = []
    for start, end in spans:
        if merged and start <= merged[-1][1]:
            if end > merged[-1][1]:
                merged[-1] = (merged[-1][0], end)
        else:
            merged.append((start, end))
    return merged

def is_within_availability(window: Window, start: time, end: time) -> bool:
    window_start, window_end = window
    return start >= window_start and end <= window_end

def covering_window(windows: Sequence, start: time, end: time) -> Optional[Window]:
    """The merged span that fully contains ``[start, end)``, if any."""
    for span in merge_windows(windows):
        if is_within_availability(span, start, end):
            return span
    return None

def describe_windows(windows: Sequence) -> str:
    """Human readable hours, e.g. ``09:00-12:00, 13:00-17:00``."""
    return ", ".join(
        f"{start.strftime('%H:%M')}-{end.strftime('%H:%M')}"
        for start, end in merge_windows(windows)
    )
