"""In-memory records used by the calendar core."""

import json
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Optional

logger = logging.getLogger(__name__)

EVENT_TYPES = ('event', 'status', 'focus')
LANE_ANCHORED_TYPES = ('status', 'focus')
RECURRENCE_KINDS = ('none', 'daily', 'weekly', 'monthly')
TASK_PRIORITIES = ('low', 'medium', 'high')

DEFAULT_OVERLAY_TEXT = 'Focus.'
DEFAULT_EVENT_WIDTH = 50
# days a materialized daily series covers, anchor day included
SERIES_LENGTH_DAYS = 90


class Weekday(Enum):
    MONDAY = 'monday'
    TUESDAY = 'tuesday'
    WEDNESDAY = 'wednesday'
    THURSDAY = 'thursday'
    FRIDAY = 'friday'
    SATURDAY = 'saturday'
    SUNDAY = 'sunday'

    @classmethod
    def from_date(cls, day_value):
        return list(cls)[day_value.weekday()]


class RecurringDays:
    """Weekday -> bool mapping that controls which days a daily series fires on."""

    def __init__(self, days=None):
        self._days = {day: False for day in Weekday}
        for key, value in (days or {}).items():
            day = key if isinstance(key, Weekday) else _weekday_or_none(key)
            if day is not None:
                self._days[day] = bool(value)

    @classmethod
    def parse(cls, raw):
        """Accept a mapping, a JSON object string, or None. Malformed input yields no active days."""
        if isinstance(raw, RecurringDays):
            return raw
        if raw is None or raw == '':
            return cls()
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except ValueError:
                logger.warning("Malformed recurringDays %r, treating as no active days", raw)
                return cls()
        if not isinstance(raw, dict):
            logger.warning("recurringDays must be an object, got %s", type(raw).__name__)
            return cls()
        return cls(raw)

    def is_active(self, day):
        return self._days.get(day, False)

    def active_days(self):
        return [day for day in Weekday if self._days[day]]

    def to_dict(self):
        return {day.value: self._days[day] for day in Weekday}

    def to_json(self):
        return json.dumps(self.to_dict())

    def __bool__(self):
        return any(self._days.values())

    def __eq__(self, other):
        if not isinstance(other, RecurringDays):
            return NotImplemented
        return self._days == other._days

    def __repr__(self):
        active = ','.join(day.value[:3] for day in self.active_days())
        return f"RecurringDays({active or '-'})"


def _weekday_or_none(key):
    try:
        return Weekday(str(key).strip().lower())
    except ValueError:
        return None


def normalize_event_type(raw):
    value = str(raw or '').strip().lower()
    return value if value in EVENT_TYPES else 'event'


def normalize_recurring(raw):
    value = str(raw or '').strip().lower()
    return value if value in RECURRENCE_KINDS else 'none'


def normalize_priority(raw):
    value = str(raw or '').strip().lower()
    return value if value in TASK_PRIORITIES else 'medium'


@dataclass
class EventRecord:
    id: str
    name: str = ''
    date: str = ''
    start_time: str = '00:00'
    end_time: str = '00:00'
    type: str = 'event'
    x_position: float = 0
    width: float = DEFAULT_EVENT_WIDTH
    background_color: Optional[str] = None
    color: Optional[str] = None
    recurring: str = 'none'
    recurring_days: RecurringDays = field(default_factory=RecurringDays)
    recurring_event_id: Optional[str] = None
    overlay_text: str = DEFAULT_OVERLAY_TEXT
    # Set while a drag hover is previewing this record; never persisted.
    is_dragging: bool = field(default=False, compare=False)

    @property
    def is_recurring(self):
        return self.recurring != 'none'

    @property
    def is_series_member(self):
        return self.is_recurring and bool(self.recurring_event_id)

    def copy(self, **changes):
        return replace(self, **changes)


@dataclass
class TaskRecord:
    id: str
    title: str = ''
    date: str = ''
    time: str = '00:00'
    priority: str = 'medium'
    nudge: Optional[int] = None
    xposition: float = 0
    estimated_time: Optional[int] = None
    completed: bool = False
    deleted: bool = False

    def copy(self, **changes):
        return replace(self, **changes)


@dataclass
class Occurrence:
    """One event record projected onto one calendar date."""

    source_event: EventRecord
    date: str
    start_time: str
    end_time: str
    x_position: float
    width: float

    @property
    def type(self):
        return self.source_event.type

    @property
    def is_anchor(self):
        return self.source_event.date == self.date


@dataclass
class UserPreferences:
    day_start_time: str = '06:00'
    day_end_time: str = '22:00'
    default_event_width: int = 80
    default_status_width: int = 20
    primary_color: str = '#3B82F6'
    font: str = 'system-ui'

    def width_for(self, event_type):
        if event_type in LANE_ANCHORED_TYPES:
            return self.default_status_width
        return self.default_event_width

    def to_dict(self) -> Dict[str, object]:
        return {
            'dayStartTime': self.day_start_time,
            'dayEndTime': self.day_end_time,
            'defaultEventWidth': self.default_event_width,
            'defaultStatusWidth': self.default_status_width,
            'primaryColor': self.primary_color,
            'font': self.font,
        }
