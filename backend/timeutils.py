"""Date and minute-of-day helpers shared by the expander and the placement engine."""
import logging
import math
from datetime import date, datetime, timedelta

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60
END_OF_DAY = '24:00'

WEEKDAY_NAMES = ['monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday']


def time_to_minutes(value):
    """Convert 'HH:MM' to minutes since midnight. Bad or missing input maps to 0."""
    if not value:
        return 0
    try:
        parts = str(value).strip().split(':')
        hours = int(parts[0])
        minutes = int(parts[1]) if len(parts) > 1 else 0
    except (TypeError, ValueError, IndexError):
        logger.warning("Unparseable time %r, treating as 00:00", value)
        return 0
    if hours == 24 and minutes == 0:
        return MINUTES_PER_DAY
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        logger.warning("Out of range time %r, treating as 00:00", value)
        return 0
    return hours * 60 + minutes


def minutes_to_time(minutes):
    minutes = int(clamp(round(minutes), 0, MINUTES_PER_DAY))
    if minutes == MINUTES_PER_DAY:
        return END_OF_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def is_valid_time(value):
    """Strict check used by request validation, unlike time_to_minutes."""
    if not isinstance(value, str):
        return False
    parts = value.strip().split(':')
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        return False
    hours, minutes = int(parts[0]), int(parts[1])
    if hours == 24:
        return minutes == 0
    return 0 <= hours <= 23 and 0 <= minutes <= 59


def snap(value, step):
    if not step:
        return value
    # halves round up, like Math.round in the grid
    return int(math.floor(value / step + 0.5) * step)


def clamp(value, low, high):
    return max(low, min(value, high))


def parse_iso_date(value):
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value), '%Y-%m-%d').date()
    except (TypeError, ValueError):
        return None


def format_iso_date(value):
    return value.isoformat() if value else None


def weekday_name(day_value):
    return WEEKDAY_NAMES[day_value.weekday()]


def js_weekday_index(day_value):
    """Sunday=0 .. Saturday=6."""
    return (day_value.weekday() + 1) % 7


def day_delta(old_value, new_value):
    old_day = parse_iso_date(old_value)
    new_day = parse_iso_date(new_value)
    if not old_day or not new_day:
        return 0
    return (new_day - old_day).days


def shift_date(value, days):
    day_value = parse_iso_date(value)
    if not day_value:
        return value
    return (day_value + timedelta(days=days)).isoformat()


def iter_days(start_day, end_day):
    current = start_day
    while current <= end_day:
        yield current
        current += timedelta(days=1)
