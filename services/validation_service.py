from datetime import date, datetime

from backend.records import RECURRENCE_KINDS, EVENT_TYPES
from backend.timeutils import is_valid_time, time_to_minutes


def parse_bool(value, default=False):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ["1", "true", "yes", "on"]


def parse_day_value(raw):
    if isinstance(raw, date):
        return raw
    try:
        return datetime.strptime(str(raw), "%Y-%m-%d").date()
    except (TypeError, ValueError):
        return None


def parse_time_str(val):
    """Normalize 'H:MM' / 'HH:MM' (or '24:00') to 'HH:MM'; return None on failure."""
    if not val:
        return None
    s = str(val).strip()
    if not is_valid_time(s):
        return None
    hour, minute = s.split(":")
    return f"{int(hour):02d}:{int(minute):02d}"


def parse_percent(value):
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not (0 <= number <= 100):
        return None
    return number


def parse_positive_int(value):
    if value is None or value == "":
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def validate_event_values(values, partial=False):
    """
    Check attribute-named event values coming from a request.
    Returns (clean_values, error); ``partial`` allows missing fields for edits.
    """
    clean = dict(values)
    if not partial or "name" in values:
        name = (values.get("name") or "").strip()
        if not name:
            return None, "Name is required"
        clean["name"] = name
    if not partial or "date" in values:
        day_value = parse_day_value(values.get("date"))
        if not day_value:
            return None, "Invalid date"
        clean["date"] = day_value.isoformat()
    for key, label in (("start_time", "startTime"), ("end_time", "endTime")):
        if not partial or key in values:
            parsed = parse_time_str(values.get(key))
            if not parsed:
                return None, f"Invalid {label}"
            clean[key] = parsed
    if "start_time" in clean and "end_time" in clean:
        if time_to_minutes(clean["end_time"]) <= time_to_minutes(clean["start_time"]):
            return None, "endTime must be after startTime"
    for key, label in (("x_position", "xPosition"), ("width", "width")):
        if values.get(key) is not None:
            number = parse_percent(values.get(key))
            if number is None:
                return None, f"{label} must be a percentage between 0 and 100"
            clean[key] = number
    if "type" in values and values.get("type") and values.get("type") not in EVENT_TYPES:
        return None, "Invalid type"
    if "recurring" in values and values.get("recurring") and values.get("recurring") not in RECURRENCE_KINDS:
        return None, "Invalid recurring"
    return clean, None


def validate_task_values(values, partial=False):
    clean = dict(values)
    if not partial or "title" in values:
        title = (values.get("title") or "").strip()
        if not title:
            return None, "Title is required"
        clean["title"] = title
    if not partial or "date" in values:
        day_value = parse_day_value(values.get("date") or date.today().isoformat())
        if not day_value:
            return None, "Invalid date"
        clean["date"] = day_value.isoformat()
    if not partial or "time" in values:
        parsed = parse_time_str(values.get("time") or "00:00")
        if not parsed:
            return None, "Invalid time"
        clean["time"] = parsed
    if "nudge" in values:
        clean["nudge"] = parse_positive_int(values.get("nudge"))
    if "estimated_time" in values:
        clean["estimated_time"] = parse_positive_int(values.get("estimated_time"))
    if "xposition" in values and values.get("xposition") is not None:
        number = parse_percent(values.get("xposition"))
        if number is None:
            return None, "xposition must be a percentage between 0 and 100"
        clean["xposition"] = number
    for key in ("completed", "deleted"):
        if key in values:
            clean[key] = parse_bool(values.get(key))
    return clean, None


def validate_settings_values(values, current):
    """Merge settings changes onto ``current`` (UserPreferences); returns (clean, error)."""
    clean = {}
    for key in ("day_start_time", "day_end_time"):
        if key in values:
            parsed = parse_time_str(values.get(key))
            if not parsed:
                return None, f"Invalid {key}"
            clean[key] = parsed
    start = clean.get("day_start_time", current.day_start_time)
    end = clean.get("day_end_time", current.day_end_time)
    if time_to_minutes(end) <= time_to_minutes(start):
        return None, "dayEndTime must be after dayStartTime"
    for key in ("default_event_width", "default_status_width"):
        if key in values:
            try:
                width = int(values.get(key))
            except (TypeError, ValueError):
                return None, f"Invalid {key}"
            clean[key] = max(10, min(width, 100))
    for key in ("primary_color", "font"):
        if key in values and values.get(key):
            clean[key] = str(values.get(key)).strip()
    return clean, None
