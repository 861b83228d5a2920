"""
Placement rules for drag, drop, lane edits and event creation.

Vertical positions snap to 15 minutes inside the visible range, horizontal
lanes snap to 5% and never overflow the right edge of the grid. Edits to a
member of a recurring series are applied to every record of that series.
"""
import logging
import uuid
from collections import namedtuple
from datetime import timedelta

from backend.records import (
    DEFAULT_OVERLAY_TEXT,
    LANE_ANCHORED_TYPES,
    SERIES_LENGTH_DAYS,
    EventRecord,
    RecurringDays,
    UserPreferences,
    Weekday,
    normalize_event_type,
    normalize_recurring,
)
from backend.timeutils import (
    MINUTES_PER_DAY,
    clamp,
    day_delta,
    minutes_to_time,
    parse_iso_date,
    shift_date,
    snap,
    time_to_minutes,
)

logger = logging.getLogger(__name__)

TIME_STEP_MINUTES = 15
LANE_STEP_PERCENT = 5

Point = namedtuple('Point', ['x', 'y'])
Rect = namedtuple('Rect', ['left', 'top', 'width', 'height'])
VisibleRange = namedtuple('VisibleRange', ['start', 'end'])

DEFAULT_VISIBLE_RANGE = VisibleRange('06:00', '22:00')
NO_OFFSET = Point(0, 0)

EDITABLE_FIELDS = (
    'name', 'date', 'start_time', 'end_time', 'type', 'x_position', 'width',
    'background_color', 'color', 'recurring', 'recurring_days', 'overlay_text',
)
PLACEMENT_FIELDS = ('date', 'start_time', 'end_time', 'x_position', 'width')


def new_record_id():
    return uuid.uuid4().hex


def _visible_minutes(visible_range):
    visible_range = visible_range or DEFAULT_VISIBLE_RANGE
    start = time_to_minutes(visible_range.start)
    end = time_to_minutes(visible_range.end)
    if end <= start:
        return 0, MINUTES_PER_DAY
    return start, end


def compute_drop_position(pointer, grid_rect, grab_offset, duration_minutes, visible_range=None):
    """Return ``(start_time, end_time)`` for an event dragged to ``pointer``."""
    grab_offset = grab_offset or NO_OFFSET
    visible_start, visible_end = _visible_minutes(visible_range)
    duration = max(0, int(duration_minutes or 0))

    if grid_rect.height > 0:
        top = pointer.y - grab_offset.y - grid_rect.top
        minutes = visible_start + (top / grid_rect.height) * (visible_end - visible_start)
    else:
        minutes = visible_start
    minutes = snap(minutes, TIME_STEP_MINUTES)

    latest_start = max(visible_start, visible_end - duration)
    start = clamp(minutes, visible_start, latest_start)
    if start + duration > MINUTES_PER_DAY:
        start = max(0, MINUTES_PER_DAY - duration)
    return minutes_to_time(start), minutes_to_time(start + duration)


def default_x_position(event_type, width):
    """Status and focus lanes hug the right edge; everything else starts at 0."""
    if event_type in LANE_ANCHORED_TYPES:
        return max(0, 100 - clamp(width, 0, 100))
    return 0


def clamp_lane(x_position, width):
    """Pull ``x_position`` left until the lane fits inside the grid."""
    width = clamp(width, 0, 100)
    x_position = max(0, x_position)
    if x_position + width > 100:
        x_position = max(0, 100 - width)
    return x_position


def compute_horizontal_slot(pointer, grid_rect, grab_offset, width, event_type='event'):
    """Return the snapped, clamped ``x_position`` (percent) for a dragged lane."""
    grab_offset = grab_offset or NO_OFFSET
    width = clamp(width, 0, 100)
    if grid_rect.width <= 0:
        return default_x_position(event_type, width)
    left = pointer.x - grab_offset.x - grid_rect.left
    percent = (left / grid_rect.width) * 100
    return clamp(snap(percent, LANE_STEP_PERCENT), 0, 100 - width)


def compute_task_drop(pointer, grid_rect, visible_range=None):
    """Tasks are point markers: return ``(time, xposition)`` for a dropped task."""
    visible_start, visible_end = _visible_minutes(visible_range)
    if grid_rect.height > 0:
        offset = (pointer.y - grid_rect.top) / grid_rect.height
        minutes = visible_start + offset * (visible_end - visible_start)
    else:
        minutes = visible_start
    minutes = clamp(snap(minutes, TIME_STEP_MINUTES), visible_start, visible_end)
    if grid_rect.width > 0:
        percent = ((pointer.x - grid_rect.left) / grid_rect.width) * 100
    else:
        percent = 0
    xposition = clamp(snap(percent, LANE_STEP_PERCENT), 0, 100)
    return minutes_to_time(min(minutes, MINUTES_PER_DAY - 1)), xposition


def find_event(all_events, event_id):
    event_id = str(event_id)
    return next((ev for ev in all_events if str(ev.id) == event_id), None)


def _clean_updates(updates):
    changes = {}
    for key, value in (updates or {}).items():
        if key not in EDITABLE_FIELDS:
            continue
        if key == 'type':
            value = normalize_event_type(value)
        elif key == 'recurring':
            value = normalize_recurring(value)
        elif key == 'recurring_days':
            value = RecurringDays.parse(value)
        elif key in ('x_position', 'width'):
            try:
                value = float(value)
            except (TypeError, ValueError):
                logger.warning("Ignoring non-numeric %s=%r", key, value)
                continue
        changes[key] = value
    return changes


def _apply(record, changes):
    updated = record.copy(is_dragging=False, **changes)
    if 'width' in changes or 'x_position' in changes:
        width = clamp(updated.width, 0, 100)
        updated.width = width
        updated.x_position = clamp_lane(updated.x_position, width)
    return updated


def apply_update(event_id, updates, all_events, visual_only=False, occurrence_date=None):
    """
    Return the updated records affected by editing ``event_id``.

    ``occurrence_date`` is the date of the occurrence that was edited or
    dragged (the record's own date when omitted). A new ``date`` moves every
    affected record by the whole-day delta from that occurrence.

    A visual-only update (drag hover) touches the target alone and is flagged
    ``is_dragging``; the caller must not persist it. Otherwise, when the target
    belongs to a recurring series, every member moves by the same delta and
    takes the other updated fields verbatim.
    """
    target = find_event(all_events, event_id)
    if target is None:
        logger.warning("Update for unknown event %s ignored", event_id)
        return []

    changes = _clean_updates(updates)
    new_date = changes.pop('date', None)
    origin_date = occurrence_date or target.date
    delta = day_delta(origin_date, new_date) if new_date else 0

    def moved(record):
        record_changes = dict(changes)
        if delta:
            record_changes['date'] = shift_date(record.date, delta)
        elif new_date and record is target and parse_iso_date(origin_date) is None:
            record_changes['date'] = new_date
        return _apply(record, record_changes)

    if visual_only:
        return [moved(target).copy(is_dragging=True)]
    if not target.is_series_member:
        return [moved(target)]
    return [moved(member) for member in all_events
            if member.recurring_event_id == target.recurring_event_id]


def delete_event(event_id, all_events):
    """Return ids to remove: the whole series when the target has one."""
    target = find_event(all_events, event_id)
    if target is None:
        logger.warning("Delete for unknown event %s ignored", event_id)
        return []
    if target.recurring_event_id:
        return [ev.id for ev in all_events if ev.recurring_event_id == target.recurring_event_id]
    return [target.id]


def is_net_change(before, after):
    return any(getattr(before, name) != getattr(after, name) for name in PLACEMENT_FIELDS)


def create_events(data, preferences=None, id_factory=new_record_id):
    """
    Build the records a new event submission turns into.

    ``daily`` series are materialized as one record per flagged weekday over
    the next 90 days; ``weekly`` and ``monthly`` stay a single record that the
    expander repeats on demand.
    """
    preferences = preferences or UserPreferences()
    event_type = normalize_event_type(data.get('type'))

    width = data.get('width')
    width = clamp(float(width), 0, 100) if width is not None else preferences.width_for(event_type)
    x_position = data.get('x_position')
    if x_position is None:
        x_position = default_x_position(event_type, width)
    x_position = clamp_lane(float(x_position), width)

    recurring = normalize_recurring(data.get('recurring'))
    recurring_days = RecurringDays.parse(data.get('recurring_days'))
    base = EventRecord(
        id=str(data.get('id') or id_factory()),
        name=(data.get('name') or '').strip(),
        date=data.get('date') or '',
        start_time=data.get('start_time') or '00:00',
        end_time=data.get('end_time') or '00:00',
        type=event_type,
        x_position=x_position,
        width=width,
        background_color=data.get('background_color'),
        color=data.get('color'),
        recurring=recurring,
        recurring_days=recurring_days,
        overlay_text=data.get('overlay_text') or DEFAULT_OVERLAY_TEXT,
    )
    if recurring == 'none':
        return [base]

    series_id = id_factory()
    anchor = parse_iso_date(base.date)
    if recurring != 'daily' or anchor is None or not recurring_days:
        return [base.copy(recurring_event_id=series_id)]

    records = []
    for offset in range(SERIES_LENGTH_DAYS):
        day_value = anchor + timedelta(days=offset)
        if recurring_days.is_active(Weekday.from_date(day_value)):
            records.append(base.copy(
                id=id_factory(),
                date=day_value.isoformat(),
                recurring_event_id=series_id,
            ))
    return records


def merge_records(current, changed):
    """Replace records of ``current`` by id with ``changed``; unseen ids are appended."""
    by_id = {str(rec.id): rec for rec in changed}
    merged = []
    for rec in current:
        merged.append(by_id.pop(str(rec.id), rec))
    merged.extend(rec for rec in changed if str(rec.id) in by_id)
    return merged


def reduce_events(current, action):
    """Pure ``(events, action) -> events`` transition used by the session controller."""
    kind = action.get('type')
    if kind == 'load':
        return list(action.get('events') or [])
    if kind == 'create':
        return list(current) + list(action.get('records') or [])
    if kind == 'update':
        changed = apply_update(
            action.get('event_id'),
            action.get('updates'),
            current,
            visual_only=bool(action.get('visual_only')),
            occurrence_date=action.get('occurrence_date'),
        )
        return merge_records(current, changed)
    if kind == 'delete':
        removed = set(str(i) for i in delete_event(action.get('event_id'), current))
        return [rec for rec in current if str(rec.id) not in removed]
    logger.warning("Unknown event action %r", kind)
    return list(current)
