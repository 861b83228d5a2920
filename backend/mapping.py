"""
Field-name translation between the in-memory records, the JSON API and the
database columns. The API speaks camelCase, the storage layer lowercase; both
directions go through the tables below and nowhere else.
"""
from backend.records import (
    DEFAULT_EVENT_WIDTH,
    DEFAULT_OVERLAY_TEXT,
    EventRecord,
    RecurringDays,
    TaskRecord,
    normalize_event_type,
    normalize_priority,
    normalize_recurring,
)

# attribute -> (api key, storage column)
EVENT_FIELDS = {
    'id': ('id', 'id'),
    'name': ('name', 'name'),
    'date': ('date', 'date'),
    'start_time': ('startTime', 'starttime'),
    'end_time': ('endTime', 'endtime'),
    'type': ('type', 'type'),
    'x_position': ('xPosition', 'xposition'),
    'width': ('width', 'width'),
    'background_color': ('backgroundColor', 'backgroundcolor'),
    'color': ('color', 'color'),
    'recurring': ('recurring', 'recurring'),
    'recurring_days': ('recurringDays', 'recurringdays'),
    'recurring_event_id': ('recurringEventId', 'recurringeventid'),
    'overlay_text': ('overlayText', 'overlaytext'),
}

TASK_FIELDS = {
    'id': ('id', 'id'),
    'title': ('title', 'title'),
    'date': ('date', 'date'),
    'time': ('time', 'time'),
    'priority': ('priority', 'priority'),
    'nudge': ('nudge', 'nudge'),
    'xposition': ('xposition', 'xposition'),
    'estimated_time': ('estimated_time', 'estimated_time'),
    'completed': ('completed', 'completed'),
    'deleted': ('deleted', 'deleted'),
}

SETTINGS_FIELDS = {
    'day_start_time': ('dayStartTime', 'day_start_time'),
    'day_end_time': ('dayEndTime', 'day_end_time'),
    'default_event_width': ('defaultEventWidth', 'default_event_width'),
    'default_status_width': ('defaultStatusWidth', 'default_status_width'),
    'primary_color': ('primaryColor', 'primary_color'),
    'font': ('font', 'font'),
}


def _lookup(data, api_key, column):
    """Find a value under its camelCase key, its lowercase column name, or the lowercased api key."""
    for key in (api_key, column, api_key.lower()):
        if key in data:
            return True, data[key]
    return False, None


def attributes_from_payload(data, fields):
    """Translate an incoming dict to attribute names, keeping only the keys present."""
    values = {}
    for attr, (api_key, column) in fields.items():
        found, value = _lookup(data or {}, api_key, column)
        if found:
            values[attr] = value
    return values


def _as_number(value, default):
    if value is None or value == '':
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return int(number) if number.is_integer() else number


def _as_optional_int(value):
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def event_from_attributes(values):
    return EventRecord(
        id=str(values.get('id') or ''),
        name=values.get('name') or '',
        date=str(values.get('date') or ''),
        start_time=values.get('start_time') or '00:00',
        end_time=values.get('end_time') or '00:00',
        type=normalize_event_type(values.get('type')),
        x_position=_as_number(values.get('x_position'), 0),
        width=_as_number(values.get('width'), DEFAULT_EVENT_WIDTH),
        background_color=values.get('background_color'),
        color=values.get('color'),
        recurring=normalize_recurring(values.get('recurring')),
        recurring_days=RecurringDays.parse(values.get('recurring_days')),
        recurring_event_id=(str(values['recurring_event_id'])
                            if values.get('recurring_event_id') else None),
        overlay_text=values.get('overlay_text') or DEFAULT_OVERLAY_TEXT,
    )


def event_from_payload(data):
    return event_from_attributes(attributes_from_payload(data, EVENT_FIELDS))


def event_to_payload(record):
    payload = {}
    for attr, (api_key, _column) in EVENT_FIELDS.items():
        value = getattr(record, attr)
        if attr == 'recurring_days':
            value = value.to_dict()
        payload[api_key] = value
    payload['isRecurring'] = record.is_recurring
    return payload


def occurrence_to_payload(occurrence):
    payload = event_to_payload(occurrence.source_event)
    payload.update({
        'date': occurrence.date,
        'sourceDate': occurrence.source_event.date,
        'startTime': occurrence.start_time,
        'endTime': occurrence.end_time,
        'xPosition': occurrence.x_position,
        'width': occurrence.width,
    })
    return payload


def event_from_row(row):
    values = {attr: getattr(row, column) for attr, (_api, column) in EVENT_FIELDS.items()}
    return event_from_attributes(values)


def event_to_row_values(record):
    values = {}
    for attr, (_api, column) in EVENT_FIELDS.items():
        value = getattr(record, attr)
        if attr == 'recurring_days':
            value = value.to_json() if value else None
        values[column] = value
    return values


def task_from_attributes(values):
    return TaskRecord(
        id=str(values.get('id') or ''),
        title=(values.get('title') or '').strip(),
        date=str(values.get('date') or ''),
        time=values.get('time') or '00:00',
        priority=normalize_priority(values.get('priority')),
        nudge=_as_optional_int(values.get('nudge')),
        xposition=_as_number(values.get('xposition'), 0),
        estimated_time=_as_optional_int(values.get('estimated_time')),
        completed=bool(values.get('completed')),
        deleted=bool(values.get('deleted')),
    )


def task_from_payload(data):
    values = attributes_from_payload(data, TASK_FIELDS)
    # older clients send `complete`
    if 'completed' not in values and 'complete' in (data or {}):
        values['completed'] = data['complete']
    return task_from_attributes(values)


def task_to_payload(task):
    return {api_key: getattr(task, attr) for attr, (api_key, _column) in TASK_FIELDS.items()}


def task_from_row(row):
    values = {attr: getattr(row, column) for attr, (_api, column) in TASK_FIELDS.items()
              if attr != 'deleted'}
    return task_from_attributes(values)


def task_to_row_values(task):
    return {column: getattr(task, attr) for attr, (_api, column) in TASK_FIELDS.items()
            if attr != 'deleted'}


def settings_from_payload(data):
    return attributes_from_payload(data, SETTINGS_FIELDS)
