import json

from backend.mapping import (
    event_from_payload,
    event_from_row,
    event_to_payload,
    event_to_row_values,
    occurrence_to_payload,
    settings_from_payload,
    task_from_payload,
    task_to_payload,
    task_to_row_values,
)
from backend.records import EventRecord, Occurrence, RecurringDays, Weekday
from models import CalendarEvent


def test_event_payload_accepts_camel_and_lowercase_keys():
    record = event_from_payload({
        'id': 5,
        'name': 'Focus block',
        'date': '2024-01-01',
        'startTime': '09:00',
        'endtime': '10:30',
        'xposition': '25',
        'recurring': 'DAILY',
        'recurringDays': json.dumps({'monday': True}),
        'recurringEventId': 'r9',
        'type': 'focus',
    })
    assert record.id == '5'
    assert (record.start_time, record.end_time) == ('09:00', '10:30')
    assert record.x_position == 25
    assert record.recurring == 'daily'
    assert record.recurring_days.active_days() == [Weekday.MONDAY]
    assert record.recurring_event_id == 'r9'
    assert record.type == 'focus'


def test_event_payload_defaults():
    record = event_from_payload({'id': 'x', 'type': 'party', 'recurring': 'yearly'})
    assert record.type == 'event'
    assert record.recurring == 'none'
    assert record.overlay_text == 'Focus.'
    assert not record.recurring_days


def test_event_to_payload_uses_camel_case():
    record = EventRecord(id='x', name='n', date='2024-01-01', recurring='weekly', recurring_event_id='s')
    payload = event_to_payload(record)
    assert payload['startTime'] == '00:00'
    assert payload['recurringEventId'] == 's'
    assert payload['isRecurring'] is True
    assert payload['recurringDays']['monday'] is False


def test_row_values_round_trip_through_model():
    record = EventRecord(
        id='x', name='n', date='2024-01-01', start_time='09:00', end_time='10:00',
        recurring='daily', recurring_days=RecurringDays({'friday': True}), recurring_event_id='s',
    )
    values = event_to_row_values(record)
    assert json.loads(values['recurringdays'])['friday'] is True
    assert values['starttime'] == '09:00'

    row = CalendarEvent(**values)
    assert event_from_row(row) == record


def test_empty_recurring_days_stored_as_null():
    assert event_to_row_values(EventRecord(id='x'))['recurringdays'] is None


def test_occurrence_payload_reports_projected_date():
    record = EventRecord(id='x', date='2024-01-01', recurring='weekly', recurring_event_id='s')
    occurrence = Occurrence(record, '2024-01-08', '09:00', '10:00', 0, 50)
    payload = occurrence_to_payload(occurrence)
    assert payload['date'] == '2024-01-08'
    assert payload['sourceDate'] == '2024-01-01'
    assert payload['id'] == 'x'


def test_task_payload_accepts_legacy_complete_key():
    task = task_from_payload({'id': 't', 'title': ' Call ', 'complete': True, 'priority': 'urgent', 'nudge': '15'})
    assert task.completed
    assert task.title == 'Call'
    assert task.priority == 'medium'
    assert task.nudge == 15
    assert 'deleted' not in task_to_row_values(task)
    assert task_to_payload(task)['completed'] is True


def test_settings_payload_maps_to_attributes():
    values = settings_from_payload({'dayStartTime': '07:00', 'defaultStatusWidth': 30, 'unknown': 1})
    assert values == {'day_start_time': '07:00', 'default_status_width': 30}
