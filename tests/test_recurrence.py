from datetime import date

import pytest

from backend.placement import create_events
from backend.records import EventRecord, RecurringDays
from backend.recurrence import (
    daily_series_windows,
    expand,
    expand_range,
    filter_for_view,
    occurs_on,
    view_range,
)


def _event(event_id='e1', day='2024-01-01', recurring='none', days=None, **kwargs):
    return EventRecord(
        id=event_id,
        name=kwargs.pop('name', 'Standup'),
        date=day,
        start_time=kwargs.pop('start_time', '09:00'),
        end_time=kwargs.pop('end_time', '09:30'),
        recurring=recurring,
        recurring_days=RecurringDays.parse(days),
        **kwargs
    )


def test_one_off_event_only_on_its_date():
    event = _event()
    assert occurs_on(event, date(2024, 1, 1))
    assert not occurs_on(event, date(2024, 1, 2))


def test_daily_fires_on_flagged_weekdays_only():
    event = _event(recurring='daily', days={'monday': True, 'wednesday': True})
    assert occurs_on(event, date(2024, 1, 3))
    assert not occurs_on(event, date(2024, 1, 2))
    assert occurs_on(event, date(2024, 1, 8))


def test_nothing_before_the_anchor():
    event = _event(recurring='daily', days={'monday': True, 'wednesday': True})
    assert not occurs_on(event, date(2023, 12, 27))
    weekly = _event(recurring='weekly')
    assert not occurs_on(weekly, date(2023, 12, 25))


def test_weekly_fires_on_anchor_weekday():
    event = _event(recurring='weekly')
    assert occurs_on(event, date(2024, 1, 8))
    assert occurs_on(event, date(2024, 12, 30))
    assert not occurs_on(event, date(2024, 1, 2))


def test_monthly_skips_months_without_the_day():
    event = _event(day='2024-01-31', recurring='monthly')
    february = [date(2024, 2, d) for d in range(15, 30)]
    assert not any(occurs_on(event, d) for d in february)
    assert occurs_on(event, date(2024, 3, 31))
    assert not occurs_on(event, date(2024, 4, 30))


def test_malformed_recurring_days_means_no_extra_days():
    event = _event(recurring='daily')
    event.recurring_days = '{not json'
    assert occurs_on(event, date(2024, 1, 1))
    assert not occurs_on(event, date(2024, 1, 3))


def test_unparseable_anchor_is_skipped():
    event = _event(day='garbage', recurring='weekly')
    assert not occurs_on(event, date(2024, 1, 8))


def test_expand_keeps_one_occurrence_per_series():
    days = {'monday': True, 'wednesday': True}
    first = _event('a', '2024-01-01', 'daily', days, recurring_event_id='s1')
    second = _event('b', '2024-01-03', 'daily', days, recurring_event_id='s1')

    occurrences = expand([first, second], '2024-01-03')

    assert len(occurrences) == 1
    assert occurrences[0].source_event.id == 'b'
    assert occurrences[0].is_anchor


def test_expand_projects_onto_target_date_without_mutating():
    event = _event(recurring='weekly')
    occurrences = expand([event], date(2024, 1, 15))
    assert [occ.date for occ in occurrences] == ['2024-01-15']
    assert event.date == '2024-01-01'
    assert expand([event], 'not-a-date') == []


def test_expand_range_covers_every_day():
    event = _event(recurring='weekly')
    by_day = expand_range([event], '2024-01-01', '2024-01-14')
    assert len(by_day) == 14
    assert [day for day, items in by_day.items() if items] == ['2024-01-01', '2024-01-08']
    assert expand_range([event], '2024-01-05', '2024-01-01') == {}


def test_rollup_views_drop_status_overlays():
    busy = _event('a')
    status = _event('b', type='status')
    occurrences = expand([busy, status], '2024-01-01')
    assert len(filter_for_view(occurrences, 'day')) == 2
    assert [occ.source_event.id for occ in filter_for_view(occurrences, 'week')] == ['a']
    assert [occ.source_event.id for occ in filter_for_view(occurrences, 'month')] == ['a']


def test_view_range_bounds():
    assert view_range('week', date(2024, 1, 3)) == (date(2023, 12, 31), date(2024, 1, 6))
    assert view_range('month', '2024-02-10') == (date(2024, 2, 1), date(2024, 2, 29))
    assert view_range('day', '2024-02-10') == (date(2024, 2, 10), date(2024, 2, 10))


@pytest.mark.parametrize('recurring', ['none', 'daily', 'weekly', 'monthly'])
def test_anchor_date_always_included(recurring):
    # daily record with no flagged days still shows on its own date
    event = _event(day='2024-01-10', recurring=recurring)
    assert occurs_on(event, date(2024, 1, 10))
    assert [occ.date for occ in expand([event], '2024-01-10')] == ['2024-01-10']


def _monday_series():
    return create_events(
        {'name': 'Gym', 'date': '2024-01-01', 'recurring': 'daily', 'recurring_days': {'monday': True}}
    )


def test_daily_series_window_is_ninety_days():
    records = _monday_series()
    series_id = records[0].recurring_event_id
    assert daily_series_windows(records) == {series_id: date(2024, 3, 30)}


def test_daily_series_stops_after_its_window():
    records = _monday_series()
    assert [occ.date for occ in expand(records, '2024-03-25')] == ['2024-03-25']
    assert expand(records, '2024-04-01') == []
    assert expand(records, '2025-06-02') == []
    by_day = expand_range(records, '2024-03-18', '2024-04-08')
    assert [day for day, items in by_day.items() if items] == ['2024-03-18', '2024-03-25']


def test_standalone_daily_record_is_unbounded():
    event = _event(recurring='daily', days={'monday': True})
    assert occurs_on(event, date(2025, 6, 2))
    assert not occurs_on(event, date(2025, 6, 2), series_end=date(2024, 3, 30))
