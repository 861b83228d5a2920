"""
Expansion of stored event records into calendar occurrences.

A record always shows on its own (anchor) date. Beyond that:

* ``daily``   fires on every weekday flagged in ``recurring_days``
* ``weekly``  fires on the anchor's weekday
* ``monthly`` fires on the anchor's day of month (nothing in months that lack it)

Expansion never mutates records and never yields dates before the anchor.
Rows of a materialized daily series stop at the end of the series window.
"""
import calendar
import logging
from datetime import timedelta

from backend.records import SERIES_LENGTH_DAYS, Occurrence, RecurringDays, Weekday
from backend.timeutils import format_iso_date, iter_days, js_weekday_index, parse_iso_date

logger = logging.getLogger(__name__)

ROLLUP_VIEWS = ('week', 'month')
VIEWS = ('day',) + ROLLUP_VIEWS


def daily_series_windows(events):
    """Map each daily ``recurring_event_id`` to the last date its series covers."""
    starts = {}
    for record in events:
        if record.recurring != 'daily' or not record.recurring_event_id:
            continue
        anchor = parse_iso_date(record.date)
        if anchor is None:
            continue
        first = starts.get(record.recurring_event_id)
        if first is None or anchor < first:
            starts[record.recurring_event_id] = anchor
    return {
        series_id: first + timedelta(days=SERIES_LENGTH_DAYS - 1)
        for series_id, first in starts.items()
    }


def occurs_on(record, target_day, series_end=None):
    """
    Return True when ``record`` has an occurrence on ``target_day`` (a date).

    Nothing recurs before the record's own date. ``series_end`` caps a daily
    series member at the last day of its window.
    """
    target_iso = format_iso_date(target_day)
    if record.date == target_iso:
        return True
    if not record.is_recurring:
        return False

    anchor = parse_iso_date(record.date)
    if not anchor:
        logger.warning("Event %s has unparseable date %r, skipping", record.id, record.date)
        return False
    if target_day < anchor:
        return False

    if record.recurring == 'daily':
        if series_end is not None and target_day > series_end:
            return False
        days = RecurringDays.parse(record.recurring_days)
        return days.is_active(Weekday.from_date(target_day))
    if record.recurring == 'weekly':
        return js_weekday_index(target_day) == js_weekday_index(anchor)
    if record.recurring == 'monthly':
        return target_day.day == anchor.day
    return False


def _to_occurrence(record, target_iso):
    return Occurrence(
        source_event=record,
        date=target_iso,
        start_time=record.start_time,
        end_time=record.end_time,
        x_position=record.x_position,
        width=record.width,
    )


def expand(events, target_day, series_windows=None):
    """Occurrences of ``events`` on ``target_day``, at most one per series."""
    target_day = parse_iso_date(target_day)
    if not target_day:
        return []
    events = list(events)
    if series_windows is None:
        series_windows = daily_series_windows(events)
    target_iso = target_day.isoformat()

    occurrences = []
    series_slots = {}
    for record in events:
        if not occurs_on(record, target_day, series_windows.get(record.recurring_event_id)):
            continue
        occurrence = _to_occurrence(record, target_iso)
        series_id = record.recurring_event_id
        if not series_id:
            occurrences.append(occurrence)
            continue
        slot = series_slots.get(series_id)
        if slot is None:
            series_slots[series_id] = len(occurrences)
            occurrences.append(occurrence)
        elif occurrence.is_anchor and not occurrences[slot].is_anchor:
            occurrences[slot] = occurrence
    return occurrences


def expand_range(events, start_day, end_day):
    """Map each ISO date in ``[start_day, end_day]`` to its occurrences."""
    start_day = parse_iso_date(start_day)
    end_day = parse_iso_date(end_day)
    if not start_day or not end_day or end_day < start_day:
        return {}
    events = list(events)
    windows = daily_series_windows(events)
    return {day.isoformat(): expand(events, day, windows) for day in iter_days(start_day, end_day)}


def filter_for_view(occurrences, view):
    """Status overlays belong to the day view only; week/month rollups drop them."""
    if view in ROLLUP_VIEWS:
        return [occ for occ in occurrences if occ.type != 'status']
    return list(occurrences)


def view_range(view, anchor_day):
    """Return the inclusive (start, end) dates a view shows around ``anchor_day``."""
    anchor_day = parse_iso_date(anchor_day)
    if view == 'week':
        start = anchor_day - timedelta(days=js_weekday_index(anchor_day))
        return start, start + timedelta(days=6)
    if view == 'month':
        _, last_dom = calendar.monthrange(anchor_day.year, anchor_day.month)
        return anchor_day.replace(day=1), anchor_day.replace(day=last_dom)
    return anchor_day, anchor_day
