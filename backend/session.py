"""
Per-user calendar state: the loaded events and tasks, the active drag
gesture, and the notification tracker. Built when a user signs in and torn
down when they sign out.
"""
import logging
import threading

from backend.notifications import NotificationTracker
from backend.placement import (
    VisibleRange,
    apply_update,
    compute_drop_position,
    compute_horizontal_slot,
    create_events,
    delete_event,
    find_event,
    is_net_change,
    merge_records,
    new_record_id,
    reduce_events,
)
from backend.recurrence import expand, expand_range, filter_for_view
from backend.records import UserPreferences
from backend.store import PersistenceError
from backend.timeutils import format_iso_date, parse_iso_date, time_to_minutes

logger = logging.getLogger(__name__)


class DragInProgressError(Exception):
    """A second drag was started while another one is still active."""


class DragGesture:
    """
    One drag of one event. ``hover`` previews without saving; ``drop``
    saves at most once, and not at all when nothing moved.
    """

    def __init__(self, session, event_id, occurrence_date=None):
        self.session = session
        self.origin = find_event(session.events, event_id)
        self.occurrence_date = format_iso_date(parse_iso_date(occurrence_date)) if occurrence_date else None
        self.active = True
        if self.origin is None:
            logger.warning("Drag started on unknown event %s", event_id)

    @property
    def duration(self):
        return max(0, time_to_minutes(self.origin.end_time) - time_to_minutes(self.origin.start_time))

    def candidate(self, pointer, grid_rect, grab_offset=None, day=None):
        start_time, end_time = compute_drop_position(
            pointer, grid_rect, grab_offset, self.duration, self.session.visible_range()
        )
        x_position = compute_horizontal_slot(
            pointer, grid_rect, grab_offset, self.origin.width, self.origin.type
        )
        updates = {'start_time': start_time, 'end_time': end_time, 'x_position': x_position}
        if day is not None:
            updates['date'] = format_iso_date(parse_iso_date(day))
        return updates

    def hover(self, pointer, grid_rect, grab_offset=None, day=None):
        if not self.active or self.origin is None:
            return None
        updates = self.candidate(pointer, grid_rect, grab_offset, day)
        self.session.update(self.origin.id, updates, visual_only=True, occurrence_date=self.occurrence_date)
        return updates

    def _restore_origin(self):
        self.session.events = merge_records(self.session.events, [self.origin])

    def _finish(self):
        self.active = False
        if self.session.gesture is self:
            self.session.gesture = None

    def cancel(self):
        if self.active and self.origin is not None:
            self._restore_origin()
        self._finish()

    def drop(self, pointer=None, grid_rect=None, grab_offset=None, day=None, updates=None):
        """
        Commit the gesture. Either pass the pointer geometry or explicit
        ``updates``; returns the records that were saved.
        """
        if not self.active:
            return []
        self._finish()
        if self.origin is None:
            return []
        self._restore_origin()
        if updates is None:
            updates = self.candidate(pointer, grid_rect, grab_offset, day)

        preview = apply_update(
            self.origin.id, updates, [self.origin], visual_only=True, occurrence_date=self.occurrence_date
        )
        if not preview or not is_net_change(self.origin, preview[0]):
            logger.debug("Drop of %s left it in place, nothing to save", self.origin.id)
            return []
        return self.session.update(self.origin.id, updates, occurrence_date=self.occurrence_date)


class CalendarSession:

    def __init__(self, user_id, store, preferences=None, tracker=None):
        self.user_id = user_id
        self.store = store
        self.preferences = preferences or UserPreferences()
        self.tracker = tracker or NotificationTracker(user_id)
        self.events = []
        self.tasks = []
        self.gesture = None

    # --- lifecycle ---

    def open(self, scheduler=None, task_loader=None):
        self.refresh()
        self.refresh_tasks()
        self.tracker.start(scheduler, task_loader or self.store.load_tasks)
        return self

    def close(self):
        if self.gesture is not None:
            self.gesture.cancel()
        self.tracker.stop()
        self.events = []
        self.tasks = []

    def visible_range(self):
        return VisibleRange(self.preferences.day_start_time, self.preferences.day_end_time)

    # --- events ---

    def refresh(self):
        self.events = reduce_events(self.events, {'type': 'load', 'events': self.store.load_events()})
        return self.events

    def occurrences(self, day, view='day'):
        return filter_for_view(expand(self.events, day), view)

    def occurrences_between(self, start_day, end_day, view='week'):
        by_day = expand_range(self.events, start_day, end_day)
        return {day: filter_for_view(items, view) for day, items in by_day.items()}

    def _save_events(self, records):
        try:
            return self.store.save_events(records)
        except PersistenceError as exc:
            # the local change stays; the user is told the save failed
            self.tracker.notify_failure(f"Could not save {len(records)} event(s): {exc}")
            raise

    def create(self, data):
        records = create_events(data, self.preferences)
        self.events = reduce_events(self.events, {'type': 'create', 'records': records})
        self._save_events(records)
        return records

    def preview(self, event_id, updates, occurrence_date=None):
        """Where an edit would put ``event_id``, without touching the loaded events."""
        return apply_update(event_id, updates, self.events, visual_only=True, occurrence_date=occurrence_date)

    def update(self, event_id, updates, visual_only=False, occurrence_date=None):
        changed = apply_update(event_id, updates, self.events, visual_only=visual_only,
                               occurrence_date=occurrence_date)
        if not changed:
            return []
        self.events = merge_records(self.events, changed)
        if not visual_only:
            self._save_events(changed)
        return changed

    def delete(self, event_id):
        ids = delete_event(event_id, self.events)
        if not ids:
            return []
        self.events = reduce_events(self.events, {'type': 'delete', 'event_id': event_id})
        try:
            self.store.delete_events(ids)
        except PersistenceError as exc:
            self.tracker.notify_failure(f"Could not delete event(s): {exc}")
            raise
        return ids

    def begin_drag(self, event_id, occurrence_date=None):
        if self.gesture is not None and self.gesture.active:
            raise DragInProgressError(f"Event {self.gesture.origin.id if self.gesture.origin else '?'} is being dragged")
        self.gesture = DragGesture(self, event_id, occurrence_date)
        return self.gesture

    # --- tasks ---

    def refresh_tasks(self):
        self.tasks = self.store.load_tasks()
        return self.tasks

    def find_task(self, task_id):
        task_id = str(task_id)
        return next((t for t in self.tasks if str(t.id) == task_id), None)

    def _save_task(self, task):
        try:
            return self.store.save_task(task)
        except PersistenceError as exc:
            logger.warning("Task save failed for user %s, reloading tasks: %s", self.user_id, exc)
            self.refresh_tasks()
            self.tracker.notify_failure(f"Could not save task: {exc}")
            raise

    def create_task(self, task):
        if not task.id:
            task = task.copy(id=new_record_id())
        self.tasks.append(task)
        self._save_task(task)
        return task

    def update_task(self, task_id, changes):
        current = self.find_task(task_id)
        if current is None:
            logger.warning("Update for unknown task %s ignored", task_id)
            return None
        updated = current.copy(**changes)
        if (updated.date, updated.time) != (current.date, current.time):
            self.tracker.forget(current.id)
        if updated.deleted:
            self.tasks = [t for t in self.tasks if t.id != current.id]
            self.tracker.forget(current.id)
        else:
            self.tasks = [updated if t.id == current.id else t for t in self.tasks]
        self._save_task(updated)
        return updated

    def delete_task(self, task_id):
        return self.update_task(task_id, {'deleted': True})

    def check_notifications(self, now=None):
        return self.tracker.check(self.tasks, now)


class SessionRegistry:
    """Calendar sessions of the signed-in users of one app instance."""

    def __init__(self, factory):
        self._factory = factory
        self._sessions = {}
        self._lock = threading.Lock()

    def get(self, user_id):
        with self._lock:
            calendar_session = self._sessions.get(user_id)
            if calendar_session is None:
                calendar_session = self._factory(user_id)
                self._sessions[user_id] = calendar_session
            return calendar_session

    def close(self, user_id):
        with self._lock:
            calendar_session = self._sessions.pop(user_id, None)
        if calendar_session is not None:
            calendar_session.close()
        return calendar_session

    def close_all(self):
        with self._lock:
            sessions, self._sessions = list(self._sessions.values()), {}
        for calendar_session in sessions:
            calendar_session.close()

    def __contains__(self, user_id):
        return user_id in self._sessions
