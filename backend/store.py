"""
Persistence boundary for the calendar core.

Every function is scoped to one user and either commits fully or rolls back
and raises PersistenceError.
"""
import logging

from sqlalchemy.exc import SQLAlchemyError

from backend.mapping import (
    event_from_row,
    event_to_row_values,
    task_from_row,
    task_to_row_values,
)
from backend.records import UserPreferences
from models import CalendarEvent, Task, UserSettings, db

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """A save could not be completed; nothing from the batch was written."""


def load_events(user_id):
    rows = CalendarEvent.query.filter_by(user_id=user_id).order_by(
        CalendarEvent.date.asc(),
        CalendarEvent.starttime.asc()
    ).all()
    return [event_from_row(row) for row in rows]


def save_events(user_id, records):
    """Upsert ``records`` by id in a single transaction."""
    records = list(records)
    if not records:
        return []
    try:
        ids = [record.id for record in records]
        if not all(ids):
            raise PersistenceError("Every event needs an id")
        existing = {
            row.id: row
            for row in CalendarEvent.query.filter(CalendarEvent.id.in_(ids)).all()
        }
        for record in records:
            row = existing.get(record.id)
            if row is not None and row.user_id != user_id:
                raise PersistenceError(f"Event {record.id} belongs to another user")
            if row is None:
                row = CalendarEvent(id=record.id, user_id=user_id)
                db.session.add(row)
                existing[record.id] = row
            for column, value in event_to_row_values(record).items():
                setattr(row, column, value)
        db.session.commit()
    except (SQLAlchemyError, PersistenceError) as exc:
        db.session.rollback()
        logger.error("Saving %s events for user %s failed: %s", len(records), user_id, exc)
        if isinstance(exc, PersistenceError):
            raise
        raise PersistenceError(str(exc)) from exc
    return records


def delete_events(user_id, ids):
    ids = [str(i) for i in ids]
    if not ids:
        return 0
    try:
        rows = CalendarEvent.query.filter(
            CalendarEvent.user_id == user_id,
            CalendarEvent.id.in_(ids)
        ).all()
        for row in rows:
            db.session.delete(row)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Deleting events %s for user %s failed: %s", ids, user_id, exc)
        raise PersistenceError(str(exc)) from exc
    return len(rows)


def load_tasks(user_id):
    rows = Task.query.filter_by(user_id=user_id).order_by(Task.date.asc(), Task.time.asc()).all()
    return [task_from_row(row) for row in rows]


def save_task(user_id, task):
    """Upsert ``task``; a task flagged ``deleted`` is removed instead."""
    if not task.id:
        raise PersistenceError("Task needs an id")
    try:
        row = Task.query.filter_by(id=task.id).first()
        if row is not None and row.user_id != user_id:
            raise PersistenceError(f"Task {task.id} belongs to another user")
        if task.deleted:
            if row is not None:
                db.session.delete(row)
        else:
            if row is None:
                row = Task(id=task.id, user_id=user_id)
                db.session.add(row)
            for column, value in task_to_row_values(task).items():
                setattr(row, column, value)
        db.session.commit()
    except (SQLAlchemyError, PersistenceError) as exc:
        db.session.rollback()
        logger.error("Saving task %s for user %s failed: %s", task.id, user_id, exc)
        if isinstance(exc, PersistenceError):
            raise
        raise PersistenceError(str(exc)) from exc
    return task


def load_settings(user_id):
    row = UserSettings.query.filter_by(user_id=user_id).first()
    if row is None:
        return UserPreferences()
    defaults = UserPreferences()
    return UserPreferences(
        day_start_time=row.day_start_time or defaults.day_start_time,
        day_end_time=row.day_end_time or defaults.day_end_time,
        default_event_width=row.default_event_width or defaults.default_event_width,
        default_status_width=row.default_status_width or defaults.default_status_width,
        primary_color=row.primary_color or defaults.primary_color,
        font=row.font or defaults.font,
    )


def save_settings(user_id, values):
    try:
        row = UserSettings.query.filter_by(user_id=user_id).first()
        if row is None:
            row = UserSettings(user_id=user_id)
            db.session.add(row)
        for attr, value in values.items():
            setattr(row, attr, value)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Saving settings for user %s failed: %s", user_id, exc)
        raise PersistenceError(str(exc)) from exc
    return load_settings(user_id)


class SqlStore:
    """Binds the module-level functions to one user for CalendarSession."""

    def __init__(self, user_id):
        self.user_id = user_id

    def load_events(self):
        return load_events(self.user_id)

    def save_events(self, records):
        return save_events(self.user_id, records)

    def delete_events(self, ids):
        return delete_events(self.user_id, ids)

    def load_tasks(self):
        return load_tasks(self.user_id)

    def save_task(self, task):
        return save_task(self.user_id, task)

    def load_settings(self):
        return load_settings(self.user_id)
