"""Due-task and nudge notifications for one signed-in session."""
import logging
import threading
from datetime import datetime, timedelta

import pytz
from apscheduler.jobstores.base import JobLookupError

from backend.timeutils import parse_iso_date, time_to_minutes

logger = logging.getLogger(__name__)


class NotificationTracker:
    """
    Remembers which tasks have already been announced for a session.

    A task is announced once when its date/time passes. Tasks with a ``nudge``
    interval are announced again every ``nudge`` minutes until completed.
    Changing a task's date or time resets what was announced for it.
    """

    def __init__(self, user_id, timezone='UTC', poll_seconds=60):
        self.user_id = user_id
        self.tz = pytz.timezone(timezone)
        self.poll_seconds = poll_seconds
        self._notified = {}
        self._queue = []
        self._job = None
        # the scheduler thread and request handlers share the queue
        self._lock = threading.Lock()

    def _due_at(self, task):
        day_value = parse_iso_date(task.date)
        if not day_value:
            return None
        naive = datetime.combine(day_value, datetime.min.time()) + timedelta(minutes=time_to_minutes(task.time))
        return self.tz.localize(naive)

    def _now(self, now):
        if now is None:
            return datetime.now(self.tz)
        if now.tzinfo is None:
            return self.tz.localize(now)
        return now

    def _push(self, kind, message, task=None, now=None):
        item = {
            'kind': kind,
            'message': message,
            'task_id': task.id if task else None,
            'title': task.title if task else None,
            'at': self._now(now).isoformat(),
        }
        self._queue.append(item)
        return item

    def check(self, tasks, now=None):
        """Queue and return notifications that became due at ``now``."""
        now = self._now(now)
        fresh = []
        with self._lock:
            for task in tasks:
                if task.completed or task.deleted:
                    self._notified.pop(task.id, None)
                    continue
                due = self._due_at(task)
                if due is None or due > now:
                    continue
                key = (task.date, task.time)
                state = self._notified.get(task.id)
                if state is None or state['key'] != key:
                    fresh.append(self._push('due', f"Task due: {task.title}", task, now))
                    self._notified[task.id] = {'key': key, 'last': now}
                elif task.nudge and now - state['last'] >= timedelta(minutes=task.nudge):
                    fresh.append(self._push('nudge', f"Reminder: {task.title}", task, now))
                    state['last'] = now
        return fresh

    def notify_failure(self, message):
        with self._lock:
            return self._push('error', message)

    def forget(self, task_id):
        with self._lock:
            self._notified.pop(task_id, None)

    def drain(self):
        with self._lock:
            items, self._queue = self._queue, []
        return items

    def _poll(self, task_loader):
        try:
            self.check(task_loader())
        except Exception as exc:
            logger.error("Notification poll for user %s failed: %s", self.user_id, exc)

    def start(self, scheduler, task_loader):
        """Register an interval job on ``scheduler`` that polls ``task_loader``."""
        if scheduler is None or self._job is not None:
            return
        self._job = scheduler.add_job(
            self._poll,
            'interval',
            seconds=self.poll_seconds,
            args=[task_loader],
            id=f"task_notifications_{self.user_id}_{id(self)}",
            replace_existing=True
        )

    def stop(self):
        if self._job is not None:
            try:
                self._job.remove()
            except JobLookupError:
                logger.debug("Notification job for user %s already gone", self.user_id)
            self._job = None
        with self._lock:
            self._notified.clear()
            self._queue.clear()

    @property
    def running(self):
        return self._job is not None
