import os

from dotenv import load_dotenv
from flask import Flask, request, jsonify
from flask_login import LoginManager, current_user, login_user, logout_user

load_dotenv()

from models import db, User
from apscheduler.schedulers.background import BackgroundScheduler
from backend.mapping import (
    EVENT_FIELDS,
    TASK_FIELDS,
    attributes_from_payload,
    event_from_payload,
    event_to_payload,
    occurrence_to_payload,
    settings_from_payload,
    task_from_attributes,
    task_to_payload,
)
from backend.notifications import NotificationTracker
from backend.placement import Point, Rect, clamp_lane, compute_task_drop, find_event
from backend.records import normalize_priority
from backend.recurrence import VIEWS, view_range
from backend.session import CalendarSession, DragInProgressError, SessionRegistry
from backend.store import PersistenceError, SqlStore, load_settings, load_tasks, save_settings
from services.validation_service import (
    parse_day_value,
    validate_event_values,
    validate_settings_values,
    validate_task_values,
)

app = Flask(__name__)
app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('DATABASE_URL', 'sqlite:///calendar.db')
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')
app.config['PERMANENT_SESSION_LIFETIME'] = 365 * 24 * 60 * 60  # 1 year in seconds
app.config['API_SHARED_KEY'] = os.environ.get('API_SHARED_KEY')  # Optional shared key for API callers
app.config['DEFAULT_TIMEZONE'] = os.environ.get('DEFAULT_TIMEZONE', 'UTC')
app.config['NOTIFICATION_POLL_SECONDS'] = int(os.environ.get('NOTIFICATION_POLL_SECONDS', 60))

db.init_app(app)
login_manager = LoginManager()
login_manager.init_app(app)
scheduler = None


@login_manager.user_loader
def load_user(user_id):
    try:
        return db.session.get(User, int(user_id))
    except (TypeError, ValueError):
        return None


def get_current_user():
    """Resolve the current user from a shared API key + user id header, else fall back to the login session."""
    # Header-based auth for service callers
    api_key = request.headers.get('X-API-Key')
    api_user_id = request.headers.get('X-User-Id')
    shared_key = app.config.get('API_SHARED_KEY')
    if shared_key and api_key and api_user_id:
        try:
            api_uid_int = int(api_user_id)
        except (TypeError, ValueError):
            api_uid_int = None
        if api_uid_int and api_key == shared_key:
            user = db.session.get(User, api_uid_int)
            if user:
                return user

    # Session-based auth for browser users
    if current_user.is_authenticated:
        return current_user
    return None

with app.app_context():
    db.create_all()


# --- Calendar sessions ---

def _load_tasks_in_context(user_id):
    with app.app_context():
        return load_tasks(user_id)


def _build_calendar_session(user_id):
    tracker = NotificationTracker(
        user_id,
        timezone=app.config['DEFAULT_TIMEZONE'],
        poll_seconds=app.config['NOTIFICATION_POLL_SECONDS']
    )
    store = SqlStore(user_id)
    calendar_session = CalendarSession(user_id, store, preferences=store.load_settings(), tracker=tracker)
    return calendar_session.open(scheduler, task_loader=lambda: _load_tasks_in_context(user_id))


calendar_sessions = SessionRegistry(_build_calendar_session)
app.extensions['calendar_sessions'] = calendar_sessions


def _calendar_session_for(user, refresh=True):
    calendar_session = calendar_sessions.get(user.id)
    if refresh:
        calendar_session.refresh()
    return calendar_session


def _start_scheduler():
    """Start the background scheduler that drives task notifications."""
    global scheduler
    if os.environ.get('ENABLE_NOTIFICATION_JOBS', '1') != '1':
        return
    if scheduler and scheduler.running:
        return
    # Avoid double-start in Flask debug reloader
    if app.debug and os.environ.get('WERKZEUG_RUN_MAIN') != 'true':
        return
    scheduler = BackgroundScheduler(timezone=app.config.get('DEFAULT_TIMEZONE', 'UTC'))
    scheduler.start()


# Start scheduler on process startup (not request-dependent).
# Can be disabled for tooling/tests that only need app context.
if os.environ.get('BOOTSTRAP_JOBS_ON_IMPORT', '1') == '1':
    try:
        _start_scheduler()
    except Exception as e:
        app.logger.error(f"Error starting scheduler on startup: {e}")


def _unauthorized():
    return jsonify({'error': 'Not signed in'}), 401


def _persistence_failed(exc):
    app.logger.error(f"Persistence failure: {exc}")
    return jsonify({'error': 'Could not save changes'}), 500


def _occurrence_date(data):
    """The occurrence a client grabbed, sent as ``occurrenceDate``; returns (iso date or None, error)."""
    raw = data.get('occurrenceDate')
    if not raw:
        return None, None
    day = parse_day_value(raw)
    if not day:
        return None, 'Invalid occurrenceDate'
    return day.isoformat(), None


@app.route('/ping')
def ping():
    return jsonify({'message': 'pong'})


# --- Users ---

@app.route('/api/register', methods=['POST'])
def register():
    data = request.json or {}
    username = (data.get('username') or '').strip()
    password = data.get('password') or ''
    if not username or not password:
        return jsonify({'error': 'Username and password are required'}), 400
    if User.query.filter_by(username=username).first():
        return jsonify({'error': 'Username already exists'}), 400

    user = User(username=username, email=(data.get('email') or '').strip() or None)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()

    login_user(user, remember=True)
    calendar_sessions.get(user.id)
    return jsonify({'success': True, **user.to_dict()}), 201


@app.route('/api/login', methods=['POST'])
def login():
    data = request.json or {}
    user = User.query.filter_by(username=(data.get('username') or '').strip()).first()
    if not user or not user.check_password(data.get('password') or ''):
        return jsonify({'error': 'Invalid username or password'}), 401
    login_user(user, remember=True)
    calendar_sessions.get(user.id)
    app.logger.info(f"User {user.id} signed in")
    return jsonify({'success': True, **user.to_dict()})


@app.route('/api/logout', methods=['POST'])
def logout():
    user = get_current_user()
    if user:
        calendar_sessions.close(user.id)
    logout_user()
    return jsonify({'success': True})


@app.route('/api/current-user')
def current_user_info():
    user = get_current_user()
    if user:
        return jsonify(user.to_dict())
    return jsonify({'user_id': None, 'username': None})


# --- Events ---

@app.route('/api/events', methods=['GET', 'POST'])
def calendar_events():
    user = get_current_user()
    if not user:
        return _unauthorized()
    calendar_session = _calendar_session_for(user)

    if request.method == 'GET':
        return jsonify([event_to_payload(ev) for ev in calendar_session.events])

    values = attributes_from_payload(request.json or {}, EVENT_FIELDS)
    values.pop('recurring_event_id', None)
    values, error = validate_event_values(values)
    if error:
        return jsonify({'error': error}), 400
    try:
        records = calendar_session.create(values)
    except PersistenceError as exc:
        return _persistence_failed(exc)
    return jsonify([event_to_payload(ev) for ev in records]), 201


@app.route('/api/events/batch', methods=['PUT'])
def save_events_batch():
    """Upsert a list of events by id, all or nothing."""
    user = get_current_user()
    if not user:
        return _unauthorized()
    data = request.json
    if not isinstance(data, list):
        return jsonify({'error': 'Invalid input: expected an array of events'}), 400

    records = []
    for raw in data:
        record = event_from_payload(raw if isinstance(raw, dict) else {})
        if not record.id:
            return jsonify({'error': 'Every event needs an id'}), 400
        record.x_position = clamp_lane(record.x_position, record.width)
        records.append(record)

    calendar_session = _calendar_session_for(user, refresh=False)
    try:
        calendar_session.store.save_events(records)
    except PersistenceError as exc:
        return _persistence_failed(exc)
    calendar_session.refresh()
    return jsonify({'message': 'Events updated successfully', 'count': len(records)})


@app.route('/api/events/occurrences')
def event_occurrences():
    user = get_current_user()
    if not user:
        return _unauthorized()
    view = (request.args.get('view') or 'day').lower()
    if view not in VIEWS:
        return jsonify({'error': 'view must be day, week or month'}), 400
    calendar_session = _calendar_session_for(user)

    start_raw = request.args.get('start')
    end_raw = request.args.get('end')
    if start_raw or end_raw:
        start_day = parse_day_value(start_raw)
        end_day = parse_day_value(end_raw or start_raw)
        if not start_day or not end_day:
            return jsonify({'error': 'Invalid start/end date'}), 400
        if end_day < start_day:
            return jsonify({'error': 'end must be on/after start'}), 400
    else:
        day_obj = parse_day_value(request.args.get('date'))
        if not day_obj:
            return jsonify({'error': 'Invalid date'}), 400
        if view == 'day':
            occurrences = calendar_session.occurrences(day_obj, view)
            return jsonify({
                'date': day_obj.isoformat(),
                'view': view,
                'occurrences': [occurrence_to_payload(occ) for occ in occurrences]
            })
        start_day, end_day = view_range(view, day_obj)

    by_day = calendar_session.occurrences_between(start_day, end_day, view)
    return jsonify({
        'start': start_day.isoformat(),
        'end': end_day.isoformat(),
        'view': view,
        'days': {day: [occurrence_to_payload(occ) for occ in items] for day, items in by_day.items()}
    })


@app.route('/api/events/<event_id>', methods=['PUT', 'DELETE'])
def calendar_event_detail(event_id):
    user = get_current_user()
    if not user:
        return _unauthorized()
    calendar_session = _calendar_session_for(user)
    event = find_event(calendar_session.events, event_id)
    if event is None:
        app.logger.warning(f"Event {event_id} not found for user {user.id}")
        return jsonify({'error': 'Event not found'}), 404

    if request.method == 'DELETE':
        try:
            deleted = calendar_session.delete(event_id)
        except PersistenceError as exc:
            return _persistence_failed(exc)
        return jsonify({'deleted': deleted})

    data = request.json or {}
    values = attributes_from_payload(data, EVENT_FIELDS)
    values.pop('id', None)
    values.pop('recurring_event_id', None)
    merged = {'start_time': event.start_time, 'end_time': event.end_time}
    merged.update(values)
    values, error = validate_event_values(merged, partial=True)
    if error:
        return jsonify({'error': error}), 400

    occurrence_date, error = _occurrence_date(data)
    if error:
        return jsonify({'error': error}), 400

    if data.get('isVisualOnly') or data.get('isDragging'):
        # hover previews are echoed back; nothing is kept between requests
        updated = calendar_session.preview(event_id, values, occurrence_date)
        return jsonify({'updated': [event_to_payload(ev) for ev in updated], 'persisted': False})
    try:
        updated = calendar_session.update(event_id, values, occurrence_date=occurrence_date)
    except PersistenceError as exc:
        return _persistence_failed(exc)
    return jsonify({
        'updated': [event_to_payload(ev) for ev in updated],
        'persisted': True
    })


def _geometry(data):
    """Read pointer/grid geometry from a drop payload; None when absent, ValueError when malformed."""
    if 'pointer' not in data:
        return None
    pointer = data.get('pointer') or {}
    grid = data.get('gridRect') or {}
    offset = data.get('grabOffset') or {}
    return (
        Point(float(pointer['x']), float(pointer['y'])),
        Rect(float(grid['left']), float(grid['top']), float(grid['width']), float(grid['height'])),
        Point(float(offset.get('x', 0)), float(offset.get('y', 0))),
    )


@app.route('/api/events/<event_id>/drop', methods=['POST'])
def drop_event(event_id):
    """Commit a drag: either pointer geometry or explicit date/time/lane values."""
    user = get_current_user()
    if not user:
        return _unauthorized()
    data = request.json or {}
    try:
        geometry = _geometry(data)
    except (KeyError, TypeError, ValueError):
        return jsonify({'error': 'Invalid pointer geometry'}), 400

    day = None
    if data.get('date'):
        day = parse_day_value(data.get('date'))
        if not day:
            return jsonify({'error': 'Invalid date'}), 400
    occurrence_date, error = _occurrence_date(data)
    if error:
        return jsonify({'error': error}), 400

    calendar_session = _calendar_session_for(user)
    try:
        gesture = calendar_session.begin_drag(event_id, occurrence_date)
    except DragInProgressError as exc:
        return jsonify({'error': str(exc)}), 409
    if gesture.origin is None:
        gesture.cancel()
        return jsonify({'error': 'Event not found'}), 404

    try:
        if geometry:
            pointer, grid_rect, grab_offset = geometry
            saved = gesture.drop(pointer, grid_rect, grab_offset, day=day)
        else:
            values = attributes_from_payload(data, EVENT_FIELDS)
            updates = {key: values[key] for key in ('start_time', 'end_time', 'x_position', 'width') if key in values}
            if day:
                updates['date'] = day.isoformat()
            updates, error = validate_event_values(updates, partial=True)
            if error:
                gesture.cancel()
                return jsonify({'error': error}), 400
            saved = gesture.drop(updates=updates)
    except PersistenceError as exc:
        return _persistence_failed(exc)
    return jsonify({'changed': bool(saved), 'saved': [event_to_payload(ev) for ev in saved]})


# --- Tasks ---

def _task_values(data):
    values = attributes_from_payload(data, TASK_FIELDS)
    if 'completed' not in values and 'complete' in data:
        values['completed'] = data['complete']
    values.pop('id', None)
    return values


@app.route('/api/tasks', methods=['GET', 'POST'])
def handle_tasks():
    user = get_current_user()
    if not user:
        return _unauthorized()
    calendar_session = _calendar_session_for(user, refresh=False)

    if request.method == 'GET':
        return jsonify([task_to_payload(t) for t in calendar_session.refresh_tasks()])

    data = request.json or {}
    values, error = validate_task_values(_task_values(data))
    if error:
        return jsonify({'error': error}), 400
    values['id'] = data.get('id')
    try:
        task = calendar_session.create_task(task_from_attributes(values))
    except PersistenceError as exc:
        return _persistence_failed(exc)
    return jsonify(task_to_payload(task)), 201


@app.route('/api/tasks/<task_id>', methods=['PUT', 'DELETE'])
def handle_task(task_id):
    user = get_current_user()
    if not user:
        return _unauthorized()
    calendar_session = _calendar_session_for(user, refresh=False)
    calendar_session.refresh_tasks()
    if calendar_session.find_task(task_id) is None:
        return jsonify({'error': 'Task not found'}), 404

    if request.method == 'DELETE':
        changes = {'deleted': True}
    else:
        changes, error = validate_task_values(_task_values(request.json or {}), partial=True)
        if error:
            return jsonify({'error': error}), 400
        if 'priority' in changes:
            changes['priority'] = normalize_priority(changes['priority'])

    try:
        task = calendar_session.update_task(task_id, changes)
    except PersistenceError:
        # the session already reloaded tasks from the store
        return jsonify({
            'error': 'Could not save task',
            'tasks': [task_to_payload(t) for t in calendar_session.tasks]
        }), 500
    if request.method == 'DELETE' or task.deleted:
        return '', 204
    return jsonify(task_to_payload(task))


@app.route('/api/tasks/<task_id>/drop', methods=['POST'])
def drop_task(task_id):
    user = get_current_user()
    if not user:
        return _unauthorized()
    data = request.json or {}
    try:
        geometry = _geometry(data)
    except (KeyError, TypeError, ValueError):
        return jsonify({'error': 'Invalid pointer geometry'}), 400
    if geometry is None:
        return jsonify({'error': 'pointer and gridRect are required'}), 400

    calendar_session = _calendar_session_for(user, refresh=False)
    calendar_session.refresh_tasks()
    current = calendar_session.find_task(task_id)
    if current is None:
        return jsonify({'error': 'Task not found'}), 404

    pointer, grid_rect, _offset = geometry
    time_value, xposition = compute_task_drop(pointer, grid_rect, calendar_session.visible_range())
    changes = {'time': time_value, 'xposition': xposition}
    if data.get('date'):
        day = parse_day_value(data.get('date'))
        if not day:
            return jsonify({'error': 'Invalid date'}), 400
        changes['date'] = day.isoformat()
    if all(getattr(current, key) == value for key, value in changes.items()):
        return jsonify({'changed': False, 'task': task_to_payload(current)})
    try:
        task = calendar_session.update_task(task_id, changes)
    except PersistenceError as exc:
        return _persistence_failed(exc)
    return jsonify({'changed': True, 'task': task_to_payload(task)})


# --- Settings & notifications ---

@app.route('/api/settings', methods=['GET', 'PUT'])
def handle_settings():
    user = get_current_user()
    if not user:
        return _unauthorized()
    if request.method == 'GET':
        return jsonify(load_settings(user.id).to_dict())

    current = load_settings(user.id)
    clean, error = validate_settings_values(settings_from_payload(request.json or {}), current)
    if error:
        return jsonify({'error': error}), 400
    try:
        preferences = save_settings(user.id, clean)
    except PersistenceError as exc:
        return _persistence_failed(exc)
    calendar_sessions.get(user.id).preferences = preferences
    return jsonify(preferences.to_dict())


@app.route('/api/notifications')
def pending_notifications():
    user = get_current_user()
    if not user:
        return _unauthorized()
    calendar_session = _calendar_session_for(user, refresh=False)
    calendar_session.refresh_tasks()
    calendar_session.check_notifications()
    return jsonify({'notifications': calendar_session.tracker.drain()})


if __name__ == '__main__':
    app.run(host='0.0.0.0', debug=True)
