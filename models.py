from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash
from datetime import datetime

db = SQLAlchemy()

class User(UserMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=True)
    password_hash = db.Column(db.String(200), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # Relationships
    events = db.relationship('CalendarEvent', backref='owner', lazy=True, cascade="all, delete-orphan")
    tasks = db.relationship('Task', backref='owner', lazy=True, cascade="all, delete-orphan")
    settings = db.relationship('UserSettings', backref='user', uselist=False, cascade="all, delete-orphan")

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {'user_id': self.id, 'username': self.username}


class CalendarEvent(db.Model):
    """
    Stored event row. Column names are lowercase; backend.mapping translates
    them to and from the camelCase API shape.
    Daily series are stored one row per day; weekly/monthly series are one row.
    """
    __tablename__ = 'events'

    id = db.Column(db.String(64), primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False, default='')
    date = db.Column(db.String(10), nullable=False, index=True)  # YYYY-MM-DD
    starttime = db.Column(db.String(5), nullable=False, default='00:00')
    endtime = db.Column(db.String(5), nullable=False, default='00:00')
    type = db.Column(db.String(20), default='event')  # event | status | focus
    xposition = db.Column(db.Float, default=0)
    width = db.Column(db.Float, default=50)
    backgroundcolor = db.Column(db.String(32), nullable=True)
    color = db.Column(db.String(32), nullable=True)
    recurring = db.Column(db.String(10), default='none')  # none | daily | weekly | monthly
    recurringdays = db.Column(db.Text, nullable=True)  # JSON object, weekday -> bool
    recurringeventid = db.Column(db.String(64), nullable=True, index=True)
    overlaytext = db.Column(db.String(200), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Task(db.Model):
    __tablename__ = 'tasks'

    id = db.Column(db.String(64), primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    date = db.Column(db.String(10), nullable=False)
    time = db.Column(db.String(5), nullable=False, default='00:00')
    priority = db.Column(db.String(10), default='medium')  # low | medium | high
    nudge = db.Column(db.Integer, nullable=True)  # minutes between reminders
    xposition = db.Column(db.Float, default=0)
    estimated_time = db.Column(db.Integer, nullable=True)  # minutes
    completed = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class UserSettings(db.Model):
    """Per-user calendar display preferences."""
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, unique=True)
    day_start_time = db.Column(db.String(5), default='06:00')
    day_end_time = db.Column(db.String(5), default='22:00')
    default_event_width = db.Column(db.Integer, default=80)
    default_status_width = db.Column(db.Integer, default=20)
    primary_color = db.Column(db.String(16), default='#3B82F6')
    font = db.Column(db.String(64), default='system-ui')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
