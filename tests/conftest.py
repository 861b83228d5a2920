import os

os.environ['DATABASE_URL'] = 'sqlite:///:memory:'
os.environ['BOOTSTRAP_JOBS_ON_IMPORT'] = '0'
os.environ['ENABLE_NOTIFICATION_JOBS'] = '0'

import pytest

from app import app, calendar_sessions
from models import db


@pytest.fixture
def client():
    app.config['TESTING'] = True
    with app.app_context():
        db.drop_all()
        db.create_all()
    with app.test_client() as test_client:
        yield test_client
    calendar_sessions.close_all()


@pytest.fixture
def signup():
    """Register (and thereby sign in) a user on the given test client."""

    def _signup(test_client, username, password='secret'):
        resp = test_client.post('/api/register', json={'username': username, 'password': password})
        assert resp.status_code == 201
        return resp.get_json()

    return _signup
