from app import app

GRID = {'left': 0, 'top': 0, 'width': 100, 'height': 960}

GYM = {
    'name': 'Gym',
    'date': '2024-01-01',
    'startTime': '07:00',
    'endTime': '08:00',
    'recurring': 'daily',
    'recurringDays': {'monday': True, 'wednesday': True},
}


def _create(client, **overrides):
    payload = {'name': 'Meeting', 'date': '2024-01-05', 'startTime': '10:00', 'endTime': '11:00'}
    payload.update(overrides)
    resp = client.post('/api/events', json=payload)
    assert resp.status_code == 201
    return resp.get_json()


def test_ping(client):
    assert client.get('/ping').get_json() == {'message': 'pong'}


def test_requires_sign_in(client):
    assert client.get('/api/events').status_code == 401
    assert client.get('/api/tasks').status_code == 401
    assert client.get('/api/settings').status_code == 401


def test_register_login_logout(client, signup):
    user = signup(client, 'ana')
    assert client.get('/api/current-user').get_json()['username'] == 'ana'

    client.post('/api/logout')
    assert client.get('/api/events').status_code == 401
    assert client.post('/api/login', json={'username': 'ana', 'password': 'wrong'}).status_code == 401

    resp = client.post('/api/login', json={'username': 'ana', 'password': 'secret'})
    assert resp.status_code == 200
    assert resp.get_json()['user_id'] == user['user_id']


def test_register_rejects_duplicates(client, signup):
    signup(client, 'ana')
    resp = client.post('/api/register', json={'username': 'ana', 'password': 'x'})
    assert resp.status_code == 400


def test_create_rejects_bad_times(client, signup):
    signup(client, 'ana')
    resp = client.post('/api/events', json={'name': 'x', 'date': '2024-01-01', 'startTime': '10:00', 'endTime': '09:00'})
    assert resp.status_code == 400
    resp = client.post('/api/events', json={'name': 'x', 'date': '2024-13-01', 'startTime': '10:00', 'endTime': '11:00'})
    assert resp.status_code == 400


def test_daily_series_lifecycle(client, signup):
    signup(client, 'ana')
    created = client.post('/api/events', json=GYM).get_json()
    assert len(created) == 26
    assert created[-1]['date'] == '2024-03-27'
    assert len({ev['recurringEventId'] for ev in created}) == 1

    day = client.get('/api/events/occurrences?date=2024-01-03').get_json()
    assert [occ['name'] for occ in day['occurrences']] == ['Gym']

    resp = client.put(f"/api/events/{created[1]['id']}", json={'startTime': '08:00', 'endTime': '09:00'})
    body = resp.get_json()
    assert body['persisted'] is True
    assert len(body['updated']) == 26
    stored = client.get('/api/events').get_json()
    assert {ev['startTime'] for ev in stored} == {'08:00'}

    resp = client.delete(f"/api/events/{created[5]['id']}")
    assert len(resp.get_json()['deleted']) == 26
    assert client.get('/api/events').get_json() == []


def test_visual_only_update_is_not_persisted(client, signup):
    signup(client, 'ana')
    event = _create(client)[0]
    resp = client.put(f"/api/events/{event['id']}", json={'startTime': '12:00', 'endTime': '13:00', 'isDragging': True})
    body = resp.get_json()
    assert body['persisted'] is False
    assert body['updated'][0]['startTime'] == '12:00'
    assert client.get('/api/events').get_json()[0]['startTime'] == '10:00'


def test_drop_with_pointer_geometry(client, signup):
    signup(client, 'ana')
    event = _create(client)[0]
    drop = {'pointer': {'x': 0, 'y': 300}, 'gridRect': GRID}

    body = client.post(f"/api/events/{event['id']}/drop", json=drop).get_json()
    assert body['changed'] is True
    assert (body['saved'][0]['startTime'], body['saved'][0]['endTime']) == ('11:00', '12:00')

    body = client.post(f"/api/events/{event['id']}/drop", json=drop).get_json()
    assert body == {'changed': False, 'saved': []}


def test_drop_with_explicit_values_and_errors(client, signup):
    signup(client, 'ana')
    event = _create(client)[0]

    resp = client.post(f"/api/events/{event['id']}/drop", json={'startTime': '13:00', 'endTime': '14:00', 'date': '2024-01-06'})
    saved = resp.get_json()['saved'][0]
    assert (saved['date'], saved['startTime']) == ('2024-01-06', '13:00')

    assert client.post('/api/events/nope/drop', json={'startTime': '13:00', 'endTime': '14:00'}).status_code == 404
    bad = {'pointer': {'x': 'left'}, 'gridRect': GRID}
    assert client.post(f"/api/events/{event['id']}/drop", json=bad).status_code == 400


def test_week_view_hides_status_overlays(client, signup):
    signup(client, 'ana')
    _create(client, name='Busy', date='2024-01-03')
    _create(client, name='Away', date='2024-01-03', type='status')

    week = client.get('/api/events/occurrences?date=2024-01-03&view=week').get_json()
    assert (week['start'], week['end']) == ('2023-12-31', '2024-01-06')
    assert [occ['name'] for occ in week['days']['2024-01-03']] == ['Busy']

    day = client.get('/api/events/occurrences?date=2024-01-03&view=day').get_json()
    assert sorted(occ['name'] for occ in day['occurrences']) == ['Away', 'Busy']

    status = [occ for occ in day['occurrences'] if occ['name'] == 'Away'][0]
    assert status['xPosition'] + status['width'] == 100


def test_occurrence_range_queries(client, signup):
    signup(client, 'ana')
    _create(client, name='Weekly', date='2024-01-01', recurring='weekly')

    resp = client.get('/api/events/occurrences?start=2024-01-01&end=2024-01-15&view=week')
    days = resp.get_json()['days']
    assert [day for day, items in days.items() if items] == ['2024-01-01', '2024-01-08', '2024-01-15']

    assert client.get('/api/events/occurrences?start=2024-01-05&end=2024-01-01').status_code == 400
    assert client.get('/api/events/occurrences?date=2024-01-01&view=year').status_code == 400
    assert client.get('/api/events/occurrences?date=junk').status_code == 400


def test_batch_upsert_clamps_lanes(client, signup):
    signup(client, 'ana')
    batch = [{
        'id': 'b1', 'name': 'Imported', 'date': '2024-01-01',
        'startTime': '09:00', 'endTime': '10:00', 'xPosition': 90, 'width': 20,
    }]
    resp = client.put('/api/events/batch', json=batch)
    assert resp.get_json()['count'] == 1
    stored = client.get('/api/events').get_json()
    assert [(ev['id'], ev['xPosition']) for ev in stored] == [('b1', 80)]

    assert client.put('/api/events/batch', json={'id': 'b1'}).status_code == 400
    assert client.put('/api/events/batch', json=[{'name': 'no id'}]).status_code == 400


def test_task_crud_and_drop(client, signup):
    signup(client, 'ana')
    assert client.post('/api/tasks', json={'date': '2024-01-02'}).status_code == 400

    resp = client.post('/api/tasks', json={'title': 'Call', 'date': '2024-01-02', 'time': '9:30', 'priority': 'high'})
    assert resp.status_code == 201
    task = resp.get_json()
    assert (task['time'], task['priority']) == ('09:30', 'high')
    assert len(client.get('/api/tasks').get_json()) == 1

    task = client.put(f"/api/tasks/{task['id']}", json={'complete': True}).get_json()
    assert task['completed'] is True

    drop = {'pointer': {'x': 37, 'y': 247}, 'gridRect': GRID}
    body = client.post(f"/api/tasks/{task['id']}/drop", json=drop).get_json()
    assert body['changed'] is True
    assert (body['task']['time'], body['task']['xposition']) == ('10:00', 35)
    body = client.post(f"/api/tasks/{task['id']}/drop", json=drop).get_json()
    assert body['changed'] is False

    assert client.delete(f"/api/tasks/{task['id']}").status_code == 204
    assert client.get('/api/tasks').get_json() == []
    assert client.put('/api/tasks/missing', json={'title': 'x'}).status_code == 404


def test_settings_validation(client, signup):
    signup(client, 'ana')
    assert client.get('/api/settings').get_json()['dayStartTime'] == '06:00'

    resp = client.put('/api/settings', json={'dayStartTime': '08:00', 'dayEndTime': '07:00'})
    assert resp.status_code == 400

    body = client.put('/api/settings', json={'dayStartTime': '07:00', 'defaultEventWidth': 150}).get_json()
    assert (body['dayStartTime'], body['defaultEventWidth']) == ('07:00', 100)
    assert client.get('/api/settings').get_json()['defaultEventWidth'] == 100


def test_notifications_for_overdue_task(client, signup):
    signup(client, 'ana')
    client.post('/api/tasks', json={'title': 'Pay rent', 'date': '2024-01-01', 'time': '09:00'})

    items = client.get('/api/notifications').get_json()['notifications']
    assert [(n['kind'], n['title']) for n in items] == [('due', 'Pay rent')]
    assert client.get('/api/notifications').get_json()['notifications'] == []


def test_users_cannot_touch_each_others_events(client, signup):
    signup(client, 'ana')
    event = _create(client)[0]

    other = app.test_client()
    signup(other, 'ben')
    assert other.get('/api/events').get_json() == []
    assert other.put(f"/api/events/{event['id']}", json={'name': 'Mine'}).status_code == 404
    assert other.delete(f"/api/events/{event['id']}").status_code == 404
    hijack = [{'id': event['id'], 'name': 'Mine', 'date': '2024-01-05', 'startTime': '10:00', 'endTime': '11:00'}]
    assert other.put('/api/events/batch', json=hijack).status_code == 500

    assert client.get('/api/events').get_json()[0]['name'] == 'Meeting'


def test_drop_of_later_weekly_occurrence_moves_anchor_by_same_delta(client, signup):
    signup(client, 'ana')
    event = _create(client, name='Review', date='2024-01-01', recurring='weekly')[0]

    resp = client.post(f"/api/events/{event['id']}/drop", json={'date': '2024-01-16', 'occurrenceDate': '2024-01-15'})
    assert resp.get_json()['saved'][0]['date'] == '2024-01-02'

    days = client.get('/api/events/occurrences?start=2024-01-01&end=2024-01-16&view=week').get_json()['days']
    assert [day for day, items in days.items() if items] == ['2024-01-02', '2024-01-09', '2024-01-16']


def test_edit_of_later_monthly_occurrence(client, signup):
    signup(client, 'ana')
    event = _create(client, name='Rent', date='2024-01-10', recurring='monthly')[0]

    resp = client.put(f"/api/events/{event['id']}", json={'date': '2024-03-11', 'occurrenceDate': '2024-03-10'})
    assert resp.get_json()['updated'][0]['date'] == '2024-01-11'

    bad = client.put(f"/api/events/{event['id']}", json={'name': 'x', 'occurrenceDate': 'someday'})
    assert bad.status_code == 400
