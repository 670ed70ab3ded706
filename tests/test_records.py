from eventhub.routes.events import validate_event
from eventhub.utils import records


def test_event_without_date_is_rejected(client, backend, login_as):
    login_as('admin')
    resp = client.post('/events/add', data={'name': 'Gala', 'location': 'Main Hall'})
    assert resp.status_code == 400
    html = resp.data.decode('utf-8')
    assert 'Please fill in: Date' in html
    # the user's input is kept
    assert 'value="Gala"' in html
    assert backend.tables['events'] == []


def test_event_end_time_must_follow_start_time(client, backend, login_as):
    login_as('admin')
    resp = client.post('/events/add', data={
        'name': 'Gala', 'date': '2030-05-01', 'location': 'Main Hall',
        'start_time': '18:00', 'end_time': '17:30',
    })
    assert resp.status_code == 400
    assert 'End time must be after start time' in resp.data.decode('utf-8')
    assert backend.tables['events'] == []


def test_valid_event_is_created(client, backend, login_as):
    login_as('admin')
    resp = client.post('/events/add', data={
        'name': 'Gala', 'date': '2030-05-01', 'location': 'Main Hall',
        'start_time': '17:00', 'end_time': '21:00', 'description': '',
    })
    assert resp.status_code == 302
    (event,) = backend.tables['events']
    assert event['name'] == 'Gala'
    assert event['description'] is None


def test_validate_event_formats():
    assert validate_event({'name': 'A', 'date': '2030-01-01', 'location': 'B'}) == []
    assert 'Date must be in YYYY-MM-DD format' in validate_event(
        {'name': 'A', 'date': '01/02/2030', 'location': 'B'})
    assert validate_event({'name': 'A', 'date': '2030-01-01', 'location': 'B', 'start_time': '09:00'}) == []


def test_veteran_required_fields(client, backend, login_as):
    login_as('admin')
    resp = client.post('/veterans/add', data={'first_name': 'Jane', 'last_name': '  '})
    assert resp.status_code == 400
    assert 'Please fill in: Last name, Military branch' in resp.data.decode('utf-8')
    assert backend.tables['veterans'] == []


def test_race_team_required_fields(client, backend, login_as):
    login_as('admin')
    resp = client.post('/teams/add', data={'name': 'Thunder', 'contact_name': 'Al'})
    assert resp.status_code == 400
    assert 'Contact email' in resp.data.decode('utf-8')
    assert backend.tables['race_teams'] == []


def test_veteran_create_edit_flow(client, backend, login_as):
    login_as('admin')
    client.post('/veterans/add', data={
        'first_name': ' Jane ', 'last_name': 'Doe', 'military_branch': 'Navy',
    })
    (row,) = backend.tables['veterans']
    assert row['first_name'] == 'Jane'

    resp = client.post(f"/veterans/{row['id']}/edit", data={
        'first_name': 'Jane', 'last_name': 'Smith', 'military_branch': 'Navy',
    })
    assert resp.status_code == 302
    assert backend.tables['veterans'][0]['last_name'] == 'Smith'


def test_delete_removes_exactly_one_matching_id(client, backend, login_as):
    login_as('admin')
    keep_a = backend.seed('veterans', first_name='A', last_name='Alpha', military_branch='Army')
    target = backend.seed('veterans', first_name='B', last_name='Bravo', military_branch='Navy')
    keep_c = backend.seed('veterans', first_name='C', last_name='Charlie', military_branch='Army')

    resp = client.post(f"/veterans/{target['id']}/delete")
    assert resp.status_code == 302
    remaining = [r['id'] for r in backend.tables['veterans']]
    assert remaining == [keep_a['id'], keep_c['id']]

    html = client.get('/veterans/').data.decode('utf-8')
    assert 'Bravo' not in html
    assert 'Alpha' in html and 'Charlie' in html


def test_search_and_empty_states(client, backend, login_as):
    login_as('staff')
    assert 'No veterans registered yet.' in client.get('/veterans/').data.decode('utf-8')
    backend.seed('veterans', first_name='Jane', last_name='Doe', military_branch='Navy')
    backend.seed('veterans', first_name='John', last_name='Roe', military_branch='Marines')

    html = client.get('/veterans/?q=jane%20doe').data.decode('utf-8')
    assert 'Jane Doe' in html and 'John Roe' not in html
    html = client.get('/veterans/?q=marines').data.decode('utf-8')
    assert 'John Roe' in html and 'Jane Doe' not in html
    html = client.get('/veterans/?q=coast%20guard').data.decode('utf-8')
    assert 'No veterans found matching your search.' in html


def test_clean_payload_and_missing_required():
    payload = records.clean_payload({'a': '  x ', 'b': '', 'c': None}, ['a', 'b', 'c', 'd'])
    assert payload == {'a': 'x', 'b': None, 'c': None, 'd': None}
    assert records.missing_required(payload, ('a', 'b'), {'b': 'Bee'}) == ['Bee']


def test_search_joins_tuple_keys():
    rows = [{'first_name': 'Jane', 'last_name': 'Doe'}, {'first_name': 'Bob', 'last_name': 'Jones'}]
    assert records.search(rows, 'e d', ('first_name', 'last_name')) == [rows[0]]
    assert records.search(rows, '', 'first_name') == rows


def test_event_badges_and_long_date(client, backend, login_as):
    login_as('staff')
    backend.seed('events', name='Old Race', date='2000-11-11', location='Track')
    backend.seed('events', name='Future Race', date='2999-11-11', location='Track')
    html = client.get('/events/').data.decode('utf-8')
    assert 'Upcoming' in html and 'Past' in html
    assert 'Saturday, November 11, 2000' in html


TEAM = {'name': 'Thunder', 'contact_name': 'Al', 'contact_email': 'al@example.org', 'contact_phone': '555-0100'}


def test_race_team_edit_and_delete(client, backend, login_as):
    login_as('admin')
    team = backend.seed('race_teams', updated_at=None, **TEAM)
    other = backend.seed('race_teams', name='Lightning', contact_name='Bo',
                         contact_email='bo@example.org', contact_phone='555-0101')

    resp = client.post(f"/teams/{team['id']}/edit", data=dict(TEAM, name='Thunder Racing'))
    assert resp.status_code == 302
    assert resp.headers['Location'].endswith(f"/teams/{team['id']}")
    edited = backend.tables['race_teams'][0]
    assert edited['name'] == 'Thunder Racing'
    assert edited['updated_at']

    resp = client.post(f"/teams/{team['id']}/edit", data=dict(TEAM, contact_email=''))
    assert resp.status_code == 400
    assert backend.tables['race_teams'][0]['contact_email'] == 'al@example.org'

    client.post(f"/teams/{team['id']}/delete")
    assert [r['id'] for r in backend.tables['race_teams']] == [other['id']]


def test_event_edit_and_delete(client, backend, login_as):
    login_as('admin')
    event = backend.seed('events', name='Gala', date='2030-05-01', location='Main Hall',
                         start_time='17:00:00', end_time='21:00:00', updated_at=None)

    form = client.get(f"/events/{event['id']}/edit").data.decode('utf-8')
    assert 'value="17:00"' in form

    resp = client.post(f"/events/{event['id']}/edit", data={
        'name': 'Gala', 'date': '2030-05-02', 'location': 'Main Hall',
        'start_time': '18:00', 'end_time': '17:00',
    })
    assert resp.status_code == 400
    assert backend.tables['events'][0]['date'] == '2030-05-01'

    resp = client.post(f"/events/{event['id']}/edit", data={
        'name': 'Gala', 'date': '2030-05-02', 'location': 'Main Hall',
        'start_time': '18:00', 'end_time': '22:00',
    })
    assert resp.status_code == 302
    edited = backend.tables['events'][0]
    assert edited['date'] == '2030-05-02'
    assert edited['updated_at']

    client.post(f"/events/{event['id']}/delete")
    assert backend.tables['events'] == []


def test_updates_stamp_updated_at_only_where_the_column_exists(app, backend):
    vet = backend.seed('veterans', first_name='A', last_name='B', military_branch='Army', updated_at=None)
    backend.seed('user_notifications', user_id='u1', notification_id='n1', is_read=False)
    with app.test_request_context():
        records.update_record('veterans', vet['id'], {'last_name': 'C'})
        records.update_where('user_notifications', {'is_read': True}, user_id='u1')
    assert backend.tables['veterans'][0]['updated_at']
    assert 'updated_at' not in backend.tables['user_notifications'][0]
