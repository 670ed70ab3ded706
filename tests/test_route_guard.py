def test_anonymous_user_is_sent_to_login(client):
    resp = client.get('/veterans/')
    assert resp.status_code == 302
    assert '/auth/login' in resp.headers['Location']
    assert 'next=' in resp.headers['Location']


def test_anonymous_json_request_gets_401(client):
    resp = client.get('/notifications/unread-count', headers={'Accept': 'application/json'})
    assert resp.status_code == 401
    assert resp.get_json()['error'] == 'authentication required'


def test_healthz_needs_no_login(client, backend):
    resp = client.get('/healthz')
    assert resp.status_code == 200
    assert resp.get_json() == {'status': 'ok'}
    assert backend.calls == []


def test_staff_sees_access_denied_on_admin_screen(client, login_as):
    login_as('staff')
    resp = client.get('/admin/')
    assert resp.status_code == 403
    html = resp.data.decode('utf-8')
    assert 'Access Denied' in html
    assert 'This feature requires administrator permissions.' in html


def test_admin_can_open_admin_screen(client, login_as):
    login_as('admin')
    resp = client.get('/admin/')
    assert resp.status_code == 200
    assert 'Admin Dashboard' in resp.data.decode('utf-8')


def test_staff_cannot_create_records(client, backend, login_as):
    login_as('staff')
    resp = client.post('/veterans/add', data={
        'first_name': 'Jane', 'last_name': 'Doe', 'military_branch': 'Navy',
    })
    assert resp.status_code == 403
    assert backend.tables['veterans'] == []


def test_staff_cannot_delete_records(client, backend, login_as):
    login_as('staff')
    event = backend.seed('events', name='Gala', date='2030-01-01', location='Hall')
    resp = client.post(f"/events/{event['id']}/delete")
    assert resp.status_code == 403
    assert len(backend.tables['events']) == 1


def test_staff_does_not_see_edit_controls(client, backend, login_as):
    login_as('staff')
    backend.seed('race_teams', name='Thunder', contact_name='Al', contact_email='a@x.org', contact_phone='1')
    html = client.get('/teams/').data.decode('utf-8')
    assert 'Thunder' in html
    assert 'Add Race Team' not in html
    assert '/delete' not in html


def test_admin_nav_shows_admin_link_only_for_admins(client, login_as):
    login_as('staff')
    html = client.get('/veterans/').data.decode('utf-8')
    assert 'Beneficiaries' in html
    assert '>Admin<' not in html


def test_root_redirects_to_beneficiaries(client, login_as):
    login_as('staff')
    resp = client.get('/')
    assert resp.status_code == 302
    assert resp.headers['Location'].endswith('/veterans/')


def test_uncaught_backend_error_renders_502(client, backend, login_as):
    login_as('staff')
    backend.fail('veterans', 'select', 'connection reset')
    resp = client.get('/veterans/not-a-real-id')
    assert resp.status_code == 502
    assert 'connection reset' in resp.data.decode('utf-8')
