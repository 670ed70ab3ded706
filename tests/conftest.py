"""
Shared fixtures: an app wired to an in-memory stand-in for the Supabase
client, so routes run end to end without a network.
"""
import copy
import itertools
import time
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from eventhub import create_app


class FakeBackendError(Exception):
    def __init__(self, message):
        self.message = message
        super().__init__(message)


_clock = itertools.count()


def _timestamp():
    # strictly increasing so "newest first" ordering is deterministic
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return (base + timedelta(seconds=next(_clock))).isoformat()


def _matches(row, value):
    return row == value or (row is not None and value is not None and str(row) == str(value))


class FakeQuery:
    def __init__(self, backend, table):
        self.backend = backend
        self.table = table
        self.action = 'select'
        self.columns = '*'
        self.count_mode = None
        self.head = False
        self.payload = None
        self.filters = []
        self.ordering = []
        self.row_limit = None

    def select(self, columns='*', count=None, head=False):
        self.action = 'select'
        self.columns = columns
        self.count_mode = count
        self.head = head
        return self

    def insert(self, payload):
        self.action = 'insert'
        self.payload = payload
        return self

    def update(self, payload):
        self.action = 'update'
        self.payload = payload
        return self

    def delete(self):
        self.action = 'delete'
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: _matches(row.get(column), value))
        return self

    def in_(self, column, values):
        values = [str(v) for v in values]
        self.filters.append(lambda row: str(row.get(column)) in values)
        return self

    def gte(self, column, value):
        self.filters.append(lambda row: row.get(column) is not None and row.get(column) >= value)
        return self

    def lte(self, column, value):
        self.filters.append(lambda row: row.get(column) is not None and row.get(column) <= value)
        return self

    def order(self, column, desc=False):
        self.ordering.append((column, desc))
        return self

    def limit(self, n):
        self.row_limit = n
        return self

    def _selected(self, rows):
        rows = [r for r in rows if all(f(r) for f in self.filters)]
        for column, desc in reversed(self.ordering):
            rows.sort(key=lambda r: (r.get(column) is None, str(r.get(column) or '')), reverse=desc)
        if self.row_limit is not None:
            rows = rows[:self.row_limit]
        return rows

    def _embed(self, row):
        row = copy.deepcopy(row)
        if 'notification:notifications(*)' in (self.columns or ''):
            parent = next((n for n in self.backend.tables['notifications']
                           if n['id'] == row.get('notification_id')), None)
            row['notification'] = copy.deepcopy(parent)
        return row

    def execute(self):
        self.backend.calls.append((self.table, self.action))
        failure = self.backend.failures.get((self.table, self.action))
        if failure:
            raise FakeBackendError(failure)
        rows = self.backend.tables.setdefault(self.table, [])

        if self.action == 'select':
            selected = self._selected(rows)
            if self.head:
                self.backend.head_counts.append(self.table)
                return SimpleNamespace(data=[], count=len(selected))
            return SimpleNamespace(data=[self._embed(r) for r in selected], count=len(selected))

        if self.action == 'insert':
            payloads = self.payload if isinstance(self.payload, list) else [self.payload]
            created = []
            for payload in payloads:
                row = dict(payload)
                row.setdefault('id', str(uuid.uuid4()))
                row.setdefault('created_at', _timestamp())
                rows.append(row)
                created.append(copy.deepcopy(row))
            return SimpleNamespace(data=created, count=None)

        matched = self._selected(rows)
        if self.action == 'update':
            for row in matched:
                row.update(self.payload)
            return SimpleNamespace(data=copy.deepcopy(matched), count=None)

        # delete
        ids = {id(r) for r in matched}
        self.backend.tables[self.table] = [r for r in rows if id(r) not in ids]
        return SimpleNamespace(data=copy.deepcopy(matched), count=None)


class FakeBucket:
    def __init__(self, backend, name):
        self.backend = backend
        self.name = name

    def upload(self, path, file, file_options=None):
        if ('storage', 'upload') in self.backend.failures:
            raise FakeBackendError(self.backend.failures[('storage', 'upload')])
        self.backend.objects[(self.name, path)] = {'data': file, 'options': file_options}
        return SimpleNamespace(path=path)

    def download(self, path):
        try:
            return self.backend.objects[(self.name, path)]['data']
        except KeyError:
            raise FakeBackendError('Object not found')

    def remove(self, paths):
        if ('storage', 'remove') in self.backend.failures:
            raise FakeBackendError(self.backend.failures[('storage', 'remove')])
        for path in paths:
            self.backend.objects.pop((self.name, path), None)
        return []


class FakeStorage:
    def __init__(self, backend):
        self.backend = backend

    def from_(self, bucket):
        return FakeBucket(self.backend, bucket)


class FakeAuth:
    def __init__(self, backend):
        self.backend = backend
        self.accounts = {}
        self.refresh_error = None
        self.sign_in_error = None
        self.signed_out = 0
        self.reset_requests = []

    def add_account(self, email, password, user_id=None):
        user_id = user_id or str(uuid.uuid4())
        self.accounts[email.lower()] = {'id': user_id, 'email': email, 'password': password}
        return user_id

    def _session(self, account):
        token = uuid.uuid4().hex
        return SimpleNamespace(
            access_token=f'access-{token}',
            refresh_token=f'refresh-{token}',
            expires_at=int(time.time()) + 3600,
            user=SimpleNamespace(id=account['id'], email=account['email']),
        )

    def sign_in_with_password(self, credentials):
        if self.sign_in_error:
            raise FakeBackendError(self.sign_in_error)
        account = self.accounts.get(credentials['email'].lower())
        if account is None or account['password'] != credentials['password']:
            raise FakeBackendError('Invalid login credentials')
        auth_session = self._session(account)
        return SimpleNamespace(session=auth_session, user=auth_session.user)

    def sign_up(self, credentials):
        if credentials['email'].lower() in self.accounts:
            raise FakeBackendError('User already registered')
        self.add_account(credentials['email'], credentials['password'])
        account = self.accounts[credentials['email'].lower()]
        account['metadata'] = credentials.get('options', {}).get('data', {})
        return SimpleNamespace(user=SimpleNamespace(id=account['id'], email=account['email']), session=None)

    def set_session(self, access_token, refresh_token):
        return SimpleNamespace(session=SimpleNamespace(
            access_token=access_token, refresh_token=refresh_token, expires_at=None))

    def refresh_session(self, refresh_token):
        if self.refresh_error:
            raise FakeBackendError(self.refresh_error)
        return SimpleNamespace(session=SimpleNamespace(
            access_token='access-refreshed',
            refresh_token='refresh-refreshed',
            expires_at=int(time.time()) + 3600,
        ))

    def sign_out(self):
        self.signed_out += 1

    def reset_password_for_email(self, email, options=None):
        self.reset_requests.append((email, options))


class FakeSupabase:
    """Enough of the Supabase client surface for the app: tables, auth and storage."""

    def __init__(self):
        self.tables = {name: [] for name in (
            'users', 'veterans', 'race_teams', 'events', 'activities',
            'file_attachments', 'notifications', 'user_notifications',
        )}
        self.objects = {}
        self.failures = {}
        self.calls = []
        self.head_counts = []
        self.auth = FakeAuth(self)
        self.storage = FakeStorage(self)

    def table(self, name):
        return FakeQuery(self, name)

    def fail(self, table, action, message='backend unavailable'):
        self.failures[(table, action)] = message

    def seed(self, table, **row):
        row.setdefault('id', str(uuid.uuid4()))
        row.setdefault('created_at', _timestamp())
        self.tables[table].append(row)
        return row


@pytest.fixture
def backend():
    return FakeSupabase()


@pytest.fixture
def app(backend):
    app = create_app(test_config={
        'TESTING': True,
        'SECRET_KEY': 'test',
        'SUPABASE_CLIENT_FACTORY': lambda app: backend,
        'APP_TIMEZONE': 'UTC',
        'BOOTSTRAP_ADMIN_EMAILS': ['founder@example.org'],
    })
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login_as(client, backend):
    """Put a signed-in user with the given role into the test client's session."""
    def _login(role='staff', email=None):
        user_id = str(uuid.uuid4())
        email = email or f'{role}-{user_id[:8]}@example.org'
        profile = backend.seed('users', id=user_id, email=email, role=role, updated_at=None)
        with client.session_transaction() as sess:
            sess['_user_id'] = user_id
            sess['_fresh'] = True
            sess['sb_access_token'] = 'access-token'
            sess['sb_refresh_token'] = 'refresh-token'
            sess['sb_expires_at'] = int(time.time()) + 3600
            sess['profile'] = {
                'id': user_id,
                'email': email,
                'role': role,
                'created_at': profile['created_at'],
                'updated_at': None,
            }
        return profile
    return _login
