"""
Realtime Change Feed
Fans row changes out to in-process subscribers and to browsers over Socket.IO.
Changes come from two places: our own writes (records.py publishes after each
mutation) and, when enabled, the backend's postgres_changes stream via
SupabaseChangeBridge.
"""
import asyncio
import logging
import threading
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

INSERT = 'INSERT'
UPDATE = 'UPDATE'
DELETE = 'DELETE'
CHANGE_TYPES = (INSERT, UPDATE, DELETE)

WATCHED_TABLES = (
    'veterans', 'race_teams', 'events', 'activities',
    'file_attachments', 'notifications', 'user_notifications', 'users',
)


# Delivery rows belong to one user; their changes go to that user's room only
PRIVATE_TABLES = ('user_notifications',)
SHARED_TABLES = tuple(t for t in WATCHED_TABLES if t not in PRIVATE_TABLES)


def room_for(table):
    return f'table:{table}'


def user_room(user_id):
    return f'user:{user_id}'


class ChangeEvent:
    """One row change on one table."""

    def __init__(self, table, type, new=None, old=None, commit_timestamp=None):
        type = (type or '').upper()
        if type not in CHANGE_TYPES:
            raise ValueError(f'Unknown change type: {type!r}')
        self.table = table
        self.type = type
        self.new = dict(new or {})
        self.old = dict(old or {})
        self.commit_timestamp = commit_timestamp or datetime.now(timezone.utc).isoformat()

    @property
    def record_id(self):
        return self.new.get('id') if self.type != DELETE else self.old.get('id')

    @property
    def row(self):
        return self.old if self.type == DELETE else self.new

    def notice(self):
        """What browsers are told: which row changed, never its contents."""
        return {'table': self.table, 'eventType': self.type, 'id': self.record_id}

    @classmethod
    def from_payload(cls, table, payload):
        """Normalize a realtime payload.

        Accepts the JS-style shape ({eventType, new, old}) as well as the
        Python client's shape ({data: {type, record, old_record}}).
        """
        data = payload.get('data') if isinstance(payload.get('data'), dict) else payload
        change_type = data.get('eventType') or data.get('type')
        new = data.get('new') or data.get('record') or {}
        old = data.get('old') or data.get('old_record') or {}
        table = data.get('table') or table
        return cls(table, change_type, new=new, old=old, commit_timestamp=data.get('commit_timestamp'))

    def __repr__(self):
        return f'<ChangeEvent {self.type} {self.table}:{self.record_id}>'


class ChangeFeed:
    """Per-table registry of change callbacks."""

    def __init__(self):
        self._subscribers = {}
        self._lock = threading.Lock()
        self._next_token = 0

    def subscribe(self, table, on_insert=None, on_update=None, on_delete=None):
        """Register callbacks for a table. Returns a callable that unsubscribes."""
        handlers = {INSERT: on_insert, UPDATE: on_update, DELETE: on_delete}
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._subscribers.setdefault(table, {})[token] = handlers

        def unsubscribe():
            with self._lock:
                self._subscribers.get(table, {}).pop(token, None)
        return unsubscribe

    def publish(self, event):
        with self._lock:
            handlers = list(self._subscribers.get(event.table, {}).values())
            handlers += list(self._subscribers.get('*', {}).values())
        for registered in handlers:
            callback = registered.get(event.type)
            if callback is None:
                continue
            try:
                callback(event)
            except Exception:
                logger.exception('Change subscriber failed for %r', event)


def rooms_for(event):
    """Socket.IO rooms allowed to hear about a change."""
    if event.table in PRIVATE_TABLES:
        owner = event.row.get('user_id')
        return [user_room(owner)] if owner else []
    return [room_for(event.table)]


def attach_socketio(feed, socketio):
    """Forward a notice of every published change to the rooms allowed to see it."""
    def forward(event):
        for room in rooms_for(event):
            socketio.emit('row_change', event.notice(), to=room)
    return feed.subscribe('*', on_insert=forward, on_update=forward, on_delete=forward)


class SupabaseChangeBridge:
    """Subscribes to the backend's postgres_changes stream and republishes locally.

    Runs its own asyncio loop on a daemon thread, using the async client.
    Row-level security filters postgres_changes by the subscriber's key, so
    `key` has to be one that reads every watched table (the service-role key).
    """

    def __init__(self, feed, url, key, tables=WATCHED_TABLES, schema='public'):
        self.feed = feed
        self.url = url
        self.key = key
        self.tables = tuple(tables)
        self.schema = schema
        self.running = False
        self.worker_thread = None
        self._loop = None

    def start(self):
        if self.running:
            return
        self.running = True
        self.worker_thread = threading.Thread(target=self._worker, name='supabase-change-bridge', daemon=True)
        self.worker_thread.start()
        logger.info('Realtime bridge started for %d tables', len(self.tables))

    def stop(self):
        self.running = False
        if self.worker_thread:
            self.worker_thread.join(timeout=5)
            logger.info('Realtime bridge stopped')

    def is_worker_running(self):
        return self.running and self.worker_thread is not None and self.worker_thread.is_alive()

    def handle_payload(self, table, payload):
        try:
            event = ChangeEvent.from_payload(table, payload)
        except ValueError as e:
            logger.warning('Ignoring realtime payload for %s: %s', table, e)
            return
        self.feed.publish(event)

    def _worker(self):
        self._loop = asyncio.new_event_loop()
        try:
            self._loop.run_until_complete(self._listen())
        except Exception:
            logger.exception('Realtime bridge crashed')
        finally:
            self.running = False
            self._loop.close()

    async def _listen(self):
        from supabase import acreate_client

        client = await acreate_client(self.url, self.key)
        await client.realtime.connect()
        for table_name in self.tables:
            channel = client.channel(f'realtime:{table_name}')
            channel.on_postgres_changes(
                '*',
                schema=self.schema,
                table=table_name,
                callback=lambda payload, t=table_name: self.handle_payload(t, payload),
            )
            await channel.subscribe()
        while self.running:
            await asyncio.sleep(1)
        await client.realtime.remove_all_channels()
