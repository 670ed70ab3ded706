"""
Record Operations
List/get/create/update/delete over backend tables. Every mutation is
published to the change feed so open screens refresh.
"""
import logging

from eventhub.utils import backend
from eventhub.utils.realtime import ChangeEvent, DELETE, INSERT, UPDATE
from eventhub.utils.timezone_utils import utc_now_iso

logger = logging.getLogger(__name__)

# Tables carrying an updated_at column, stamped on every update
TIMESTAMPED_TABLES = ('users', 'veterans', 'race_teams', 'events', 'activities')


def _publish(table, change_type, new=None, old=None):
    from eventhub import change_feed
    change_feed.publish(ChangeEvent(table, change_type, new=new, old=old))


def _first(data):
    if isinstance(data, list):
        return data[0] if data else None
    return data


def list_records(table, order_by='created_at', desc=False, filters=None, limit=None, columns='*'):
    query = backend.table(table).select(columns)
    for column, value in (filters or {}).items():
        query = query.eq(column, value)
    if order_by:
        query = query.order(order_by, desc=desc)
    if limit:
        query = query.limit(limit)
    return backend.execute(query, f'list {table}') or []


def get_record(table, record_id):
    if not record_id:
        return None
    query = backend.table(table).select('*').eq('id', record_id).limit(1)
    return _first(backend.execute(query, f'get {table}'))


def get_records_by_ids(table, ids):
    """Resolve a set of foreign keys with a single follow-up query."""
    wanted = sorted({i for i in ids if i})
    if not wanted:
        return {}
    query = backend.table(table).select('*').in_('id', wanted)
    rows = backend.execute(query, f'resolve {table}') or []
    return {row['id']: row for row in rows}


def create_record(table, payload):
    query = backend.table(table).insert(payload)
    row = _first(backend.execute(query, f'create {table}'))
    if row is None:
        row = dict(payload)
    _publish(table, INSERT, new=row)
    logger.info('Created %s %s', table, row.get('id'))
    return row


def create_records(table, payloads):
    """Bulk insert; one INSERT change is published per created row."""
    if not payloads:
        return []
    rows = backend.execute(backend.table(table).insert(list(payloads)), f'create {table}') or []
    for row in rows:
        _publish(table, INSERT, new=row)
    logger.info('Created %d %s rows', len(rows), table)
    return rows


def _stamped(table, payload):
    if table in TIMESTAMPED_TABLES and 'updated_at' not in payload:
        return dict(payload, updated_at=utc_now_iso())
    return payload


def update_where(table, payload, **filters):
    """Update every row matching the equality filters and publish each change."""
    query = backend.table(table).update(_stamped(table, payload))
    for column, value in filters.items():
        query = query.eq(column, value)
    rows = backend.execute(query, f'update {table}') or []
    for row in rows:
        _publish(table, UPDATE, new=row)
    return rows


def update_record(table, record_id, payload):
    payload = _stamped(table, payload)
    query = backend.table(table).update(payload).eq('id', record_id)
    row = _first(backend.execute(query, f'update {table}'))
    if row is None:
        row = dict(payload, id=record_id)
    _publish(table, UPDATE, new=row)
    logger.info('Updated %s %s', table, record_id)
    return row


def delete_record(table, record_id):
    query = backend.table(table).delete().eq('id', record_id)
    backend.execute(query, f'delete {table}')
    _publish(table, DELETE, old={'id': record_id})
    logger.info('Deleted %s %s', table, record_id)


def clean_payload(form, fields):
    """Pull `fields` out of a submitted form: strings trimmed, blanks become None."""
    payload = {}
    for name in fields:
        value = form.get(name)
        if isinstance(value, str):
            value = value.strip()
        payload[name] = value if value not in ('', None) else None
    return payload


def missing_required(payload, required, labels=None):
    """Labels of required fields that are empty in `payload`."""
    labels = labels or {}
    return [labels.get(name, name) for name in required if not payload.get(name)]


def form_fields(model, values=None, input_types=None, options=None):
    """Describe a model's editable fields for the shared form template."""
    values = values or {}
    input_types = input_types or {}
    options = options or {}
    return [
        {
            'name': name,
            'label': label,
            'type': input_types.get(name, 'text'),
            'required': name in model.required,
            'value': values.get(name) if values.get(name) is not None else '',
            'options': options.get(name),
        }
        for name, label in model.fields
    ]


def search(rows, term, *keys):
    """Case-insensitive substring filter. A tuple key joins those columns with a space."""
    term = (term or '').strip().lower()
    if not term:
        return list(rows)
    hits = []
    for row in rows:
        for key in keys:
            if isinstance(key, tuple):
                haystack = ' '.join(str(row.get(k) or '') for k in key)
            else:
                haystack = str(row.get(key) or '')
            if term in haystack.lower():
                hits.append(row)
                break
    return hits
