import logging
from datetime import datetime, timezone

from eventhub.utils import backend, records

logger = logging.getLogger(__name__)

INBOX_COLUMNS = '*, notification:notifications(*)'


def _now_iso():
    return datetime.now(timezone.utc).isoformat()


def broadcast(title, message, file_id=None, created_by=None):
    """Create a notification and deliver it to every user. Returns the notification row."""
    payload = {'title': title, 'message': message, 'file_id': file_id}
    if created_by:
        payload['created_by'] = created_by
    notification = records.create_record('notifications', payload)

    users = records.list_records('users', columns='id')
    deliveries = [
        {'user_id': u['id'], 'notification_id': notification['id'], 'is_read': False}
        for u in users if u.get('id')
    ]
    records.create_records('user_notifications', deliveries)
    logger.info('Notification %s delivered to %d users', notification.get('id'), len(deliveries))
    return notification


def inbox(user_id):
    """The user's deliveries joined with their notification, newest first."""
    query = (backend.table('user_notifications')
             .select(INBOX_COLUMNS)
             .eq('user_id', user_id)
             .order('created_at', desc=True))
    return backend.execute(query, 'load notifications') or []


def mark_read(user_id, delivery_id):
    """Mark one of the user's own deliveries read. Returns False when it is not theirs."""
    query = (backend.table('user_notifications')
             .select('id, user_id')
             .eq('id', delivery_id)
             .eq('user_id', user_id)
             .limit(1))
    if not backend.execute(query, 'load notification'):
        return False
    records.update_record('user_notifications', delivery_id, {'is_read': True, 'read_at': _now_iso()})
    return True


def mark_all_read(user_id):
    rows = records.update_where(
        'user_notifications',
        {'is_read': True, 'read_at': _now_iso()},
        user_id=user_id,
        is_read=False,
    )
    return len(rows)


def unread_count(user_id):
    return backend.count('user_notifications', user_id=user_id, is_read=False)
