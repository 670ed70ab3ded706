"""
Supabase Gateway
Single place where the application talks to the hosted backend: database
tables, auth and storage buckets. Routes never import the SDK directly.
"""
import logging

from flask import current_app, g, session
from supabase import ClientOptions, create_client

logger = logging.getLogger(__name__)

# Session keys holding the backend auth session for the signed-in user
ACCESS_TOKEN_KEY = 'sb_access_token'
REFRESH_TOKEN_KEY = 'sb_refresh_token'
EXPIRES_AT_KEY = 'sb_expires_at'


class BackendError(Exception):
    """Raised when a backend call fails. `message` is safe to show in a banner."""

    def __init__(self, operation, message):
        self.operation = operation
        self.message = message or 'Unexpected backend error'
        super().__init__(f'{operation}: {self.message}')


def _error_message(exc):
    # postgrest APIError carries .message; auth errors carry .message too
    message = getattr(exc, 'message', None)
    if isinstance(message, str) and message:
        return message
    return str(exc) or exc.__class__.__name__


def _default_client_factory(app):
    url = app.config.get('SUPABASE_URL')
    key = app.config.get('SUPABASE_ANON_KEY')
    if not url or not key:
        raise BackendError('connect', 'Supabase URL/key not configured')
    timeout = app.config.get('SUPABASE_TIMEOUT', 10)
    options = ClientOptions(
        auto_refresh_token=False,
        persist_session=False,
        postgrest_client_timeout=timeout,
        storage_client_timeout=timeout,
    )
    return create_client(url, key, options=options)


def create_anon_client():
    """Create a client that is not bound to any user session."""
    app = current_app._get_current_object()
    factory = app.config.get('SUPABASE_CLIENT_FACTORY') or _default_client_factory
    return factory(app)


def store_session_tokens(auth_session):
    """Persist the backend session tokens in the Flask session cookie."""
    session[ACCESS_TOKEN_KEY] = auth_session.access_token
    session[REFRESH_TOKEN_KEY] = auth_session.refresh_token
    session[EXPIRES_AT_KEY] = getattr(auth_session, 'expires_at', None)


def clear_session_tokens():
    for key in (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, EXPIRES_AT_KEY):
        session.pop(key, None)
    g.pop('supabase_client', None)


def get_client():
    """Return the request-scoped client, bound to the user's session when there is one.

    Binding goes through the SDK's own set_session so row-level security
    policies see the caller. If the SDK had to refresh an expired token the
    new tokens are written back to the cookie.
    """
    client = g.get('supabase_client')
    if client is not None:
        return client

    client = create_anon_client()
    access_token = session.get(ACCESS_TOKEN_KEY)
    refresh_token = session.get(REFRESH_TOKEN_KEY)
    if access_token and refresh_token:
        try:
            response = client.auth.set_session(access_token, refresh_token)
        except Exception as e:
            logger.warning('Could not bind backend session: %s', _error_message(e))
            raise BackendError('bind session', _error_message(e)) from e
        new_session = getattr(response, 'session', None)
        if new_session is not None and new_session.access_token != access_token:
            store_session_tokens(new_session)

    g.supabase_client = client
    return client


def table(name):
    return get_client().table(name)


def execute(query, operation):
    """Run a built query and return its data, wrapping SDK failures in BackendError."""
    try:
        response = query.execute()
    except BackendError:
        raise
    except Exception as e:
        logger.exception('%s failed', operation)
        raise BackendError(operation, _error_message(e)) from e
    if response is None:
        return None
    return response.data


def count(table_name, **filters):
    """Exact row count for a table, optionally filtered by equality. No rows are transferred."""
    query = table(table_name).select('id', count='exact', head=True)
    for column, value in filters.items():
        query = query.eq(column, value)
    try:
        response = query.execute()
    except Exception as e:
        logger.exception('count(%s) failed', table_name)
        raise BackendError(f'count {table_name}', _error_message(e)) from e
    return response.count or 0


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------

def split_storage_path(file_path):
    """Split a stored 'bucket/object/path' value into (bucket, object_path)."""
    if not file_path or '/' not in file_path:
        raise ValueError(f'Invalid storage path: {file_path!r}')
    bucket, object_path = file_path.split('/', 1)
    if not bucket or not object_path:
        raise ValueError(f'Invalid storage path: {file_path!r}')
    return bucket, object_path


def upload_object(bucket, path, data, content_type=None):
    file_options = {'content-type': content_type} if content_type else None
    try:
        storage = get_client().storage.from_(bucket)
        if file_options:
            storage.upload(path=path, file=data, file_options=file_options)
        else:
            storage.upload(path=path, file=data)
    except Exception as e:
        logger.exception('Upload to %s/%s failed', bucket, path)
        raise BackendError('upload', _error_message(e)) from e


def download_object(bucket, path):
    try:
        return get_client().storage.from_(bucket).download(path)
    except Exception as e:
        logger.exception('Download of %s/%s failed', bucket, path)
        raise BackendError('download', _error_message(e)) from e


def remove_objects(bucket, paths):
    try:
        get_client().storage.from_(bucket).remove(list(paths))
    except Exception as e:
        logger.exception('Removal from %s failed', bucket)
        raise BackendError('remove', _error_message(e)) from e
