"""
Upload helpers
Validation, collision-free object names and bucket selection for files
stored in the backend's storage buckets.
"""
import mimetypes
import os
import secrets
import time

from flask import current_app

from eventhub.models import RELATED_TYPES

SIZE_LIMIT_MESSAGE = 'File size must be less than 50MB'
BASE36 = '0123456789abcdefghijklmnopqrstuvwxyz'


class UploadError(ValueError):
    pass


def file_extension(filename):
    _, ext = os.path.splitext(filename or '')
    return ext[1:].lower()


def allowed_file(filename):
    allowed = current_app.config.get('ALLOWED_UPLOAD_EXTENSIONS') or ()
    return file_extension(filename) in allowed


def read_upload(storage):
    """Validate a werkzeug FileStorage and return its bytes."""
    if storage is None or not storage.filename:
        raise UploadError('Please choose a file to upload')
    if not allowed_file(storage.filename):
        allowed = ', '.join(sorted(current_app.config.get('ALLOWED_UPLOAD_EXTENSIONS') or ()))
        raise UploadError(f'File type not allowed. Allowed types: {allowed}')
    data = storage.read()
    limit = current_app.config.get('MAX_CONTENT_LENGTH')
    if limit and len(data) > limit:
        raise UploadError(SIZE_LIMIT_MESSAGE)
    if not data:
        raise UploadError('The selected file is empty')
    return data


def content_type_for(storage):
    content_type = getattr(storage, 'mimetype', None)
    if content_type and content_type != 'application/octet-stream':
        return content_type
    guessed, _ = mimetypes.guess_type(storage.filename or '')
    return guessed or 'application/octet-stream'


def _base36(n):
    if n == 0:
        return '0'
    digits = []
    while n:
        n, rem = divmod(n, 36)
        digits.append(BASE36[rem])
    return ''.join(reversed(digits))


def display_filename(filename):
    """The name users gave the file, minus any client-side directory part.

    Only used for display and downloads; storage paths come from unique_filename.
    """
    name = (filename or '').replace('\\', '/').rsplit('/', 1)[-1].strip()
    return name or 'upload'


def unique_filename(filename, now_ms=None):
    """`<epoch-millis>-<random base36>.<ext>` so two uploads never share an object path."""
    now_ms = int(time.time() * 1000) if now_ms is None else now_ms
    suffix = _base36(secrets.randbits(40)).rjust(8, '0')[:8]
    ext = file_extension(filename)
    name = f'{now_ms}-{suffix}'
    return f'{name}.{ext}' if ext else name


def storage_location(related_type, related_id, content_type, object_name):
    """Pick (bucket, object_path) for an upload."""
    config = current_app.config
    if related_type not in RELATED_TYPES:
        raise UploadError(f'Unknown attachment target: {related_type}')
    if related_type == 'general' or not related_id:
        return config.get('FILES_BUCKET', 'files'), f'uploads/{object_name}'
    if (content_type or '').startswith('image/'):
        bucket = f'{related_type}-photos'
    else:
        bucket = config.get('DOCUMENTS_BUCKET', 'documents')
    return bucket, f'{related_id}/{object_name}'


def format_file_size(size):
    if size is None:
        return ''
    size = int(size)
    if size < 1024:
        return f'{size} B'
    if size < 1024 * 1024:
        return f'{size / 1024:.1f} KB'
    return f'{size / (1024 * 1024):.1f} MB'
