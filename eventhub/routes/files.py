"""
Files Routes
General file library plus the attachment widget on veteran, race team and
event pages. Objects live in storage buckets; metadata in file_attachments.
"""
import io
import logging
from flask import Blueprint, render_template, request, redirect, url_for, flash, abort, send_file
from flask_login import login_required, current_user
from eventhub.models import FileAttachment
from eventhub.utils import backend, records
from eventhub.utils.backend import BackendError
from eventhub.utils.decorators import admin_required
from eventhub.utils.notifications import broadcast
from eventhub.utils.uploads import (
    UploadError, content_type_for, display_filename, read_upload, storage_location, unique_filename,
)

logger = logging.getLogger(__name__)

bp = Blueprint('files', __name__, url_prefix='/files')

NOTIFY_TITLE = 'New File Uploaded'


def attachments_for(related_type, related_id):
    rows = records.list_records(
        FileAttachment.__tablename__,
        order_by='created_at',
        desc=True,
        filters={'related_type': related_type, 'related_id': related_id},
    )
    return [FileAttachment(r) for r in rows]


def _next_url(default_endpoint='files.index'):
    target = request.form.get('next') or request.args.get('next')
    # only local paths
    if target and target.startswith('/') and not target.startswith('//'):
        return target
    return url_for(default_endpoint)


def store_upload(storage, related_type='general', related_id=None):
    """Validate, upload to storage and record metadata. Returns the file_attachments row"""
    data = read_upload(storage)
    content_type = content_type_for(storage)
    object_name = unique_filename(storage.filename)
    bucket, object_path = storage_location(related_type, related_id, content_type, object_name)

    backend.upload_object(bucket, object_path, data, content_type)
    row = {
        'filename': display_filename(storage.filename),
        'file_path': f'{bucket}/{object_path}',
        'file_size': len(data),
        'file_type': content_type,
        'related_type': related_type,
        'related_id': related_id if related_type != 'general' else None,
        'uploaded_by': current_user.id,
    }
    try:
        return records.create_record(FileAttachment.__tablename__, row)
    except BackendError:
        # No object without a metadata row
        try:
            backend.remove_objects(bucket, [object_path])
        except BackendError as e:
            logger.error('Could not remove orphaned object %s/%s: %s', bucket, object_path, e.message)
        raise


@bp.route('/')
@login_required
def index():
    rows = []
    try:
        rows = records.list_records(FileAttachment.__tablename__, order_by='created_at', desc=True)
    except BackendError as e:
        flash(f'Error loading files: {e.message}', 'error')
    files = [FileAttachment(r) for r in rows]
    notify_file = None
    notify_id = request.args.get('notify')
    if notify_id:
        notify_file = next((f for f in files if str(f.id) == notify_id), None)
    return render_template('files/index.html', files=files, notify_file=notify_file)


@bp.route('/upload', methods=['POST'])
@admin_required
def upload():
    related_type = request.form.get('related_type') or 'general'
    related_id = request.form.get('related_id') or None
    try:
        row = store_upload(request.files.get('file'), related_type, related_id)
    except UploadError as e:
        flash(str(e), 'error')
        return redirect(_next_url())
    except BackendError as e:
        flash(f'Error uploading file: {e.message}', 'error')
        return redirect(_next_url())

    flash('File uploaded successfully!', 'success')
    if related_type == 'general':
        return redirect(url_for('files.index', notify=row.get('id')))
    return redirect(_next_url())


@bp.route('/<file_id>/notify', methods=['POST'])
@admin_required
def notify(file_id):
    if request.form.get('answer') != 'yes':
        return redirect(url_for('files.index'))
    row = records.get_record(FileAttachment.__tablename__, file_id)
    if row is None:
        abort(404)
    try:
        broadcast(NOTIFY_TITLE, f'A new file "{row.get("filename")}" has been uploaded.',
                  file_id=file_id, created_by=current_user.id)
        flash('All users have been notified.', 'success')
    except BackendError as e:
        logger.error('Notify for file %s failed: %s', file_id, e.message)
        flash('File uploaded but failed to notify users', 'error')
    return redirect(url_for('files.index'))


@bp.route('/<file_id>/download')
@login_required
def download(file_id):
    row = records.get_record(FileAttachment.__tablename__, file_id)
    if row is None:
        abort(404)
    attachment = FileAttachment(row)
    try:
        bucket, object_path = backend.split_storage_path(attachment.file_path)
        data = backend.download_object(bucket, object_path)
    except ValueError:
        abort(404)
    except BackendError as e:
        flash(f'Error downloading file: {e.message}', 'error')
        return redirect(url_for('files.index'))
    return send_file(io.BytesIO(data), mimetype=attachment.file_type or 'application/octet-stream',
                     as_attachment=True, download_name=attachment.filename or 'download')


@bp.route('/<file_id>/delete', methods=['POST'])
@admin_required
def delete(file_id):
    row = records.get_record(FileAttachment.__tablename__, file_id)
    if row is None:
        abort(404)
    try:
        bucket, object_path = backend.split_storage_path(row.get('file_path'))
        backend.remove_objects(bucket, [object_path])
    except (ValueError, BackendError) as e:
        # The row is deleted even when the object removal fails
        logger.error('Storage delete for file %s failed: %s', file_id, getattr(e, 'message', e))
    try:
        records.delete_record(FileAttachment.__tablename__, file_id)
        flash('File deleted successfully!', 'success')
    except BackendError as e:
        flash(f'Error deleting file: {e.message}', 'error')
    return redirect(_next_url())
