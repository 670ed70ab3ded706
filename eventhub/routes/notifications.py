"""
Notifications Routes
Per-user inbox, read state and admin announcements
"""
from flask import Blueprint, render_template, request, jsonify, flash, redirect, url_for
from flask_login import login_required, current_user
from eventhub.models import UserNotification
from eventhub.utils import notifications as notification_service
from eventhub.utils.backend import BackendError
from eventhub.utils.decorators import admin_required, wants_json

bp = Blueprint('notifications', __name__, url_prefix='/notifications')


@bp.route('/')
@login_required
def index():
    """Notification inbox for the current user"""
    entries = []
    try:
        entries = [UserNotification(r) for r in notification_service.inbox(current_user.id)]
    except BackendError as e:
        flash(f'Error loading notifications: {e.message}', 'error')
    unread = sum(1 for entry in entries if not entry.is_read)
    return render_template('notifications/index.html', entries=entries, unread=unread)


@bp.route('/<delivery_id>/read', methods=['POST'])
@login_required
def mark_read(delivery_id):
    try:
        found = notification_service.mark_read(current_user.id, delivery_id)
    except BackendError as e:
        if wants_json():
            return jsonify({'success': False, 'error': e.message}), 502
        flash(f'Error updating notification: {e.message}', 'error')
        return redirect(url_for('notifications.index'))
    if wants_json():
        return jsonify({'success': found}), (200 if found else 404)
    if not found:
        flash('Notification not found', 'error')
    return redirect(url_for('notifications.index'))


@bp.route('/read-all', methods=['POST'])
@login_required
def mark_all_read():
    try:
        updated = notification_service.mark_all_read(current_user.id)
    except BackendError as e:
        flash(f'Error updating notifications: {e.message}', 'error')
        return redirect(url_for('notifications.index'))
    if updated:
        flash(f'Marked {updated} notification(s) as read', 'success')
    return redirect(url_for('notifications.index'))


@bp.route('/unread-count')
@login_required
def unread_count():
    try:
        count = notification_service.unread_count(current_user.id)
    except BackendError as e:
        return jsonify({'error': e.message}), 502
    return jsonify({'count': count})


@bp.route('/announce', methods=['POST'])
@admin_required
def announce():
    """Send a free-text announcement to every user"""
    title = (request.form.get('title') or '').strip()
    message = (request.form.get('message') or '').strip()
    if not title or not message:
        flash('Title and message are required', 'error')
        return redirect(url_for('notifications.index'))
    try:
        notification_service.broadcast(title, message, created_by=current_user.id)
        flash('Announcement sent to all users', 'success')
    except BackendError as e:
        flash(f'Error sending announcement: {e.message}', 'error')
    return redirect(url_for('notifications.index'))
