from flask import Blueprint, render_template, request, redirect, url_for, flash, current_app
from flask_login import current_user
from eventhub.models import ROLES, User
from eventhub.utils import backend, records
from eventhub.utils.backend import BackendError
from eventhub.utils.decorators import admin_required
from eventhub.utils.session_manager import AuthError, sign_up

bp = Blueprint('admin', __name__, url_prefix='/admin')


def collect_stats():
    return {
        'total_users': backend.count('users'),
        'admin_users': backend.count('users', role='admin'),
        'staff_users': backend.count('users', role='staff'),
        'veterans': backend.count('veterans'),
        'race_teams': backend.count('race_teams'),
        'events': backend.count('events'),
    }


@bp.route('/')
@admin_required
def index():
    """Admin dashboard: statistics, user management and quick links"""
    stats = {}
    users = []
    try:
        stats = collect_stats()
        users = [User(r) for r in records.list_records('users', order_by='created_at', desc=True)]
    except BackendError as e:
        flash(f'Error loading admin data: {e.message}', 'error')
    return render_template('admin/index.html', stats=stats, users=users, roles=ROLES)


@bp.route('/users/<user_id>/role', methods=['POST'])
@admin_required
def change_role(user_id):
    role = request.form.get('role')
    if role not in ROLES:
        flash('Invalid role', 'error')
        return redirect(url_for('admin.index'))
    if str(user_id) == str(current_user.id):
        flash('You cannot change your own role', 'error')
        return redirect(url_for('admin.index'))
    try:
        records.update_record('users', user_id, {'role': role})
        current_app.logger.info('User %s set role of %s to %s', current_user.id, user_id, role)
        flash('User role updated successfully!', 'success')
    except BackendError as e:
        flash(f'Error updating role: {e.message}', 'error')
    return redirect(url_for('admin.index'))


@bp.route('/users', methods=['POST'])
@admin_required
def create_user():
    email = request.form.get('email', '')
    password = request.form.get('password', '')
    role = request.form.get('role', 'staff')
    try:
        user = sign_up(email, password, role)
    except AuthError as e:
        flash(e.message, 'error')
        return redirect(url_for('admin.index'))
    except BackendError as e:
        flash(e.message, 'error')
        return redirect(url_for('admin.index'))
    flash(f'User {user.email} created as {user.role}', 'success')
    return redirect(url_for('admin.index'))
