from flask import Blueprint, render_template, request, redirect, url_for, flash, abort
from flask_login import login_required
from eventhub.models import RaceTeam
from eventhub.utils import records
from eventhub.utils.backend import BackendError
from eventhub.utils.decorators import admin_required
from eventhub.routes.files import attachments_for

bp = Blueprint('teams', __name__, url_prefix='/teams')

INPUT_TYPES = {
    'contact_email': 'email',
    'contact_phone': 'tel',
    'vehicle_info': 'textarea',
    'notes': 'textarea',
}


@bp.route('/')
@login_required
def index():
    """Display all race teams"""
    q = request.args.get('q', '').strip()
    rows = []
    try:
        rows = records.list_records(RaceTeam.__tablename__, order_by=RaceTeam.order_by)
    except BackendError as e:
        flash(f'Error loading race teams: {e.message}', 'error')
    rows = records.search(rows, q, 'name', 'contact_name')
    empty_message = 'No race teams found matching your search.' if q else 'No race teams registered yet.'
    return render_template('teams/index.html', teams=[RaceTeam(r) for r in rows],
                           q=q, empty_message=empty_message)


@bp.route('/<record_id>')
@login_required
def view(record_id):
    row = records.get_record(RaceTeam.__tablename__, record_id)
    if row is None:
        abort(404)
    return render_template('teams/view.html', team=RaceTeam(row),
                           attachments=attachments_for('race_team', record_id))


def _form(values, team=None):
    return render_template('records/form.html',
                           title='Edit Race Team' if team else 'Add Race Team',
                           fields=records.form_fields(RaceTeam, values, INPUT_TYPES),
                           cancel_url=url_for('teams.index'))


def _validated(values):
    payload = records.clean_payload(values, RaceTeam.field_names())
    missing = records.missing_required(payload, RaceTeam.required, dict(RaceTeam.fields))
    if missing:
        flash(f"Please fill in: {', '.join(missing)}", 'error')
        return payload, False
    return payload, True


@bp.route('/add', methods=['GET', 'POST'])
@admin_required
def add():
    if request.method == 'POST':
        payload, ok = _validated(request.form)
        if not ok:
            return _form(payload), 400
        try:
            records.create_record(RaceTeam.__tablename__, payload)
        except BackendError as e:
            flash(f'Error adding race team: {e.message}', 'error')
            return _form(payload), 502
        flash('Race team added successfully!', 'success')
        return redirect(url_for('teams.index'))
    return _form({})


@bp.route('/<record_id>/edit', methods=['GET', 'POST'])
@admin_required
def edit(record_id):
    row = records.get_record(RaceTeam.__tablename__, record_id)
    if row is None:
        abort(404)
    team = RaceTeam(row)
    if request.method == 'POST':
        payload, ok = _validated(request.form)
        if not ok:
            return _form(payload, team), 400
        try:
            records.update_record(RaceTeam.__tablename__, record_id, payload)
        except BackendError as e:
            flash(f'Error updating race team: {e.message}', 'error')
            return _form(payload, team), 502
        flash('Race team updated successfully!', 'success')
        return redirect(url_for('teams.view', record_id=record_id))
    return _form(row, team)


@bp.route('/<record_id>/delete', methods=['POST'])
@admin_required
def delete(record_id):
    try:
        records.delete_record(RaceTeam.__tablename__, record_id)
        flash('Race team deleted successfully!', 'success')
    except BackendError as e:
        flash(f'Error deleting race team: {e.message}', 'error')
    return redirect(url_for('teams.index'))
