from datetime import datetime
from flask import Blueprint, render_template, request, redirect, url_for, flash, abort
from flask_login import login_required
from eventhub.models import Event
from eventhub.utils import records
from eventhub.utils.backend import BackendError
from eventhub.utils.decorators import admin_required
from eventhub.utils.timezone_utils import today_local
from eventhub.routes.files import attachments_for

bp = Blueprint('events', __name__, url_prefix='/events')

INPUT_TYPES = {
    'date': 'date',
    'start_time': 'time',
    'end_time': 'time',
    'description': 'textarea',
}


def validate_event(payload):
    """Return a list of problems with a submitted event; empty when it can be saved"""
    errors = []
    missing = records.missing_required(payload, Event.required, dict(Event.fields))
    if missing:
        errors.append(f"Please fill in: {', '.join(missing)}")
    if payload.get('date'):
        try:
            datetime.strptime(payload['date'], '%Y-%m-%d')
        except ValueError:
            errors.append('Date must be in YYYY-MM-DD format')
    times = {}
    for key in ('start_time', 'end_time'):
        if payload.get(key):
            try:
                times[key] = datetime.strptime(payload[key][:5], '%H:%M').time()
            except ValueError:
                errors.append(f'{Event.label_for(key)} must be in HH:MM format')
    if len(times) == 2 and times['end_time'] <= times['start_time']:
        errors.append('End time must be after start time')
    return errors


@bp.route('/')
@login_required
def index():
    """Display all events"""
    rows = []
    try:
        rows = records.list_records(Event.__tablename__, order_by=Event.order_by)
    except BackendError as e:
        flash(f'Error loading events: {e.message}', 'error')
    return render_template('events/index.html', events=[Event(r) for r in rows], today=today_local())


@bp.route('/<record_id>')
@login_required
def view(record_id):
    row = records.get_record(Event.__tablename__, record_id)
    if row is None:
        abort(404)
    return render_template('events/view.html', event=Event(row), today=today_local(),
                           attachments=attachments_for('event', record_id))


def _form(values, event=None):
    return render_template('records/form.html',
                           title='Edit Event' if event else 'Add Event',
                           fields=records.form_fields(Event, values, INPUT_TYPES),
                           cancel_url=url_for('events.index'))


def _submitted():
    payload = records.clean_payload(request.form, Event.field_names())
    errors = validate_event(payload)
    for error in errors:
        flash(error, 'error')
    return payload, not errors


@bp.route('/add', methods=['GET', 'POST'])
@admin_required
def add():
    if request.method == 'POST':
        payload, ok = _submitted()
        if not ok:
            return _form(payload), 400
        try:
            records.create_record(Event.__tablename__, payload)
        except BackendError as e:
            flash(f'Error adding event: {e.message}', 'error')
            return _form(payload), 502
        flash('Event added successfully!', 'success')
        return redirect(url_for('events.index'))
    return _form({})


@bp.route('/<record_id>/edit', methods=['GET', 'POST'])
@admin_required
def edit(record_id):
    row = records.get_record(Event.__tablename__, record_id)
    if row is None:
        abort(404)
    event = Event(row)
    if request.method == 'POST':
        payload, ok = _submitted()
        if not ok:
            return _form(payload, event), 400
        try:
            records.update_record(Event.__tablename__, record_id, payload)
        except BackendError as e:
            flash(f'Error updating event: {e.message}', 'error')
            return _form(payload, event), 502
        flash('Event updated successfully!', 'success')
        return redirect(url_for('events.view', record_id=record_id))
    values = dict(row)
    for key in ('start_time', 'end_time'):
        if values.get(key):
            values[key] = str(values[key])[:5]
    return _form(values, event)


@bp.route('/<record_id>/delete', methods=['POST'])
@admin_required
def delete(record_id):
    try:
        records.delete_record(Event.__tablename__, record_id)
        flash('Event deleted successfully!', 'success')
    except BackendError as e:
        flash(f'Error deleting event: {e.message}', 'error')
    return redirect(url_for('events.index'))
