"""
Schedule Routes
Daily activity schedule: activities for one local calendar day, each
resolved to its veteran and event.
"""
from datetime import timedelta
from flask import Blueprint, render_template, request, redirect, url_for, flash, abort
from flask_login import login_required
from eventhub.models import Activity, ACTIVITY_TYPES, Event, Veteran, parse_timestamp
from eventhub.utils import backend, records
from eventhub.utils.backend import BackendError
from eventhub.utils.decorators import admin_required
from eventhub.utils.timezone_utils import (
    convert_utc_to_local, day_bounds_utc, parse_datetime_local, parse_day, to_datetime_local,
)

bp = Blueprint('schedule', __name__, url_prefix='/schedule')

INPUT_TYPES = {
    'activity_type': 'select',
    'scheduled_time': 'datetime-local',
    'veteran_id': 'select',
    'event_id': 'select',
    'notes': 'textarea',
}


def activities_for_day(day):
    """Activities scheduled on a local day, ordered by time and enriched with veteran/event"""
    start, end = day_bounds_utc(day)
    query = (backend.table(Activity.__tablename__)
             .select('*')
             .gte('scheduled_time', start)
             .lte('scheduled_time', end)
             .order('scheduled_time'))
    rows = backend.execute(query, 'load schedule') or []

    veterans = records.get_records_by_ids(Veteran.__tablename__, [r.get('veteran_id') for r in rows])
    events = records.get_records_by_ids(Event.__tablename__, [r.get('event_id') for r in rows])
    activities = []
    for row in rows:
        veteran = veterans.get(row.get('veteran_id'))
        event = events.get(row.get('event_id'))
        activities.append(Activity(
            row,
            veteran=Veteran(veteran) if veteran else None,
            event=Event(event) if event else None,
        ))
    return activities


def _choices():
    veterans = [Veteran(r) for r in records.list_records(Veteran.__tablename__, order_by=Veteran.order_by)]
    events = [Event(r) for r in records.list_records(Event.__tablename__, order_by=Event.order_by)]
    return {
        'activity_type': [(t, Activity.TYPE_LABELS[t]) for t in ACTIVITY_TYPES],
        'veteran_id': [('', 'None')] + [(v.id, v.full_name) for v in veterans],
        'event_id': [('', 'None')] + [(e.id, e.name) for e in events],
    }


def _form(values, activity=None, cancel_day=None):
    try:
        options = _choices()
    except BackendError as e:
        flash(f'Error loading veterans and events: {e.message}', 'error')
        options = {'activity_type': [(t, Activity.TYPE_LABELS[t]) for t in ACTIVITY_TYPES]}
    return render_template('records/form.html',
                           title='Edit Activity' if activity else 'Add Activity',
                           fields=records.form_fields(Activity, values, INPUT_TYPES, options),
                           cancel_url=url_for('schedule.index', date=cancel_day))


def _submitted():
    """Validated payload from the activity form, or (payload, False) after flashing the problems"""
    values = records.clean_payload(request.form, Activity.field_names())
    ok = True
    missing = records.missing_required(values, Activity.required, dict(Activity.fields))
    if missing:
        flash(f"Please fill in: {', '.join(missing)}", 'error')
        ok = False
    if values.get('activity_type') and values['activity_type'] not in ACTIVITY_TYPES:
        flash('Unknown activity type', 'error')
        ok = False
    payload = dict(values)
    if ok:
        try:
            payload['scheduled_time'] = parse_datetime_local(values['scheduled_time'])
        except ValueError:
            flash('Scheduled time is not a valid date and time', 'error')
            ok = False
    return values, payload, ok


def _local_day(iso_value):
    dt = parse_timestamp(iso_value)
    return convert_utc_to_local(dt).date().isoformat() if dt else None


@bp.route('/')
@login_required
def index():
    day = parse_day(request.args.get('date'))
    activities = []
    try:
        activities = activities_for_day(day)
    except BackendError as e:
        flash(f'Error loading schedule: {e.message}', 'error')
    return render_template('schedule/index.html',
                           activities=activities,
                           day=day,
                           previous_day=(day - timedelta(days=1)).isoformat(),
                           next_day=(day + timedelta(days=1)).isoformat())


@bp.route('/add', methods=['GET', 'POST'])
@admin_required
def add():
    day = request.args.get('date')
    if request.method == 'POST':
        values, payload, ok = _submitted()
        if not ok:
            return _form(values, cancel_day=day), 400
        try:
            records.create_record(Activity.__tablename__, payload)
        except BackendError as e:
            flash(f'Error adding activity: {e.message}', 'error')
            return _form(values, cancel_day=day), 502
        flash('Activity added successfully!', 'success')
        return redirect(url_for('schedule.index', date=_local_day(payload['scheduled_time'])))
    initial = {'activity_type': 'practice'}
    if day:
        initial['scheduled_time'] = f'{parse_day(day).isoformat()}T09:00'
    return _form(initial, cancel_day=day)


@bp.route('/<record_id>/edit', methods=['GET', 'POST'])
@admin_required
def edit(record_id):
    row = records.get_record(Activity.__tablename__, record_id)
    if row is None:
        abort(404)
    activity = Activity(row)
    cancel_day = _local_day(row.get('scheduled_time'))
    if request.method == 'POST':
        values, payload, ok = _submitted()
        if not ok:
            return _form(values, activity, cancel_day), 400
        try:
            records.update_record(Activity.__tablename__, record_id, payload)
        except BackendError as e:
            flash(f'Error updating activity: {e.message}', 'error')
            return _form(values, activity, cancel_day), 502
        flash('Activity updated successfully!', 'success')
        return redirect(url_for('schedule.index', date=_local_day(payload['scheduled_time'])))
    values = dict(row, scheduled_time=to_datetime_local(activity.scheduled))
    return _form(values, activity, cancel_day)


@bp.route('/<record_id>/delete', methods=['POST'])
@admin_required
def delete(record_id):
    row = records.get_record(Activity.__tablename__, record_id)
    if row is None:
        abort(404)
    try:
        records.delete_record(Activity.__tablename__, record_id)
        flash('Activity deleted successfully!', 'success')
    except BackendError as e:
        flash(f'Error deleting activity: {e.message}', 'error')
    return redirect(url_for('schedule.index', date=_local_day(row.get('scheduled_time'))))
