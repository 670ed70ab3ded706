from flask import Blueprint, render_template, request, redirect, url_for, flash, abort
from flask_login import login_required
from eventhub.models import Veteran
from eventhub.utils import records
from eventhub.utils.backend import BackendError
from eventhub.utils.decorators import admin_required
from eventhub.routes.files import attachments_for

bp = Blueprint('veterans', __name__, url_prefix='/veterans')

INPUT_TYPES = {
    'email': 'email',
    'phone': 'tel',
    'emergency_contact_phone': 'tel',
    'medical_notes': 'textarea',
}


@bp.route('/')
@login_required
def index():
    """List veterans, optionally filtered by name or branch"""
    q = request.args.get('q', '').strip()
    rows = []
    try:
        rows = records.list_records(Veteran.__tablename__, order_by=Veteran.order_by)
    except BackendError as e:
        flash(f'Error loading veterans: {e.message}', 'error')
    rows = records.search(rows, q, ('first_name', 'last_name'), 'military_branch')
    empty_message = 'No veterans found matching your search.' if q else 'No veterans registered yet.'
    return render_template('veterans/index.html', veterans=[Veteran(r) for r in rows],
                           q=q, empty_message=empty_message)


@bp.route('/<record_id>')
@login_required
def view(record_id):
    row = records.get_record(Veteran.__tablename__, record_id)
    if row is None:
        abort(404)
    return render_template('veterans/view.html', veteran=Veteran(row),
                           attachments=attachments_for('veteran', record_id))


def _form(values, veteran=None):
    return render_template('records/form.html',
                           title='Edit Veteran' if veteran else 'Add Veteran',
                           fields=records.form_fields(Veteran, values, INPUT_TYPES),
                           cancel_url=url_for('veterans.index'))


@bp.route('/add', methods=['GET', 'POST'])
@admin_required
def add():
    if request.method == 'POST':
        payload = records.clean_payload(request.form, Veteran.field_names())
        missing = records.missing_required(payload, Veteran.required, dict(Veteran.fields))
        if missing:
            flash(f"Please fill in: {', '.join(missing)}", 'error')
            return _form(payload), 400
        try:
            records.create_record(Veteran.__tablename__, payload)
        except BackendError as e:
            flash(f'Error adding veteran: {e.message}', 'error')
            return _form(payload), 502
        flash('Veteran added successfully!', 'success')
        return redirect(url_for('veterans.index'))
    return _form({})


@bp.route('/<record_id>/edit', methods=['GET', 'POST'])
@admin_required
def edit(record_id):
    row = records.get_record(Veteran.__tablename__, record_id)
    if row is None:
        abort(404)
    veteran = Veteran(row)
    if request.method == 'POST':
        payload = records.clean_payload(request.form, Veteran.field_names())
        missing = records.missing_required(payload, Veteran.required, dict(Veteran.fields))
        if missing:
            flash(f"Please fill in: {', '.join(missing)}", 'error')
            return _form(payload, veteran), 400
        try:
            records.update_record(Veteran.__tablename__, record_id, payload)
        except BackendError as e:
            flash(f'Error updating veteran: {e.message}', 'error')
            return _form(payload, veteran), 502
        flash('Veteran updated successfully!', 'success')
        return redirect(url_for('veterans.view', record_id=record_id))
    return _form(row, veteran)


@bp.route('/<record_id>/delete', methods=['POST'])
@admin_required
def delete(record_id):
    try:
        records.delete_record(Veteran.__tablename__, record_id)
        flash('Veteran deleted successfully!', 'success')
    except BackendError as e:
        flash(f'Error deleting veteran: {e.message}', 'error')
    return redirect(url_for('veterans.index'))
