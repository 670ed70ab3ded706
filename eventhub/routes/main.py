from flask import Blueprint, jsonify, redirect, url_for
from flask_login import login_required

bp = Blueprint('main', __name__)


@bp.route('/')
@login_required
def index():
    """Home is the beneficiaries list"""
    return redirect(url_for('veterans.index'))


@bp.route('/healthz')
def healthz():
    return jsonify({'status': 'ok'})
