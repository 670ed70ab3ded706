from urllib.parse import urlsplit
from flask import Blueprint, render_template, redirect, url_for, flash, request, current_app
from flask_login import login_required, current_user
from eventhub.utils import session_manager
from eventhub.utils.backend import BackendError
from eventhub.utils.session_manager import AuthError

bp = Blueprint('auth', __name__, url_prefix='/auth')


def _safe_next(next_page):
    if not next_page or urlsplit(next_page).netloc != '' or not next_page.startswith('/'):
        return url_for('main.index')
    return next_page


@bp.route('/login', methods=['GET', 'POST'])
def login():
    if current_user.is_authenticated:
        return redirect(url_for('main.index'))

    if request.method == 'POST':
        email = request.form.get('email', '')
        password = request.form.get('password', '')
        remember_me = bool(request.form.get('remember_me'))
        try:
            user = session_manager.sign_in(email, password, remember=remember_me)
        except AuthError as e:
            flash(e.message, 'error')
            return render_template('auth/login.html', email=email), 401
        except BackendError as e:
            current_app.logger.error('Sign-in unavailable: %s', e.message)
            flash('Sign-in is unavailable right now. Please try again later.', 'error')
            return render_template('auth/login.html', email=email), 503

        flash(f'Welcome back, {user.email}!', 'success')
        return redirect(_safe_next(request.args.get('next')))

    return render_template('auth/login.html', email='')


@bp.route('/forgot-password', methods=['GET', 'POST'])
def forgot_password():
    if request.method == 'POST':
        email = (request.form.get('email') or '').strip()
        if not email:
            flash('Email is required', 'error')
            return redirect(url_for('auth.forgot_password'))
        try:
            sent = session_manager.request_password_reset(
                email, redirect_to=url_for('auth.login', _external=True))
        except BackendError as e:
            current_app.logger.error('Password reset unavailable: %s', e.message)
            sent = False
        if not sent:
            flash('We could not send a reset email right now. Please try again later.', 'warning')
            return redirect(url_for('auth.forgot_password'))
        # Don't reveal user existence; send generic message
        flash('If an account with that email exists, a reset link has been sent.', 'info')
        return redirect(url_for('auth.login'))
    return render_template('auth/forgot_password.html')


@bp.route('/logout', methods=['GET', 'POST'])
@login_required
def logout():
    session_manager.sign_out()
    flash('You have been signed out successfully.', 'info')
    return redirect(url_for('auth.login'))
