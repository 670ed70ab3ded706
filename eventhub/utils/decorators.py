"""
Authentication and authorization decorators for EventHub
Provides role-based access control decorators for routes
"""

from functools import wraps
from flask import jsonify, redirect, render_template, request, url_for
from flask_login import login_required, current_user

DENIED_TITLE = 'Access Denied'
DENIED_MESSAGE = 'This feature requires administrator permissions.'


def wants_json():
    """True when the caller asked for JSON rather than a page"""
    if request.is_json:
        return True
    best = request.accept_mimetypes.best_match(['application/json', 'text/html'])
    return best == 'application/json' and request.accept_mimetypes[best] > request.accept_mimetypes['text/html']


def unauthorized():
    """Flask-Login unauthorized handler: 401 for JSON callers, login page otherwise"""
    if wants_json():
        return jsonify({'error': 'authentication required'}), 401
    return redirect(url_for('auth.login', next=request.full_path.rstrip('?')))


def access_denied(message=DENIED_MESSAGE):
    if wants_json():
        return jsonify({'error': message}), 403
    return render_template('access_denied.html', title=DENIED_TITLE, message=message), 403


def role_required(*roles):
    """Decorator to require specific roles"""
    def decorator(f):
        @wraps(f)
        @login_required
        def decorated_function(*args, **kwargs):
            if not current_user.is_authenticated:
                return redirect(url_for('auth.login'))

            # Check if user has any of the required roles
            user_roles = current_user.get_role_names()
            if not any(role in user_roles for role in roles):
                return access_denied()

            return f(*args, **kwargs)
        return decorated_function
    return decorator


def admin_required(f):
    """Decorator to require the admin role"""
    return role_required('admin')(f)
