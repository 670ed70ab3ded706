"""
Session and Role Provider
Owns the backend auth session for the signed-in user and the profile/role
that the rest of the app reads through Flask-Login's current_user.

Role policy: the role comes from the `users` profile table only. A missing
profile is created as `staff`, or `admin` when the email is listed in the
BOOTSTRAP_ADMIN_EMAILS setting. A failed profile lookup fails the sign-in;
no local user record is ever synthesized.
"""
import logging
import time
from datetime import datetime, timezone

from flask import current_app, flash, session
from flask_login import current_user, login_user, logout_user

from eventhub.models import ROLES, User
from eventhub.utils import backend, records
from eventhub.utils.backend import BackendError

logger = logging.getLogger(__name__)

PROFILE_KEY = 'profile'


class AuthError(Exception):
    """Authentication failure with a message fit for the login banner."""

    def __init__(self, message):
        self.message = message
        super().__init__(message)


def friendly_auth_error(message):
    """Map a raw auth error message to the text shown on the login form."""
    text = (message or '').strip()
    lowered = text.lower()
    if 'too many requests' in lowered or 'rate limit' in lowered:
        return 'Too many attempts. Please wait a few minutes and try again.'
    if 'invalid' in lowered:
        return 'Invalid email or password. Please check and try again.'
    if 'confirm' in lowered:
        return 'Please check your email and click the confirmation link first.'
    return text or 'An error occurred'


def _now_iso():
    return datetime.now(timezone.utc).isoformat()


def _bootstrap_admin_emails():
    emails = current_app.config.get('BOOTSTRAP_ADMIN_EMAILS') or ()
    if isinstance(emails, str):
        emails = emails.split(',')
    return {e.strip().lower() for e in emails if e and e.strip()}


def _profile_snapshot(row):
    return {
        'id': row.get('id'),
        'email': row.get('email'),
        'role': row.get('role') if row.get('role') in ROLES else 'staff',
        'created_at': row.get('created_at'),
        'updated_at': row.get('updated_at'),
    }


def load_user(user_id):
    """Flask-Login user loader: rebuild the user from the profile held in the session."""
    profile = session.get(PROFILE_KEY)
    if not profile or str(profile.get('id')) != str(user_id):
        return None
    return User(profile)


def load_or_create_profile(client, auth_user):
    """Return the `users` row for an auth user, creating it when it does not exist yet."""
    email = (getattr(auth_user, 'email', None) or '').strip()
    query = client.table('users').select('*').eq('id', auth_user.id).limit(1)
    try:
        rows = backend.execute(query, 'load profile') or []
    except BackendError as e:
        raise AuthError('Could not load your profile. Please try again.') from e
    if rows:
        return rows[0]

    role = 'admin' if email.lower() in _bootstrap_admin_emails() else 'staff'
    if role == 'admin':
        logger.warning('Granting bootstrap admin role to new profile %s', auth_user.id)
    now = _now_iso()
    profile = {'id': auth_user.id, 'email': email, 'role': role, 'created_at': now, 'updated_at': now}
    try:
        created = backend.execute(client.table('users').insert(profile), 'create profile')
    except BackendError as e:
        raise AuthError('Could not create your profile. Please contact an administrator.') from e
    logger.info('Created %s profile for user %s', role, auth_user.id)
    if isinstance(created, list) and created:
        return created[0]
    return profile


def sign_in(email, password, remember=False):
    email = (email or '').strip()
    if not email or not password:
        raise AuthError('Email and password are required.')

    client = backend.create_anon_client()
    try:
        response = client.auth.sign_in_with_password({'email': email, 'password': password})
    except Exception as e:
        logger.info('Sign-in rejected: %s', getattr(e, 'message', e))
        raise AuthError(friendly_auth_error(getattr(e, 'message', None) or str(e))) from e

    auth_session = getattr(response, 'session', None)
    auth_user = getattr(response, 'user', None)
    if auth_session is None or auth_user is None:
        raise AuthError(friendly_auth_error('Email not confirmed'))

    profile = _profile_snapshot(load_or_create_profile(client, auth_user))

    session.clear()
    backend.store_session_tokens(auth_session)
    session[PROFILE_KEY] = profile
    # Remember me: the signed cookie holding tokens and profile outlives the browser session
    session.permanent = bool(remember)
    user = User(profile)
    login_user(user)
    logger.info('User %s signed in as %s', user.id, user.role)
    return user


def sign_up(email, password, role='staff'):
    """Create an auth account plus its profile row. Used from the admin screen."""
    email = (email or '').strip().lower()
    if role not in ROLES:
        raise AuthError(f'Unknown role: {role}')
    if not email or not password:
        raise AuthError('Email and password are required.')
    if len(password) < 6:
        raise AuthError('Password must be at least 6 characters.')

    # A separate client, so the acting admin's session is left alone
    client = backend.create_anon_client()
    try:
        response = client.auth.sign_up({
            'email': email,
            'password': password,
            'options': {'data': {'role': role}},
        })
    except Exception as e:
        raise AuthError(friendly_auth_error(getattr(e, 'message', None) or str(e))) from e

    auth_user = getattr(response, 'user', None)
    if auth_user is None:
        raise AuthError('Account could not be created.')

    now = _now_iso()
    profile = {'id': auth_user.id, 'email': email, 'role': role, 'created_at': now, 'updated_at': now}
    try:
        created = records.create_record('users', profile)
    except BackendError as e:
        logger.error('Auth user %s created but profile insert failed: %s', auth_user.id, e.message)
        raise BackendError('create profile', f'Account created but profile could not be saved: {e.message}') from e
    return User(created)


def _clear_local_session():
    backend.clear_session_tokens()
    session.pop(PROFILE_KEY, None)
    logout_user()


def sign_out():
    user_id = current_user.get_id() if current_user.is_authenticated else None
    try:
        if session.get(backend.ACCESS_TOKEN_KEY):
            backend.get_client().auth.sign_out()
    except Exception as e:
        logger.warning('Backend sign-out failed for %s: %s', user_id, getattr(e, 'message', e))
    finally:
        _clear_local_session()
    logger.info('User %s signed out', user_id)


def session_expires_in(now=None):
    expires_at = session.get(backend.EXPIRES_AT_KEY)
    if not expires_at:
        return None
    now = now if now is not None else time.time()
    return int(expires_at) - int(now)


def refresh_if_needed(now=None):
    """Refresh the backend session when it is about to expire.

    Returns True when the session is usable afterwards.
    """
    if not current_user.is_authenticated:
        return False
    remaining = session_expires_in(now)
    margin = current_app.config.get('SESSION_REFRESH_MARGIN', 60)
    if remaining is None or remaining > margin:
        return True

    refresh_token = session.get(backend.REFRESH_TOKEN_KEY)
    try:
        if not refresh_token:
            raise AuthError('No refresh token')
        response = backend.create_anon_client().auth.refresh_session(refresh_token)
        new_session = getattr(response, 'session', None)
        if new_session is None:
            raise AuthError('Refresh returned no session')
    except Exception as e:
        logger.info('Session refresh failed for %s: %s', current_user.get_id(), getattr(e, 'message', e))
        _clear_local_session()
        flash('Your session has expired. Please sign in again.', 'error')
        return False

    backend.store_session_tokens(new_session)
    return True


def request_password_reset(email, redirect_to=None):
    """Ask the backend to email a reset link. Returns False if the request could not be sent."""
    email = (email or '').strip()
    if not email:
        return False
    options = {'redirect_to': redirect_to} if redirect_to else {}
    try:
        backend.create_anon_client().auth.reset_password_for_email(email, options)
    except Exception as e:
        logger.warning('Password reset request failed: %s', getattr(e, 'message', e))
        return False
    return True


def current_role():
    if not current_user.is_authenticated:
        return None
    return current_user.role


def is_admin():
    return bool(current_user.is_authenticated and current_user.is_admin)
