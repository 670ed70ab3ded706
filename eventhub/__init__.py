from flask import Flask, render_template, flash, jsonify, redirect, request, url_for
from flask_socketio import SocketIO, join_room, leave_room
from flask_login import LoginManager, current_user
from werkzeug.exceptions import RequestEntityTooLarge
import logging
import os
from datetime import timedelta

from eventhub.utils.backend import BackendError
from eventhub.utils.realtime import (
    ChangeFeed, PRIVATE_TABLES, SHARED_TABLES, SupabaseChangeBridge, attach_socketio, room_for, user_room,
)

# Initialize extensions
# SocketIO configuration - async mode can be overridden in run.py
socketio = SocketIO(cors_allowed_origins="*", async_mode="threading")
login_manager = LoginManager()
change_feed = ChangeFeed()

# Every local change is forwarded to the browsers watching that table
attach_socketio(change_feed, socketio)

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'
DEFAULT_UPLOAD_EXTENSIONS = ('pdf', 'doc', 'docx', 'txt', 'jpg', 'jpeg', 'png', 'gif')

# Bottom navigation: (endpoint, label, blueprint, admin only)
NAV_ITEMS = (
    ('veterans.index', 'Beneficiaries', 'veterans', False),
    ('teams.index', 'Race Teams', 'teams', False),
    ('events.index', 'Events', 'events', False),
    ('schedule.index', 'Schedule', 'schedule', False),
    ('files.index', 'Files', 'files', False),
    ('admin.index', 'Admin', 'admin', True),
)


def _env_flag(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_list(name):
    return [item.strip() for item in os.environ.get(name, '').split(',') if item.strip()]


def configure_logging(app):
    root = logging.getLogger()
    level = app.config.get('LOG_LEVEL', 'INFO')
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(level)
    app.logger.setLevel(level)


def _watch_room(table):
    if table in PRIVATE_TABLES:
        return user_room(current_user.id)
    if table in SHARED_TABLES:
        return room_for(table)
    return None


@socketio.on('watch')
def on_watch(data):
    """Browser asks for row_change notices of one table."""
    if not current_user.is_authenticated:
        return False
    room = _watch_room((data or {}).get('table'))
    if room is None:
        return False
    join_room(room)
    return True


@socketio.on('unwatch')
def on_unwatch(data):
    if not current_user.is_authenticated:
        return
    room = _watch_room((data or {}).get('table'))
    if room is not None:
        leave_room(room)


def start_change_bridge(app):
    """Start the backend change-feed bridge thread when enabled."""
    if not app.config.get('REALTIME_BRIDGE_ENABLED'):
        return None
    url = app.config.get('SUPABASE_URL')
    # The anon key sees nothing through row-level security
    key = app.config.get('SUPABASE_SERVICE_ROLE_KEY')
    if not url or not key:
        app.logger.warning('Realtime bridge enabled but SUPABASE_URL/SUPABASE_SERVICE_ROLE_KEY missing; not starting')
        return None
    bridge = SupabaseChangeBridge(change_feed, url, key)
    bridge.start()
    app.extensions['change_bridge'] = bridge
    return bridge


def create_app(test_config=None):
    # Create and configure the app
    app = Flask(__name__, instance_relative_config=True)

    # Set default configuration
    app.config.from_mapping(
        SECRET_KEY=os.environ.get('SECRET_KEY', 'dev'),
        SUPABASE_URL=os.environ.get('SUPABASE_URL', ''),
        SUPABASE_ANON_KEY=os.environ.get('SUPABASE_ANON_KEY') or os.environ.get('SUPABASE_KEY', ''),
        SUPABASE_SERVICE_ROLE_KEY=os.environ.get('SUPABASE_SERVICE_ROLE_KEY', ''),
        SUPABASE_TIMEOUT=int(os.environ.get('SUPABASE_TIMEOUT', 10)),
        # callable (app) -> client; tests inject an in-memory client here
        SUPABASE_CLIENT_FACTORY=None,
        FILES_BUCKET='files',
        DOCUMENTS_BUCKET='documents',
        MAX_CONTENT_LENGTH=int(os.environ.get('MAX_UPLOAD_BYTES', 50 * 1024 * 1024)),
        ALLOWED_UPLOAD_EXTENSIONS=DEFAULT_UPLOAD_EXTENSIONS,
        APP_TIMEZONE=os.environ.get('APP_TIMEZONE', 'UTC'),
        BOOTSTRAP_ADMIN_EMAILS=_env_list('BOOTSTRAP_ADMIN_EMAILS'),
        SESSION_REFRESH_MARGIN=60,
        PERMANENT_SESSION_LIFETIME=timedelta(days=int(os.environ.get('REMEMBER_ME_DAYS', 14))),
        REALTIME_BRIDGE_ENABLED=_env_flag('REALTIME_BRIDGE_ENABLED'),
        BANNER_TIMEOUT_MS=5000,
        LOG_LEVEL=os.environ.get('LOG_LEVEL', 'INFO'),
    )

    if test_config is None:
        # Load instance config if it exists
        app.config.from_pyfile('config.py', silent=True)
    else:
        # Load test config
        app.config.from_mapping(test_config)

    configure_logging(app)

    # Initialize Flask-Login
    from eventhub.utils import decorators, session_manager
    login_manager.init_app(app)
    login_manager.login_view = 'auth.login'
    login_manager.login_message = 'Please sign in to access this page.'
    login_manager.login_message_category = 'info'
    login_manager.user_loader(session_manager.load_user)
    login_manager.unauthorized_handler(decorators.unauthorized)

    # Initialize SocketIO
    socketio.init_app(app)

    # Register template filters
    from eventhub.utils import template_filters
    template_filters.init_app(app)

    # Import and register blueprints
    from eventhub.routes import main, auth, veterans, teams, events, schedule, files, notifications, admin
    app.register_blueprint(main.bp)
    app.register_blueprint(auth.bp)
    app.register_blueprint(veterans.bp)
    app.register_blueprint(teams.bp)
    app.register_blueprint(events.bp)
    app.register_blueprint(schedule.bp)
    app.register_blueprint(files.bp)
    app.register_blueprint(notifications.bp)
    app.register_blueprint(admin.bp)

    @app.before_request
    def refresh_backend_session():
        if request.endpoint in (None, 'static', 'main.healthz'):
            return None
        if current_user.is_authenticated and not session_manager.refresh_if_needed():
            return decorators.unauthorized()
        return None

    # Context processors
    @app.context_processor
    def inject_navigation():
        admin = session_manager.is_admin()
        items = []
        for endpoint, label, blueprint, admin_only in NAV_ITEMS:
            if admin_only and not admin:
                continue
            active = request.blueprint == blueprint or (
                blueprint == 'veterans' and request.endpoint == 'main.index')
            items.append({'endpoint': endpoint, 'label': label, 'active': active})
        return dict(nav_items=items, is_admin=admin, current_role=session_manager.current_role())

    @app.context_processor
    def inject_unread_count():
        count = 0
        if current_user.is_authenticated:
            from eventhub.utils.notifications import unread_count
            try:
                count = unread_count(current_user.id)
            except BackendError as e:
                app.logger.warning('Unread count unavailable: %s', e.message)
        return dict(unread_count=count)

    @app.context_processor
    def inject_banner_settings():
        return dict(banner_timeout_ms=app.config.get('BANNER_TIMEOUT_MS', 5000))

    # Error handlers
    @app.errorhandler(BackendError)
    def backend_error(e):
        app.logger.error('Unhandled backend error during %s: %s', e.operation, e.message)
        if decorators.wants_json():
            return jsonify({'error': e.message}), 502
        return render_template('errors/500.html', message=e.message), 502

    @app.errorhandler(RequestEntityTooLarge)
    def upload_too_large(e):
        from eventhub.utils.uploads import SIZE_LIMIT_MESSAGE
        flash(SIZE_LIMIT_MESSAGE, 'error')
        return redirect(url_for('files.index'))

    @app.errorhandler(404)
    def page_not_found(e):
        return render_template('errors/404.html'), 404

    @app.errorhandler(500)
    def internal_server_error(e):
        return render_template('errors/500.html'), 500

    if not app.config.get('TESTING'):
        start_change_bridge(app)

    return app
