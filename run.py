import os
import sys

from dotenv import load_dotenv

# .env must be loaded before create_app reads the environment
load_dotenv()

from eventhub import create_app, socketio  # noqa: E402

app = create_app()

if __name__ == '__main__':
    # Get port from environment variables, fallback to 8080 for local dev
    port = int(os.environ.get('PORT', 8080))
    IS_PRODUCTION = os.environ.get('FLASK_ENV') == 'production'

    if not app.config.get('SUPABASE_URL') or not app.config.get('SUPABASE_ANON_KEY'):
        app.logger.warning('SUPABASE_URL / SUPABASE_ANON_KEY are not set; backend calls will fail')

    try:
        app.logger.info('Starting EventHub on port %d', port)
        socketio.run(
            app,
            host='0.0.0.0',
            port=port,
            debug=not IS_PRODUCTION,
            use_reloader=False,
            allow_unsafe_werkzeug=True
        )
    except KeyboardInterrupt:
        print("\nShutting down server...")
        sys.exit(0)
    finally:
        bridge = app.extensions.get('change_bridge')
        if bridge:
            bridge.stop()
