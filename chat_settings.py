import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _origins(raw):
    if raw is None or raw.strip() == '*':
        return '*'
    return [o.strip() for o in raw.split(',') if o.strip()]


class Config:
    # Read once at import; create_app(overrides) wins over these in tests.
    SECRET_KEY = os.environ.get('SECRET_KEY', 'secret!')
    HOST = os.environ.get('HOST', '0.0.0.0')
    PORT = int(os.environ.get('PORT', 3000))
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # cors_allowed_origins='*' is used for development convenience
    CORS_ALLOWED_ORIGINS = _origins(os.environ.get('CORS_ALLOWED_ORIGINS'))

    UPLOAD_FOLDER = os.environ.get('UPLOAD_FOLDER', os.path.join(BASE_DIR, 'uploads'))
    MAX_CONTENT_LENGTH = int(os.environ.get('MAX_CONTENT_LENGTH', 10 * 1024 * 1024))
    ALLOWED_MEDIA_TYPES = ('jpeg', 'jpg', 'png', 'gif', 'mp4', 'webm', 'ogg', 'mp3', 'wav', 'm4a')

    # disconnected-user records kept for /user-activity
    ACTIVITY_LOG_SIZE = int(os.environ.get('ACTIVITY_LOG_SIZE', 1000))
    # socketio.run refuses the Werkzeug dev server outside debug unless this is set;
    # production deployments should run under eventlet/gevent or gunicorn instead
    ALLOW_UNSAFE_WERKZEUG = os.environ.get('ALLOW_UNSAFE_WERKZEUG', '0').lower() in ('1', 'true', 'yes')
