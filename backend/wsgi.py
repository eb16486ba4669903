import logging

try:
    from backend.codenames.config import Config
    from backend.codenames.server import create_app
except ImportError:  # pragma: no cover
    from codenames.config import Config
    from codenames.server import create_app

logging.basicConfig(level=Config.LOG_LEVEL)

app, socketio = create_app()
