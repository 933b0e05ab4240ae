"""
main.py

Runs the Flask/SocketIO process of the narration pipeline. Workers are
started separately with ``celery -A narration.celery_app worker``.
"""

import os

from narration.app_factory import create_app
from narration.config.socketio_config import get_socketio, is_socketio_enabled

app = create_app()

if __name__ == "__main__":
    host = os.getenv("FLASK_HOST", "0.0.0.0")
    port = int(os.getenv("FLASK_PORT", 8000))
    debug = os.getenv("FLASK_DEBUG", "false").lower() == "true"

    if is_socketio_enabled():
        get_socketio().run(app, host=host, port=port, debug=debug, allow_unsafe_werkzeug=True)
    else:
        app.run(host=host, port=port, debug=debug)
