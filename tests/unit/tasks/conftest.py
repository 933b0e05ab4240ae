"""
Task tests import ``narration.celery_app``, which builds the Flask app at
import time. Keep that app away from SocketIO.
"""

import os

os.environ.setdefault("SOCKETIO_ENABLED", "false")
