"""
extensions.py — Flask extension singletons.

Initialises SQLAlchemy and Socket.IO as module-level objects so they can be
imported anywhere without creating circular dependencies.

Pattern:
    1. Create the extension object here (no app attached yet).
    2. Call init_app(app) inside the app factory in app/__init__.py.
    3. Import `db` or `socketio` from here wherever needed.

    from backend.app.extensions import db, socketio

Do not pass the app object directly to SQLAlchemy() or SocketIO() at import
time — that would prevent running tests with a separate test app instance.

Schema classes (in app/schemas/) inherit from marshmallow.Schema directly
so unit tests can instantiate them without an application context.
"""

from flask_socketio import SocketIO
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# Process-wide Socket.IO server. The game room hub in app/realtime/hub.py
# wraps it; services never emit through this object directly.
socketio = SocketIO()
