"""
backend/server.py — Development server entry point.

    python -m backend.server

Runs the Flask app through Socket.IO so HTTP routes and the live editor
share one process. HOST and PORT come from the environment.
"""

from __future__ import annotations

import os

from backend.app import create_app
from backend.app.extensions import socketio
from backend.config import ACTIVE_CONFIG_NAME


def main() -> None:
    app = create_app(ACTIVE_CONFIG_NAME)
    socketio.run(
        app,
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "5000")),
        debug=app.config.get("DEBUG", False),
        allow_unsafe_werkzeug=True,
    )


if __name__ == "__main__":
    main()
