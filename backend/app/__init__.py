"""
app/__init__.py — Flask application factory.

Pattern: create_app(config_name) creates and returns a configured Flask app.
         Nothing is initialised at import time — this enables:
           - Multiple isolated test app instances
           - Clean separation between app creation and app startup
           - alembic to import the models without starting the server

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Configure logging from LOG_LEVEL
  3. Initialise extensions (SQLAlchemy, Socket.IO) via init_app()
  4. Initialise the game room hub and register the socket event handlers
  5. Register all route blueprints under /api
  6. Register global error handlers (AppError → JSON, Exception → 500)
  7. Register a custom JSON provider so Decimal amounts are JSON numbers
  8. Add CORS headers for browser clients on other origins

Note on model imports:
  All model classes are imported inside create_app() so that SQLAlchemy's
  metadata is populated before Alembic inspects it.
"""

from __future__ import annotations

import logging
import traceback
from decimal import Decimal

from flask import Flask, jsonify, request
from flask.json.provider import DefaultJSONProvider
from marshmallow import ValidationError
from werkzeug.exceptions import HTTPException

from backend.config import config_by_name, validate_production_config


# ── Custom JSON provider ───────────────────────────────────────────────────
# Flask's default JSON encoder does not handle Decimal. Ledger amounts are
# stored as Numeric and sent to clients as plain JSON numbers.

class DecimalJSONProvider(DefaultJSONProvider):
    """
    Extends Flask's default JSON provider to serialise Decimal as float.

    Example: Decimal("-50.0050") → -50.005
    """

    def default(self, o):
        if isinstance(o, Decimal):
            return float(o)
        return super().default(o)


# ── Application factory ────────────────────────────────────────────────────

def create_app(config_name: str = "development") -> Flask:
    """
    Creates and returns a configured Flask application instance.

    Args:
        config_name: One of "development", "testing", "production".
                     Resolved via config_by_name in config.py.
                     Defaults to "development".
    """
    app = Flask(__name__)
    app.json_provider_class = DecimalJSONProvider
    app.json = DecimalJSONProvider(app)

    # ── Configuration ──────────────────────────────────────────────────────
    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)

    if config_name == "production":
        validate_production_config(app)  # raises ValueError if misconfigured

    _configure_logging(app)

    # ── Extensions ─────────────────────────────────────────────────────────
    # Import here (not at module top) to avoid circular imports.
    from backend.app.extensions import db, socketio
    # Socket handlers must be declared before init_app() so every server
    # instance created by init_app() picks them up.
    from backend.app.realtime import events, hub  # noqa: F401
    db.init_app(app)
    socketio.init_app(
        app,
        async_mode=app.config.get("SOCKETIO_ASYNC_MODE"),
        cors_allowed_origins=_socket_origins(app),
    )

    # ── Model registration ─────────────────────────────────────────────────
    # Import all models so that SQLAlchemy's MetaData is populated.
    with app.app_context():
        from backend.app.models import (  # noqa: F401
            game,
            group,
            membership,
            transaction,
            user,
        )

    # ── Real-time ──────────────────────────────────────────────────────────
    hub.initialize(socketio)

    # ── Blueprints ─────────────────────────────────────────────────────────
    _register_blueprints(app)

    # ── Error handlers ─────────────────────────────────────────────────────
    _register_error_handlers(app)

    # ── CORS ───────────────────────────────────────────────────────────────
    _register_cors(app)

    app.logger.info("GameLedger app created with %s config", config_name)
    return app


def _configure_logging(app: Flask) -> None:
    """
    Applies LOG_LEVEL to the Flask logger and the backend.app module loggers.

    Services log through logging.getLogger(__name__); a basic stderr handler
    is installed only when the process has not configured logging itself.
    """
    level = logging.getLevelName(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    if not isinstance(level, int):
        level = logging.INFO

    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )
    logging.getLogger("backend.app").setLevel(level)
    app.logger.setLevel(level)


def _register_blueprints(app: Flask) -> None:
    """
    Registers all route blueprints under the /api prefix.

    The url_prefix is set here so individual route files only specify
    the path relative to their resource (e.g. "" and "/<int:group_id>").
    """
    from backend.app.routes.auth import auth_bp
    from backend.app.routes.games import games_bp
    from backend.app.routes.groups import groups_bp
    from backend.app.routes.health import health_bp
    from backend.app.routes.public_games import public_games_bp
    from backend.app.routes.stats import stats_bp
    from backend.app.routes.users import users_bp

    app.register_blueprint(health_bp,       url_prefix="/api")
    app.register_blueprint(auth_bp,         url_prefix="/api/auth")
    app.register_blueprint(users_bp,        url_prefix="/api/users")
    app.register_blueprint(groups_bp,       url_prefix="/api/groups")
    # public_games_bp is registered before games_bp so /games/public/<token>
    # never competes with /games/<int:game_id>.
    app.register_blueprint(public_games_bp, url_prefix="/api/games/public")
    app.register_blueprint(games_bp,        url_prefix="/api/games")
    app.register_blueprint(stats_bp,        url_prefix="/api/stats")


def _allows_any_origin(app: Flask) -> bool:
    return bool(app.config.get("DEBUG") or app.config.get("TESTING"))


def _socket_origins(app: Flask):
    """Socket.IO origins: any in DEBUG/TESTING, else the configured list or same-origin only."""
    if _allows_any_origin(app):
        return "*"
    return app.config.get("CORS_ALLOWED_ORIGINS") or None


def _register_cors(app: Flask) -> None:
    """
    Adds CORS headers so the public editor can be served from another origin.

    DEBUG and TESTING reflect any origin. Otherwise only origins listed in
    CORS_ALLOWED_ORIGINS get the headers.
    """

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if not origin:
            return response

        if _allows_any_origin(app) or origin in app.config.get("CORS_ALLOWED_ORIGINS", []):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, PATCH, DELETE, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"

        return response


def _first_error(messages, path: tuple = ()) -> tuple[tuple, str]:
    """
    Walks marshmallow's nested messages and returns (path, message) for the
    first leaf error. Nested list items are keyed by index.
    """
    if isinstance(messages, dict):
        for key, value in messages.items():
            return _first_error(value, path + (key,))
    if isinstance(messages, list):
        if not messages:
            return path, "Invalid value."
        return _first_error(messages[0], path)
    return path, str(messages)


def _register_error_handlers(app: Flask) -> None:
    """
    Registers global error handlers.

    Handlers:
      AppError        → {"error": message, "code": ..., ...} with its HTTP status
      ValidationError → marshmallow schema errors as MISSING_FIELD / INVALID_FIELD (400)
      HTTPException   → werkzeug routing errors (404, 405) in the same envelope
      Exception       → INTERNAL_ERROR (500); traceback logged, and returned as
                        "details" only when DEBUG is on
    """
    from backend.app.errors import AppError, ErrorCode

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        """
        Converts an AppError raised anywhere in the request lifecycle
        (middleware, service, route) into the error envelope.

        Routes never catch AppError — they let it propagate here.
        """
        app.logger.warning(
            "%s %s -> %s %s: %s",
            request.method,
            request.path,
            error.http_status,
            error.code,
            error.message,
        )
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        """
        Returns the FIRST schema error only. The field is reported as a
        dotted path for nested input (e.g. "transactions.1.amount").
        """
        path, raw_message = _first_error(error.messages)
        path = tuple(p for p in path if p != "_schema")
        field = ".".join(str(p) for p in path) or None

        if raw_message.startswith("Missing data for required field"):
            code = ErrorCode.MISSING_FIELD
        else:
            code = ErrorCode.INVALID_FIELD

        response_body = {
            "error": f"{field}: {raw_message}" if field else raw_message,
            "code": code,
        }
        if field is not None:
            response_body["field"] = field

        app.logger.warning("%s %s -> 400 %s: %s", request.method, request.path, code, response_body["error"])
        return jsonify(response_body), 400

    @app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException):
        return jsonify({
            "error": error.description,
            "code": (error.name or "HTTP_ERROR").upper().replace(" ", "_"),
        }), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        """
        Catches all unhandled exceptions and returns a generic 500 response.
        Stack traces leave the server only in DEBUG mode.
        """
        details = traceback.format_exc()
        app.logger.error(
            "Unhandled exception: %s\n%s",
            str(error),
            details,
        )
        body = {
            "error": "Internal server error",
            "code": ErrorCode.INTERNAL_ERROR,
        }
        if app.config.get("DEBUG"):
            body["details"] = details
        return jsonify(body), 500
