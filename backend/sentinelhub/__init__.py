# sentinelhub/__init__.py
"""
App factory.

    - CORS origins read from CORS_ORIGINS env var
    - Database URI from SQLALCHEMY_DATABASE_URI env var; without one the
      session store is in-memory only
    - SECRET_KEY required when CORS_ORIGINS is https
    - Scan core configured once from ScanConfig.from_env() and shared by
      every request through app.extensions["sentinelhub"]
    - Schema is created with db.create_all() at startup
"""

from __future__ import annotations

import logging
import os
import re
import traceback
from typing import Any, Dict, Optional

from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from .config import ScanConfig
from .exceptions import SentinelError
from .extensions import db, init_extensions
from . import models  # noqa: F401  (registers ScanRecord before create_all)
from .scanner import ScanOrchestrator
from .scanner.enrichment import build_enricher
from .storage import FallbackSessionStore, MemorySessionStore, SqlSessionStore

error_logger = logging.getLogger("sentinelhub.errors")

LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"
QUIET_LOGGERS = ("httpx", "httpcore", "urllib3", "botocore", "boto3", "s3transfer")
DEV_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    re.compile(r"http://192\.168\.\d+\.\d+:3000"),
]

# status -> (error, message) for every HTTP error answered as JSON
HTTP_ERRORS = {
    400: ("Bad request", "The request was malformed or invalid."),
    404: ("Not found", "No such endpoint or scan."),
    405: ("Method not allowed", "This endpoint does not accept that method."),
    413: ("Payload too large", "Request bodies are limited to 2 MB."),
    415: ("Unsupported media type", "Send the scan request as application/json."),
    429: ("Too many requests", "Slow down and retry shortly."),
}
INTERNAL_ERROR = {
    "error": "Internal server error",
    "message": "The scan service hit an unexpected error.",
}


def _is_production() -> bool:
    """Production is assumed whenever CORS_ORIGINS points at https."""
    return os.getenv("CORS_ORIGINS", "").startswith("https://")


def _configure_logging(app: Flask, is_prod: bool) -> None:
    level = logging.INFO if is_prod else logging.DEBUG
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S" if is_prod else "%H:%M:%S",
    )
    app.logger.setLevel(level)
    logging.getLogger("werkzeug").setLevel(logging.INFO)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _cors_origins() -> list:
    raw = os.getenv("CORS_ORIGINS")
    if not raw:
        return DEV_ORIGINS
    return [o.strip() for o in raw.split(",") if o.strip()]


def _register_error_handlers(app: Flask) -> None:

    @app.errorhandler(SentinelError)
    def sentinel_error(e: SentinelError):
        if e.status_code >= 500:
            error_logger.warning(f"{type(e).__name__}: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def http_error(e: HTTPException):
        code = e.code or 500
        if code >= 500:
            error_logger.error(f"{code} {e.name}")
            return jsonify(INTERNAL_ERROR), code
        error, message = HTTP_ERRORS.get(code, (e.name, e.description))
        return jsonify(error=error, message=message), code

    @app.errorhandler(Exception)
    def unhandled(e: Exception):
        # Tracebacks go to the log only
        error_logger.error(f"Unhandled {type(e).__name__}: {e}\n{traceback.format_exc()}")
        return jsonify(INTERNAL_ERROR), 500


def _build_services(scan_config: ScanConfig, use_sql: bool) -> Dict[str, Any]:
    enricher = build_enricher(scan_config)
    memory = MemorySessionStore(
        scan_config.session_ttl_seconds,
        scan_config.recent_limit,
        capacity=scan_config.memory_store_capacity,
    )
    if use_sql:
        store = FallbackSessionStore(
            SqlSessionStore(scan_config.session_ttl_seconds, scan_config.recent_limit), memory
        )
    else:
        store = memory
    return {
        "config": scan_config,
        "orchestrator": ScanOrchestrator(scan_config, enricher=enricher),
        "store": store,
    }


def create_app(
    config_overrides: Optional[Dict[str, Any]] = None,
    scan_config: Optional[ScanConfig] = None,
    orchestrator: Optional[ScanOrchestrator] = None,
) -> Flask:
    app = Flask(__name__)
    is_prod = _is_production()
    _configure_logging(app, is_prod)

    CORS(app, resources={
        r"/*": {
            "origins": _cors_origins(),
            "allow_headers": ["Content-Type", "Authorization"],
            "methods": ["GET", "POST", "OPTIONS"],
        }
    })

    secret_key = os.getenv("SECRET_KEY")
    if is_prod and not secret_key:
        raise RuntimeError("SECRET_KEY must be set when CORS_ORIGINS is https")
    app.config["SECRET_KEY"] = secret_key or "sentinelhub-dev-only"

    database_uri = os.getenv("SQLALCHEMY_DATABASE_URI")
    app.config["SQLALCHEMY_DATABASE_URI"] = database_uri or "sqlite://"
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["MAX_CONTENT_LENGTH"] = 2 * 1024 * 1024
    if config_overrides:
        app.config.update(config_overrides)
    use_sql = bool(database_uri) or "SQLALCHEMY_DATABASE_URI" in (config_overrides or {})

    init_extensions(app)
    with app.app_context():
        db.create_all()

    services = _build_services(scan_config or ScanConfig.from_env(), use_sql)
    if orchestrator is not None:
        services["orchestrator"] = orchestrator
    app.extensions["sentinelhub"] = services

    from .scans import scans_bp
    app.register_blueprint(scans_bp)
    _register_error_handlers(app)

    @app.get("/health")
    def health():
        return jsonify(status="up and running"), 200

    return app
