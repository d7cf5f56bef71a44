"""
Application entry point - builds the Flask app around one QueryExecutor
"""
import atexit
from datetime import datetime, timezone

from flask import Flask, jsonify, request, send_from_directory
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from config import Config
from database import EXTENSION_KEY, bootstrap
from db_backend import QueryError, create_executor
from routes.auth_routes import auth_bp
from routes.client_routes import client_bp
from routes.document_routes import document_bp
from routes.notification_routes import notification_bp, notification_debug_bp
from routes.task_routes import task_bp
from routes.user_routes import user_bp
from services import EXTENSION_KEY as NOTIFIER_KEY
from services import NotificationService
from utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

API_VERSION = "1.0.0"


def create_app(config_object=Config, executor=None):
    """Build the app. Pass `executor` to reuse an existing store; otherwise one is opened from config."""
    setup_logging(config_object.LOG_LEVEL)

    app = Flask(__name__)
    app.config.from_object(config_object)
    app.config['MAX_CONTENT_LENGTH'] = config_object.MAX_UPLOAD_MB * 1024 * 1024

    # running behind one reverse proxy (Railway, Vercel)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1)

    CORS(
        app,
        origins=config_object.cors_origins(),
        supports_credentials=True,
        methods=['GET', 'POST', 'PUT', 'DELETE', 'PATCH', 'OPTIONS'],
        allow_headers=['Content-Type', 'Authorization'],
    )
    Limiter(
        app=app,
        key_func=get_remote_address,
        default_limits=[config_object.RATE_LIMIT],
        storage_uri="memory://",
    )

    owns_executor = executor is None
    if owns_executor:
        executor = create_executor(config_object)
    bootstrap(executor, config_object)
    app.extensions[EXTENSION_KEY] = executor
    app.extensions[NOTIFIER_KEY] = NotificationService(executor, app.config)
    if owns_executor:
        atexit.register(executor.close)

    app.register_blueprint(auth_bp)
    app.register_blueprint(user_bp)
    app.register_blueprint(client_bp)
    app.register_blueprint(document_bp)
    app.register_blueprint(task_bp)
    app.register_blueprint(notification_bp)
    if app.config['DEBUG']:
        app.register_blueprint(notification_debug_bp)
        logger.warning("⚠️ Debug notification endpoint enabled")

    _register_core_routes(app)
    _register_error_handlers(app)

    logger.info(f"✅ AGP CRM ready ({executor.mode.value}, env={config_object.APP_ENV})")
    return app


def _register_core_routes(app):
    @app.route('/api/health')
    def health():
        db = app.extensions[EXTENSION_KEY]
        return jsonify({
            "status": "OK",
            "message": "AGP CRM API is running",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": app.config['APP_ENV'],
            "database": db.mode.value,
            "database_ok": db.ping(),
        })

    @app.route('/')
    def index():
        return jsonify({
            "message": "AGP CRM API Server",
            "version": API_VERSION,
            "status": "Running",
            "environment": app.config['APP_ENV'],
        })

    @app.route('/api/uploads/<path:filename>')
    def uploaded_file(filename):
        return send_from_directory(app.config['UPLOAD_PATH'], filename)


def _register_error_handlers(app):
    @app.errorhandler(404)
    def not_found(e):
        return jsonify({
            "error": "Route not found",
            "message": f"Cannot {request.method} {request.path}",
        }), 404

    @app.errorhandler(413)
    def too_large(e):
        return jsonify({"error": f"File too large. Maximum size is {app.config['MAX_UPLOAD_MB']}MB"}), 413

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify({"error": "Too many requests from this IP, please try again later."}), 429

    @app.errorhandler(QueryError)
    def query_failed(e):
        logger.error(f"❌ Unhandled query error: {e}")
        return jsonify({"error": "Database error"}), 500

    @app.errorhandler(HTTPException)
    def http_error(e):
        return jsonify({"error": e.name, "message": e.description}), e.code

    @app.errorhandler(Exception)
    def internal_error(e):
        logger.exception("Global error")
        message = str(e) if app.config['DEBUG'] else "Something went wrong"
        return jsonify({"error": "Internal server error", "message": message}), 500


if __name__ == '__main__':
    app = create_app()
    logger.info(f"🚀 AGP CRM Server running on port {Config.PORT}")
    app.run(host='0.0.0.0', port=Config.PORT, debug=Config.DEBUG)
