import logging
import time
import urllib.parse

from flask import Flask, g, jsonify, request

from .config import Config, get_feature_flags
from .db import init_supabase
from .errors import register_error_handlers


def configure_logging(app):
    level = logging.DEBUG if app.config.get("ENABLE_DEBUG_LOGGING") else logging.INFO
    app.logger.setLevel(level)
    logging.getLogger("loanspur").setLevel(level)
    if not logging.getLogger().handlers:
        logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def register_performance_monitoring(app):
    @app.before_request
    def _start_timer():
        g.request_started = time.perf_counter()

    @app.after_request
    def _log_duration(response):
        started = g.pop("request_started", None)
        if started is not None:
            elapsed_ms = (time.perf_counter() - started) * 1000
            app.logger.info("%s %s -> %s in %.1fms", request.method, request.path,
                            response.status_code, elapsed_ms)
        return response


def create_app(config=None, supabase_client=None):
    """Build the application.

    ``config`` is a mapping of overrides applied on top of ``Config``;
    ``supabase_client`` replaces the lazily created Supabase client.
    """
    app = Flask(__name__)
    app.config.from_object(Config)
    if config:
        app.config.update(config)

    configure_logging(app)
    init_supabase(app, supabase_client)
    register_error_handlers(app)
    if app.config.get("ENABLE_PERFORMANCE_MONITORING"):
        register_performance_monitoring(app)

    from .tenant import tenant_bp
    from .functions import functions_bp
    from .notification import notification_bp
    from .finance import finance_bp
    from .admin import admin_bp, groups_bp
    from .manager import register_cli

    app.register_blueprint(tenant_bp)
    app.register_blueprint(functions_bp)
    app.register_blueprint(notification_bp)
    app.register_blueprint(finance_bp)
    app.register_blueprint(admin_bp)

    flags = get_feature_flags(app.config)
    if flags["savings"]:
        from .savings import savings_bp
        app.register_blueprint(savings_bp)
    if flags["groups"]:
        app.register_blueprint(groups_bp)

    @app.route("/api/config/features", methods=["GET"])
    def feature_flags():
        return jsonify({"status": "success", "features": get_feature_flags(app.config)}), 200

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({"status": "ok", "app": app.config["APP_NAME"]}), 200

    register_cli(app)
    app.logger.debug("Feature flags: %s", flags)
    return app


def list_routes(app):
    """Print all registered routes with their endpoint and methods."""
    output = []
    for rule in app.url_map.iter_rules():
        methods = ",".join(sorted(rule.methods))
        output.append(urllib.parse.unquote(f"{rule.endpoint:40s} {methods:25s} {rule}"))
    for line in sorted(output):
        print(line)
