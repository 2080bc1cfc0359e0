# -*- coding: utf-8 -*-
"""
Modular Admin: Flask application factory.
Wires the module registry, the handler table, authentication and the JSON API.
"""

import os
import logging
from logging.handlers import RotatingFileHandler

from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_jwt_extended import JWTManager, verify_jwt_in_request, get_jwt_identity
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError
from werkzeug.exceptions import HTTPException
from config import Config

# ───────── Extensions ───────── #
db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
jwt = JWTManager()

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def create_app(config_overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # ───────── Init extensions ───────── #
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    jwt.init_app(app)

    _configure_logging(app)

    # ───────── Flask-Login ───────── #
    from modular_admin.models import User
    from modular_admin.utils.responses import error_response

    @login_manager.user_loader
    def load_user(uid):
        user = db.session.get(User, int(uid))
        return user if user and user.active else None

    @login_manager.request_loader
    def load_user_from_token(req):
        try:
            verify_jwt_in_request(optional=True)
        except (JWTExtendedException, PyJWTError) as exc:
            app.logger.debug("Rejected bearer token: %s", exc)
            return None
        identity = get_jwt_identity()
        if identity is None:
            return None
        try:
            user = db.session.get(User, int(identity))
        except (TypeError, ValueError):
            return None
        return user if user and user.active else None

    @login_manager.unauthorized_handler
    def unauthorized():
        return error_response("Unauthorized", 401)

    # ───────── Module registry & handler table ───────── #
    from modular_admin.descriptors import DirectoryDescriptorStore
    from modular_admin.registry import ModuleRegistry
    from modular_admin.handlers import HandlerRegistry
    from modular_admin.modules import register_module_handlers

    registry = ModuleRegistry(DirectoryDescriptorStore(app.config["MODULES_DIR"]))
    registry.initialize()
    handlers = HandlerRegistry()
    register_module_handlers(handlers)
    for module_id, handler_name, method in handlers.missing_for(registry):
        app.logger.warning(
            "Module %s declares %s %s but no handler is registered", module_id, method, handler_name)
    app.extensions["module_registry"] = registry
    app.extensions["module_handlers"] = handlers

    # ───────── Blueprints ───────── #
    from modular_admin.auth.routes import auth_bp
    from modular_admin.roles.routes import roles_bp
    from modular_admin.catalog.routes import catalog_bp
    from modular_admin.gateway.routes import gateway_bp

    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(roles_bp, url_prefix="/api/roles")
    app.register_blueprint(catalog_bp, url_prefix="/api/modules")
    app.register_blueprint(gateway_bp)

    # ───────── Error handlers ───────── #
    @app.errorhandler(HTTPException)
    def handle_http_error(exc):
        return error_response(exc.description or exc.name, exc.code or 500,
                              details=getattr(exc, "details", None))

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc):
        app.logger.exception("Unhandled error: %s", exc)
        return error_response("Internal server error", 500)

    if app.config.get("SEED_ON_STARTUP"):
        from modular_admin.seeds import bootstrap
        bootstrap(app)

    app.logger.info("Modular Admin started with %d module(s)", len(registry.get_all_modules()))
    return app


def _configure_logging(app):
    level = app.config.get("LOG_LEVEL", "INFO")
    log_file = app.config.get("LOG_FILE")
    if log_file and not any(isinstance(h, RotatingFileHandler) for h in app.logger.handlers):
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handler = RotatingFileHandler(
            log_file,
            maxBytes=app.config.get("LOG_MAX_BYTES", 10240),
            backupCount=app.config.get("LOG_BACKUP_COUNT", 10),
        )
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        app.logger.addHandler(handler)

    if not any(type(h) is logging.StreamHandler for h in app.logger.handlers):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        app.logger.addHandler(console_handler)

    app.logger.setLevel(level)
    app.logger.propagate = False

    if app.config.get("SQLALCHEMY_ECHO", False) or level == "DEBUG":
        sql_logger = logging.getLogger("sqlalchemy.engine")
        sql_logger.setLevel(logging.INFO)
        if not any(isinstance(h, logging.StreamHandler) for h in sql_logger.handlers):
            sql_console = logging.StreamHandler()
            sql_console.setFormatter(logging.Formatter("%(asctime)s [SQL] %(message)s"))
            sql_logger.addHandler(sql_console)
