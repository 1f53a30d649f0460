# backend/bakery/__init__.py
import logging

from flask import Flask, request
from sqlalchemy import event

from .config import Config
from .extensions import db, migrate


def _configure_sqlite(engine) -> None:
    """
    Let SQLAlchemy own transaction boundaries on SQLite.

    pysqlite's implicit transaction handling breaks SAVEPOINT, so the driver
    is put in autocommit mode and every transaction is opened explicitly
    with BEGIN IMMEDIATE, which takes the write lock up front and
    serializes concurrent ledger writers.
    """
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_app(config_object=Config) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401
    from .immutability import install_immutability_listeners
    install_immutability_listeners()

    with app.app_context():
        if db.engine.dialect.name == "sqlite":
            _configure_sqlite(db.engine)

    from .services.stats_service import StockStatsCache, install_invalidation
    stats_cache = StockStatsCache(ttl_seconds=app.config.get("STATS_CACHE_TTL_SECONDS", 60))
    install_invalidation(stats_cache)
    app.extensions["stock_stats_cache"] = stats_cache

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.products import products_bp
    from .routes.stock import stock_bp
    from .routes.movements import movements_bp
    from .routes.recipes import recipes_bp
    from .routes.productions import productions_bp
    from .routes.sales import sales_bp
    from .routes.prices import prices_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(stock_bp)
    app.register_blueprint(movements_bp)
    app.register_blueprint(recipes_bp)
    app.register_blueprint(productions_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(prices_bp)

    allowed_origins = set(app.config.get("CORS_ORIGINS", ()))

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
