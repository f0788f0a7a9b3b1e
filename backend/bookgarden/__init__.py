import json
import os
from pathlib import Path

import click
from flask import Flask, g, jsonify, request
from sqlalchemy import event, text
from werkzeug.exceptions import HTTPException

from bookgarden.extensions import cors, db, migrate
from bookgarden.segments.segment_order_jobs_admin import order_jobs_bp
from bookgarden.segments.segment_orders_api import orders_bp
from bookgarden.segments.segment_payment_webhooks import payments_bp
from bookgarden.utils.observability import init_sentry, install_request_observers
from bookgarden.utils.order_settings import _env_int


def _resolve_alembic_head() -> str:
    try:
        from alembic.config import Config
        from alembic.script import ScriptDirectory

        migrations_dir = Path(__file__).resolve().parents[1] / "migrations"
        cfg = Config(str(migrations_dir / "alembic.ini"))
        cfg.set_main_option("script_location", str(migrations_dir))
        heads = ScriptDirectory.from_config(cfg).get_heads()
        return heads[0] if heads else "unknown"
    except Exception:
        return "unknown"


def _database_url(env: str) -> str:
    database_url = os.getenv("SQLALCHEMY_DATABASE_URI") or os.getenv("DATABASE_URL")
    if database_url:
        # Heroku-style URLs still use the old scheme.
        if database_url.startswith("postgres://"):
            database_url = "postgresql://" + database_url[len("postgres://"):]
        return database_url
    if env in ("prod", "production"):
        raise RuntimeError("DATABASE_URL (or SQLALCHEMY_DATABASE_URI) must be set in production")
    instance_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "instance"))
    os.makedirs(instance_dir, exist_ok=True)
    path = os.path.join(instance_dir, "bookgarden.db").replace(os.sep, "/")
    return f"sqlite:///{path}"


def _engine_options(database_url: str) -> dict:
    options = {
        "pool_pre_ping": True,
        "pool_recycle": _env_int("DB_POOL_RECYCLE_SECONDS", 1800, minimum=60, maximum=86400),
    }
    if not database_url.startswith("sqlite"):
        options.update(
            {
                "pool_size": _env_int("DB_POOL_SIZE", 10, minimum=1, maximum=200),
                "max_overflow": _env_int("DB_MAX_OVERFLOW", 20, minimum=0, maximum=500),
                "pool_timeout": _env_int("DB_POOL_TIMEOUT_SECONDS", 30, minimum=1, maximum=300),
            }
        )
    return options


def _enable_sqlite_savepoints(app) -> None:
    with app.app_context():
        engine = db.engine
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine, "connect")
    def _sqlite_connect(dbapi_connection, connection_record):
        # SQLAlchemy emits BEGIN itself so SAVEPOINT always nests inside the order transaction.
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN")


def _error_payload(error: str, message: str, status: int) -> dict:
    payload = {"ok": False, "error": error, "message": message, "status": int(status)}
    rid = (getattr(g, "request_id", "") or "").strip()
    if rid:
        payload["trace_id"] = rid
    return payload


def create_app(test_config: dict | None = None):
    app = Flask(__name__)
    init_sentry(app)

    env = (os.getenv("BOOKGARDEN_ENV", "dev") or "dev").strip().lower()
    if env in ("prod", "production"):
        secret = (os.getenv("SECRET_KEY") or "").strip()
        if not secret or len(secret) < 16:
            raise RuntimeError("SECRET_KEY must be set and at least 16 chars in production")

    database_url = _database_url(env)
    app.config["SECRET_KEY"] = os.getenv("SECRET_KEY", "dev-secret")
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["SQLALCHEMY_DATABASE_URI"] = database_url
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = _engine_options(database_url)
    app.config["JSON_SORT_KEYS"] = False
    if test_config:
        app.config.update(test_config)

    cors_origins = [o.strip() for o in (os.getenv("CORS_ORIGINS") or "").split(",") if o.strip()]
    if not cors_origins and env not in ("prod", "production"):
        cors_origins = ["*"]
    cors.init_app(app, resources={r"/api/*": {"origins": cors_origins}})

    db.init_app(app)
    _enable_sqlite_savepoints(app)
    migrate.init_app(app, db, directory=str(Path(__file__).resolve().parents[1] / "migrations"))
    install_request_observers(app)

    @app.errorhandler(HTTPException)
    def _api_http_exception(error: HTTPException):
        if not request.path.startswith("/api/"):
            return error
        status = int(error.code or 500)
        return jsonify(_error_payload(error.name, error.description or error.name, status)), status

    @app.errorhandler(Exception)
    def _api_unhandled_exception(error: Exception):
        app.logger.exception("unhandled_exception path=%s", request.path)
        try:
            db.session.rollback()
        except Exception:
            app.logger.warning("rollback_after_unhandled_failed", exc_info=True)
        return jsonify(_error_payload("InternalServerError", "Internal server error", 500)), 500

    app.register_blueprint(orders_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(order_jobs_bp)

    @app.get("/api/health")
    def health():
        db_state = "ok"
        db_error = None
        try:
            with db.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            db_state = "fail"
            db_error = str(e)[:300]
        payload = {
            "ok": db_state == "ok",
            "service": "bookgarden-orders",
            "env": env,
            "db": db_state,
            "alembic_head": _resolve_alembic_head(),
        }
        if db_error:
            payload["db_error"] = db_error
        return jsonify(payload), 200 if db_state == "ok" else 503

    @app.cli.command("run-order-sweeps")
    @click.option("--job", "job", type=click.Choice(["unpaid-expiry", "auto-confirm", "all"]), default="all")
    def run_order_sweeps(job: str):
        from bookgarden.jobs.order_runner import JOBS

        names = list(JOBS) if job == "all" else [job]
        for name in names:
            summary = JOBS[name]()
            click.echo(f"{name} {json.dumps(summary, sort_keys=True)}")

    @app.cli.command("issue-token")
    @click.argument("user_id", type=int)
    def issue_token(user_id: int):
        if env in ("prod", "production"):
            raise click.ClickException("Token issuance is disabled in production.")
        from bookgarden.utils.jwt_utils import create_token

        click.echo(create_token(user_id))

    return app
