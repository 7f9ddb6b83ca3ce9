# app.py
import logging
from pathlib import Path

from flask import Flask, jsonify
from flask_migrate import Migrate
from werkzeug.exceptions import HTTPException

from config import get_config
from utilities.database import db
from utilities.errors import KeyServiceError
from utilities.file_storage import file_storage
from utilities.logger import configure_app_logging
from files import files_bp
from keys import keys_bp
from key_bundles import key_bundles_bp
from key_events import key_events_bp
from key_loans import key_loans_bp
from key_notes import key_notes_bp
from key_systems import key_systems_bp
from logs import logs_bp
from receipts import receipts_bp
from signatures import signatures_bp

migrate = Migrate()
logger = logging.getLogger(__name__)


def _harden_sqlite_path(app: Flask) -> None:
    """Relative sqlite files live in DATA_DIR so the service never writes into its install dir."""
    uri = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if not uri.startswith("sqlite:///") or uri.endswith(":memory:"):
        return
    raw_path = uri.replace("sqlite:///", "", 1).strip()
    if Path(raw_path).is_absolute():
        return
    base_dir = Path(app.config["DATA_DIR"])
    base_dir.mkdir(parents=True, exist_ok=True)
    db_path = (base_dir / (Path(raw_path).name or "keyhub.db")).resolve()
    app.config["SQLALCHEMY_DATABASE_URI"] = f"sqlite:///{db_path.as_posix()}"
    logger.info("Using SQLite DB at %s", app.config["SQLALCHEMY_DATABASE_URI"])


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(KeyServiceError)
    def handle_key_service_error(exc):
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(HTTPException)
    def handle_http_exception(exc):
        return jsonify({"reason": exc.description}), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected(exc):
        app.logger.exception("Unhandled error")
        db.session.rollback()
        return jsonify({"errorMessage": str(exc), "message": "Internal server error"}), 500


def create_app(test_config=None):
    app = Flask(__name__)

    # 1) Load config for the selected environment
    app.config.from_object(get_config())
    if test_config:
        app.config.update(test_config)
    configure_app_logging(app)

    # 2) SQLite path hardening BEFORE init_app
    _harden_sqlite_path(app)

    # 3) Init DB, migrations and object storage now that config is final
    db.init_app(app)
    migrate.init_app(app, db)
    file_storage.init_app(app)

    # 4) Optional dev-only schema bootstrap
    if app.config.get("AUTO_CREATE_SCHEMA"):
        with app.app_context():
            db.create_all()
    if app.config.get("MINIO_INIT_BUCKET"):
        with app.app_context():
            file_storage.initialize_bucket()

    # 5) Blueprints
    app.register_blueprint(keys_bp, url_prefix="/keys")
    app.register_blueprint(key_systems_bp, url_prefix="/key-systems")
    app.register_blueprint(key_bundles_bp, url_prefix="/key-bundles")
    app.register_blueprint(key_loans_bp, url_prefix="/key-loans")
    app.register_blueprint(receipts_bp, url_prefix="/receipts")
    app.register_blueprint(key_events_bp, url_prefix="/key-events")
    app.register_blueprint(logs_bp, url_prefix="/logs")
    app.register_blueprint(files_bp, url_prefix="/files")
    app.register_blueprint(key_notes_bp, url_prefix="/key-notes")
    app.register_blueprint(signatures_bp)

    # 6) Errors
    register_error_handlers(app)

    # 7) Health check
    @app.get("/health")
    def health():
        return {"ok": True}, 200

    return app


if __name__ == "__main__":
    create_app().run(port=5090)
