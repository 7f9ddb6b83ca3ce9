# core_app.py
"""Factory for the core orchestration service that fronts the keys service."""
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from config import get_config
from core import core_bp
from utilities.logger import configure_app_logging


def create_core_app(test_config=None):
    app = Flask(__name__)

    app.config.from_object(get_config())
    if test_config:
        app.config.update(test_config)
    configure_app_logging(app)

    app.register_blueprint(core_bp, url_prefix="/core")

    @app.errorhandler(HTTPException)
    def handle_http_exception(exc):
        return jsonify({"reason": exc.description}), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected(exc):
        app.logger.exception("Unhandled error")
        return jsonify({"errorMessage": str(exc), "message": "Internal server error"}), 500

    @app.get("/health")
    def health():
        return {"ok": True}, 200

    return app


if __name__ == "__main__":
    create_core_app().run(port=5010)
