from flask import Blueprint

# Routes carry their own paths: /signatures/... and /webhooks/simplesign
signatures_bp = Blueprint("signatures", __name__)

from . import views  # noqa: E402,F401
