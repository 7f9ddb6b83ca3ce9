from flask import Blueprint

receipts_bp = Blueprint("receipts", __name__)

from . import views  # noqa: E402,F401
