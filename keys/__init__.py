from flask import Blueprint

keys_bp = Blueprint("keys", __name__)

from . import views  # noqa: E402,F401
