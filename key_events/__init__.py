from flask import Blueprint

key_events_bp = Blueprint("key_events", __name__)

from . import views  # noqa: E402,F401
