from flask import Blueprint

key_notes_bp = Blueprint("key_notes", __name__)

from . import views  # noqa: E402,F401
