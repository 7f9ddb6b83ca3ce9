from flask import Blueprint

key_systems_bp = Blueprint("key_systems", __name__)

from . import views  # noqa: E402,F401
