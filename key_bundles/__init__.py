from flask import Blueprint

key_bundles_bp = Blueprint("key_bundles", __name__)

from . import views  # noqa: E402,F401
