"""Key loans: CRUD plus the loan/return/switch/transfer workflows."""

from flask import Blueprint

key_loans_bp = Blueprint("key_loans", __name__)

from . import views  # noqa: E402,F401
