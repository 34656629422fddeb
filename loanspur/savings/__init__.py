from flask import Blueprint

savings_bp = Blueprint("savings", __name__, url_prefix="/api")

from . import api  # noqa: E402,F401
