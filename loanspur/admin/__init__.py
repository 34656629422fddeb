from flask import Blueprint

admin_bp = Blueprint("admin", __name__, url_prefix="/api")
# Registered only when the groups feature is enabled.
groups_bp = Blueprint("groups", __name__, url_prefix="/api")

from . import api, groups  # noqa: E402,F401
