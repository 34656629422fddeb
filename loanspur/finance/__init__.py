from flask import Blueprint

# Loans, schedules and fee calculation share one blueprint under /api.
finance_bp = Blueprint("finance", __name__, url_prefix="/api")

from . import api, applications  # noqa: E402,F401
