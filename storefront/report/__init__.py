from flask import Blueprint

bp = Blueprint("report", __name__, url_prefix="/api/admin/reports")

from . import routes  # noqa: E402,F401
