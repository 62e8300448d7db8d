# storefront/report/routes.py
from __future__ import annotations
from flask import request, Response

from ..utils.decorators import role_required
from ..utils.errors import result_response
from ..services.report_service import sales_report
from . import bp


def _report():
    return sales_report(
        request.args.get("filter_type", "daily"),
        start=request.args.get("start"),
        end=request.args.get("end"),
    )


@bp.get("/sales")
@role_required("admin")
def sales():
    return result_response(_report())


@bp.get("/sales.csv")
@role_required("admin")
def sales_csv():
    res = _report()
    if not res.ok:
        return result_response(res)
    report = res.data
    filename = f"sales-report-{report.filter_type}-{report.start:%Y%m%d}.csv"
    return Response(
        report.to_csv(),
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
