"""HTML/PDF documents and Excel exports shared by the loan and savings APIs."""

from io import BytesIO

import pandas as pd
from flask import current_app, make_response, render_template

from .config import feature_enabled
from .errors import AppError

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def require_advanced_reporting():
    if not feature_enabled(current_app.config, "advanced_reporting"):
        raise AppError("Advanced reporting is not enabled", "FEATURE_DISABLED", 403)


def excel_response(rows, columns, filename, sheet_name):
    frame = pd.DataFrame(rows, columns=columns)
    output = BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        frame.to_excel(writer, index=False, sheet_name=sheet_name)
    output.seek(0)
    response = make_response(output.read())
    response.headers["Content-Disposition"] = f'attachment; filename="{filename}"'
    response.headers["Content-Type"] = XLSX_MIMETYPE
    return response


def render_document(template, filename, context, action):
    """Serve an HTML document as a page, a print view, or a PDF download."""
    html = render_template(template, **context)
    if action == "download":
        from xhtml2pdf import pisa
        pdf = BytesIO()
        status = pisa.CreatePDF(html, dest=pdf, encoding="utf-8")
        if status.err:
            raise AppError("Failed to render PDF", "PDF_ERROR", 500)
        response = make_response(pdf.getvalue())
        response.headers["Content-Type"] = "application/pdf"
        response.headers["Content-Disposition"] = f'attachment; filename="{filename}.pdf"'
        return response
    if action == "print":
        html += "<script>window.onload = function(){window.print();}</script>"
    return html
