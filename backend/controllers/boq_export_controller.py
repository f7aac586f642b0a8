"""
BOQ Excel & PDF Download Controller
"""
from datetime import date
from io import BytesIO

from flask import send_file

from config.logging import get_logger
from services.boq_view import build_export_data
from utils.boq_excel_generator import generate_boq_excel
from utils.boq_pdf_generator import generate_boq_pdf
from utils.formatting import sanitize_filename
from utils.toast import error_toast
from utils.validators import NotFoundError

log = get_logger()

XLSX_MIMETYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'


def export_filename(title, extension):
    return f"BOQ_{sanitize_filename(title)}_{date.today().year}.{extension}"


def download_boq_excel(boq_id):
    """
    Download BOQ as Excel
    GET /boq/<boq_id>/export/excel
    """
    try:
        data = build_export_data(boq_id)
        xlsx_bytes = generate_boq_excel(data)

        return send_file(
            BytesIO(xlsx_bytes),
            mimetype=XLSX_MIMETYPE,
            as_attachment=True,
            download_name=export_filename(data.title, 'xlsx')
        )

    except NotFoundError as e:
        log.warning(f"export_excel: BOQ {boq_id} not found")
        return error_toast(404, e.message)
    except Exception as e:
        log.error(f"export_excel: failed to generate for BOQ {boq_id}: {str(e)}")
        return error_toast(500, "Failed to generate Excel file")


def download_boq_pdf(boq_id):
    """
    Download BOQ as PDF
    GET /boq/<boq_id>/export/pdf
    """
    try:
        data = build_export_data(boq_id)
        pdf_bytes = generate_boq_pdf(data)

        return send_file(
            BytesIO(pdf_bytes),
            mimetype='application/pdf',
            as_attachment=True,
            download_name=export_filename(data.title, 'pdf')
        )

    except NotFoundError as e:
        log.warning(f"export_pdf: BOQ {boq_id} not found")
        return error_toast(404, e.message)
    except Exception as e:
        log.error(f"export_pdf: failed to generate for BOQ {boq_id}: {str(e)}")
        return error_toast(500, "Failed to generate PDF file")
