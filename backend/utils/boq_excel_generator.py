"""
BOQ Excel Generator
Writes the flattened BOQ rows and totals to an .xlsx workbook
"""
import re
from io import BytesIO

import openpyxl
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side

from utils.formatting import format_inr, format_percent

COLUMNS = ['A', 'B', 'C', 'D', 'E', 'F', 'G', 'H']
HEADERS = ["#", "Description", "Qty", "UOM", "Quoted Price", "Budgeted Price", "HSN", "GST%"]
WIDTHS = [6, 40, 10, 10, 18, 18, 14, 8]

_INVALID_SHEET_CHARS = re.compile(r'[\[\]:*?/\\]')
_FORMULA_PREFIXES = ('=', '+', '-', '@', '\t', '\r')


def sanitize_excel_cell(value: str) -> str:
    """Prefix text that Excel would evaluate as a formula with a single quote"""
    if value and value.startswith(_FORMULA_PREFIXES):
        return "'" + value
    return value or ''


def sheet_title(title: str) -> str:
    title = _INVALID_SHEET_CHARS.sub('', title or '').strip()
    return title[:31] or "BOQ"


def generate_boq_excel(export_data) -> bytes:
    """
    Generate the BOQ workbook.

    Rows 1-3 hold title, reference and date, row 5 the column headers, data
    starts at row 6 and the totals follow after one blank row.
    """
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = sheet_title(export_data.title)

    last_col = COLUMNS[-1]

    # Define styles
    title_font = Font(bold=True, size=16)
    subtitle_font = Font(size=11)
    header_font = Font(bold=True, size=11, color="FFFFFF")
    main_font = Font(bold=True, size=10)
    sub_font = Font(size=10)
    summary_font = Font(bold=True, size=11)

    header_fill = PatternFill(start_color="333333", end_color="333333", fill_type="solid")

    thin_border = Border(
        left=Side(style='thin'),
        right=Side(style='thin'),
        top=Side(style='thin'),
        bottom=Side(style='thin')
    )

    for col, width in zip(COLUMNS, WIDTHS):
        ws.column_dimensions[col].width = width

    # Header block
    ws.merge_cells(f'A1:{last_col}1')
    ws['A1'] = sanitize_excel_cell(export_data.title)
    ws['A1'].font = title_font

    if export_data.reference_number:
        ws.merge_cells(f'A2:{last_col}2')
        ws['A2'] = f"Ref: {sanitize_excel_cell(export_data.reference_number)}"
        ws['A2'].font = subtitle_font

    ws.merge_cells(f'A3:{last_col}3')
    ws['A3'] = f"Date: {export_data.created_date}"
    ws['A3'].font = subtitle_font

    for col, header in zip(COLUMNS, HEADERS):
        cell = ws[f'{col}5']
        cell.value = header
        cell.font = header_font
        cell.fill = header_fill
        cell.border = thin_border
        cell.alignment = Alignment(horizontal='center', vertical='center')

    row = 6
    for export_row in export_data.rows:
        indent = "  " * export_row.level
        values = [
            export_row.index,
            sanitize_excel_cell(indent + export_row.description),
            export_row.qty,
            sanitize_excel_cell(export_row.uom),
            format_inr(export_row.quoted_price),
            format_inr(export_row.budgeted_price),
            sanitize_excel_cell(export_row.hsn_code),
            export_row.gst_percent,
        ]
        font = main_font if export_row.level == 0 else sub_font
        for col, value in zip(COLUMNS, values):
            cell = ws[f'{col}{row}']
            cell.value = value
            cell.font = font
            cell.border = thin_border
        row += 1

    # Totals
    totals = export_data.totals
    row += 1
    summary = [
        ("Total Quoted:", 'E', format_inr(totals.total_quoted)),
        ("Total Budgeted:", 'F', format_inr(totals.total_budgeted)),
        (f"Margin ({format_percent(totals.margin_percent)}):", 'E', format_inr(totals.margin)),
    ]
    for label, value_col, value in summary:
        ws[f'D{row}'] = label
        ws[f'D{row}'].font = summary_font
        ws[f'D{row}'].alignment = Alignment(horizontal='right')
        ws[f'{value_col}{row}'] = value
        ws[f'{value_col}{row}'].font = summary_font
        row += 1

    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()
