"""
BOQ PDF Generator
A4 landscape table of the flattened BOQ with a totals block
"""
from datetime import date
from io import BytesIO
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_LEFT
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from utils.formatting import format_inr, format_percent, format_qty

# Built-in PDF fonts have no rupee glyph
PDF_CURRENCY_SYMBOL = "Rs. "

HEADER_BG = colors.HexColor('#212529')
MAIN_ROW_BG = colors.HexColor('#F1F3F5')
GRID_COLOR = colors.HexColor('#CED4DA')


class NumberedCanvas(canvas.Canvas):
    """Defers page output until the total page count is known"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._saved_page_states = []

    def showPage(self):
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        total = len(self._saved_page_states)
        for state in self._saved_page_states:
            self.__dict__.update(state)
            self._draw_page_number(total)
            super().showPage()
        super().save()

    def _draw_page_number(self, total):
        self.saveState()
        self.setFont('Helvetica', 7)
        self.setFillColor(colors.HexColor('#787878'))
        page_width, _ = landscape(A4)
        self.drawRightString(page_width - 10 * mm, 6 * mm, f"Page {self.getPageNumber()} of {total}")
        self.restoreState()


class BOQPDFGenerator:
    """Renders ExportData to PDF bytes"""

    COLUMN_WIDTHS = [14 * mm, 104 * mm, 18 * mm, 18 * mm, 34 * mm, 34 * mm, 24 * mm, 16 * mm]

    def __init__(self):
        self.styles = getSampleStyleSheet()
        self._setup_styles()

    def _setup_styles(self):
        self.styles.add(ParagraphStyle(
            name='BOQTitle',
            parent=self.styles['Title'],
            fontSize=16,
            alignment=TA_CENTER,
            spaceAfter=4,
        ))
        self.styles.add(ParagraphStyle(
            name='BOQMeta',
            parent=self.styles['Normal'],
            fontSize=9,
            textColor=colors.HexColor('#505050'),
        ))
        self.styles.add(ParagraphStyle(
            name='BOQCell',
            parent=self.styles['Normal'],
            fontSize=8,
            leading=10,
            alignment=TA_LEFT,
        ))
        self.styles.add(ParagraphStyle(
            name='BOQCellBold',
            parent=self.styles['BOQCell'],
            fontName='Helvetica-Bold',
        ))

    def _money(self, amount):
        return format_inr(amount, symbol=PDF_CURRENCY_SYMBOL)

    def _header(self, export_data):
        elements = [Paragraph(self._escape(export_data.title), self.styles['BOQTitle'])]
        meta = Table(
            [[
                Paragraph(f"Reference: {self._escape(export_data.reference_number)}", self.styles['BOQMeta']),
                Paragraph(f"Date: {export_data.created_date}", self.styles['BOQMeta']),
            ]],
            colWidths=[sum(self.COLUMN_WIDTHS) / 2] * 2,
        )
        meta.setStyle(TableStyle([('ALIGN', (1, 0), (1, 0), 'RIGHT')]))
        elements.append(meta)
        elements.append(Spacer(1, 4 * mm))
        return elements

    def _items_table(self, export_data):
        data = [["#", "Description", "Qty", "UOM", "Quoted Price", "Budgeted Price", "HSN", "GST%"]]
        main_rows = []
        for row_number, row in enumerate(export_data.rows, start=1):
            style = self.styles['BOQCellBold'] if row.level == 0 else self.styles['BOQCell']
            indent = "&nbsp;" * (4 * row.level)
            data.append([
                row.index,
                Paragraph(indent + self._escape(row.description), style),
                format_qty(row.qty),
                row.uom,
                self._money(row.quoted_price),
                self._money(row.budgeted_price),
                row.hsn_code,
                f"{row.gst_percent:.0f}%",
            ])
            if row.level == 0:
                main_rows.append(row_number)

        table = Table(data, colWidths=self.COLUMN_WIDTHS, repeatRows=1)
        commands = [
            ('BACKGROUND', (0, 0), (-1, 0), HEADER_BG),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, -1), 8),
            ('ALIGN', (0, 0), (-1, 0), 'CENTER'),
            ('ALIGN', (2, 1), (2, -1), 'RIGHT'),
            ('ALIGN', (4, 1), (5, -1), 'RIGHT'),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
            ('GRID', (0, 0), (-1, -1), 0.5, GRID_COLOR),
        ]
        for row_number in main_rows:
            commands.append(('BACKGROUND', (0, row_number), (-1, row_number), MAIN_ROW_BG))
            commands.append(('FONTNAME', (0, row_number), (-1, row_number), 'Helvetica-Bold'))
        table.setStyle(TableStyle(commands))
        return table

    def _summary(self, export_data):
        totals = export_data.totals
        data = [
            ["Total Quoted:", self._money(totals.total_quoted)],
            ["Total Budgeted:", self._money(totals.total_budgeted)],
            [f"Margin ({format_percent(totals.margin_percent)}):", self._money(totals.margin)],
        ]
        margin_color = colors.HexColor('#198754') if totals.is_positive_margin else colors.HexColor('#DC3545')
        table = Table(data, colWidths=[50 * mm, 40 * mm], hAlign='RIGHT')
        table.setStyle(TableStyle([
            ('FONTNAME', (0, 0), (-1, -1), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, -1), 10),
            ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
            ('TEXTCOLOR', (1, 2), (1, 2), margin_color),
            ('LINEABOVE', (0, 0), (-1, 0), 0.5, GRID_COLOR),
        ]))
        return table

    @staticmethod
    def _escape(text):
        return escape(text or '')

    def generate(self, export_data) -> bytes:
        buffer = BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=landscape(A4),
            leftMargin=10 * mm,
            rightMargin=10 * mm,
            topMargin=10 * mm,
            bottomMargin=12 * mm,
            title=export_data.title,
        )

        elements = self._header(export_data)
        elements.append(self._items_table(export_data))
        elements.append(Spacer(1, 6 * mm))
        elements.append(self._summary(export_data))
        elements.append(Spacer(1, 4 * mm))
        elements.append(Paragraph(
            f"Generated on {date.today().strftime('%d %b %Y')}", self.styles['BOQMeta']
        ))

        doc.build(elements, canvasmaker=NumberedCanvas)
        return buffer.getvalue()


def generate_boq_pdf(export_data) -> bytes:
    return BOQPDFGenerator().generate(export_data)
