from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from io import BytesIO
from typing import Any, Protocol
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from reportlab.platypus.doctemplate import LayoutError

from app.documents.errors import RenderError


SENDER_LINES = (
    "JamesCRM Inc.",
    "123 Business Street, Suite 100",
    "San Francisco, CA 94107",
    "sales@jamescrm.com",
)


class DocumentRenderer(Protocol):
    def render(self, template_id: str, data: Mapping[str, Any]) -> bytes: ...


@dataclass(frozen=True, slots=True)
class TemplateLayout:
    title: str
    number_field: str
    number_label: str
    required_fields: tuple[str, ...]
    detail_fields: tuple[tuple[str, str], ...] = ()
    footer_field: str | None = None
    footer_label: str = ""
    show_tax: bool = True


TEMPLATES: dict[str, TemplateLayout] = {
    "quote-template": TemplateLayout(
        title="QUOTE",
        number_field="quote_number",
        number_label="Quote #",
        required_fields=("quote_number", "date", "company_name", "contact_name", "items", "subtotal", "tax", "total"),
        detail_fields=(("terms", "Terms"),),
        footer_field="notes",
        footer_label="Notes",
    ),
    "contract-template": TemplateLayout(
        title="CONTRACT",
        number_field="contract_number",
        number_label="Contract #",
        required_fields=("contract_number", "date", "company_name", "contact_name", "items", "total", "legal_terms"),
        detail_fields=(("start_date", "Start date"), ("end_date", "End date"), ("terms", "Terms")),
        footer_field="legal_terms",
        footer_label="Legal terms",
        show_tax=False,
    ),
    "invoice-template": TemplateLayout(
        title="INVOICE",
        number_field="invoice_number",
        number_label="Invoice #",
        required_fields=("invoice_number", "date", "company_name", "contact_name", "items", "subtotal", "tax", "total"),
        detail_fields=(("due_date", "Due date"), ("terms", "Terms")),
        footer_field="payment_instructions",
        footer_label="Payment instructions",
    ),
}


def _money(value: Any) -> str:
    return f"{Decimal(str(value)):,.2f}"


def _text(value: Any) -> str:
    return escape("" if value is None else str(value))


class ReportLabDocumentRenderer:
    """Renders the built-in templates to PDF.

    Output is byte-for-byte stable for identical input: reportlab runs in
    invariant mode, so no creation timestamp or random document id is embedded.
    """

    def __init__(self, templates: Mapping[str, TemplateLayout] | None = None) -> None:
        self._templates = dict(templates or TEMPLATES)

    def render(self, template_id: str, data: Mapping[str, Any]) -> bytes:
        layout = self._templates.get(template_id)
        if layout is None:
            raise RenderError(template_id, "unknown template")

        missing = [field for field in layout.required_fields if data.get(field) is None]
        if missing:
            raise RenderError(template_id, f"missing required fields: {', '.join(missing)}")

        items = data["items"]
        if isinstance(items, (str, bytes)) or not isinstance(items, Sequence):
            raise RenderError(template_id, "items must be a list")

        buffer = BytesIO()
        try:
            doc = SimpleDocTemplate(
                buffer,
                pagesize=A4,
                rightMargin=0.75 * inch,
                leftMargin=0.75 * inch,
                topMargin=0.75 * inch,
                bottomMargin=0.75 * inch,
                title=f"{layout.title.title()} {data[layout.number_field]}",
                author="JamesCRM",
                invariant=1,
            )
            doc.build(self._build_elements(layout, data, items))
        except (KeyError, TypeError, ValueError, ArithmeticError, LayoutError) as exc:
            raise RenderError(template_id, str(exc)) from exc
        return buffer.getvalue()

    def _build_elements(self, layout: TemplateLayout, data: Mapping[str, Any], items: Sequence[Mapping[str, Any]]) -> list[Any]:
        styles = getSampleStyleSheet()
        title_style = ParagraphStyle(
            "DocTitle",
            parent=styles["Heading1"],
            fontSize=22,
            textColor=colors.HexColor("#2C3E50"),
            alignment=2,
            fontName="Helvetica-Bold",
        )
        normal = styles["Normal"]
        small = ParagraphStyle("DocSmall", parent=normal, fontSize=9, textColor=colors.HexColor("#7F8C8D"))
        currency = str(data.get("currency") or "")

        elements: list[Any] = [
            Paragraph(layout.title, title_style),
            Paragraph(f"{layout.number_label}{_text(data[layout.number_field])}", normal),
            Paragraph(f"Date: {_text(data['date'])}", normal),
            Spacer(1, 0.25 * inch),
        ]

        parties = Table(
            [
                [Paragraph("<b>From</b>", normal), Paragraph("<b>To</b>", normal)],
                [
                    Paragraph("<br/>".join(_text(line) for line in SENDER_LINES), normal),
                    Paragraph(self._recipient_block(data), normal),
                ],
            ],
            colWidths=[3.3 * inch, 3.3 * inch],
        )
        parties.setStyle(TableStyle([("VALIGN", (0, 0), (-1, -1), "TOP")]))
        elements.extend([parties, Spacer(1, 0.25 * inch)])

        if data.get("title"):
            elements.append(Paragraph(f"<b>{_text(data['title'])}</b>", normal))
        for field, label in layout.detail_fields:
            if data.get(field):
                elements.append(Paragraph(f"{label}: {_text(data[field])}", normal))
        elements.append(Spacer(1, 0.2 * inch))

        rows: list[list[str]] = [["Description", "Quantity", "Unit price", "Total"]]
        for item in items:
            quantity = Decimal(str(item["quantity"]))
            unit_price = Decimal(str(item["unit_price"]))
            rows.append([str(item.get("description") or ""), f"{quantity.normalize():f}", _money(unit_price), _money(quantity * unit_price)])

        if layout.show_tax:
            rows.append(["", "", "Subtotal", _money(data["subtotal"])])
            rows.append(["", "", "Tax", _money(data["tax"])])
        rows.append(["", "", f"Total {currency}".strip(), _money(data["total"])])

        table = Table(rows, colWidths=[3.4 * inch, 0.9 * inch, 1.1 * inch, 1.2 * inch])
        table.setStyle(
            TableStyle(
                [
                    ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#3498DB")),
                    ("TEXTCOLOR", (0, 0), (-1, 0), colors.whitesmoke),
                    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                    ("ALIGN", (1, 1), (-1, -1), "RIGHT"),
                    ("GRID", (0, 0), (-1, len(items)), 0.5, colors.HexColor("#BDC3C7")),
                    ("FONTNAME", (2, -1), (-1, -1), "Helvetica-Bold"),
                ]
            )
        )
        elements.extend([table, Spacer(1, 0.3 * inch)])

        if layout.footer_field and data.get(layout.footer_field):
            elements.append(Paragraph(f"<b>{layout.footer_label}:</b> {_text(data[layout.footer_field])}", small))
        return elements

    @staticmethod
    def _recipient_block(data: Mapping[str, Any]) -> str:
        lines = [f"<b>{_text(data['company_name'])}</b>"]
        if data.get("company_address"):
            lines.append(_text(data["company_address"]))
        lines.append(f"Attn: {_text(data['contact_name'])}")
        if data.get("contact_email"):
            lines.append(f"Email: {_text(data['contact_email'])}")
        return "<br/>".join(lines)
