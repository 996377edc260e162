"""Label sheet and compliance report rendering.

Uses WeasyPrint to render HTML templates to PDF. Label QR codes are
embedded as PNG data URLs so the HTML is self-contained.
"""

import io

from django.conf import settings
from django.template.loader import render_to_string
from django.utils import timezone

from orthodesk.core.conf import get_setting

from .labels import (
    LABEL_SIZES,
    PAGE_HEIGHT_IN,
    PAGE_WIDTH_IN,
    cycle_type_display,
    format_cycle_params,
    get_sheet_format,
    label_positions,
)
from .qr import render_qr_data_url
from .reports import compliance_context

# WeasyPrint is imported lazily inside _write_pdf() so the app imports
# without its native libraries.


def _write_pdf(html_content: str) -> bytes:
    """Render HTML to PDF bytes.

    Raises:
        RuntimeError: If WeasyPrint is not installed
    """
    try:
        from weasyprint import HTML
    except ImportError:
        raise RuntimeError(
            "WeasyPrint is required for PDF generation. "
            "Install with: pip install weasyprint"
        )

    base_url = str(getattr(settings, "BASE_DIR", "."))
    pdf_buffer = io.BytesIO()
    HTML(string=html_content, base_url=base_url).write_pdf(pdf_buffer)
    return pdf_buffer.getvalue()


def _practice_name(clinic) -> str:
    return clinic.name if clinic is not None else get_setting("PRACTICE_NAME")


class LabelPrintService:
    """Renders package labels onto a sheet of label stock."""

    TEMPLATE = "sterilization/labels.html"

    def __init__(self, clinic):
        self.clinic = clinic

    def get_context(self, packages, sheet_format: str = "4x2", start_position: int = 0) -> dict:
        fmt = get_sheet_format(sheet_format)
        positions = label_positions(sheet_format, len(packages), start_position)

        pages = []
        for package, position in zip(packages, positions):
            if position.page >= len(pages):
                pages.append([])
            cycle = package.cycle
            pages[position.page].append({
                "package": package,
                "position": position,
                "qr_data_url": render_qr_data_url(package.qr_code, fmt.qr_size),
                "cycle_number": cycle.cycle_number,
                "cycle_type": cycle_type_display(cycle.cycle_type),
                "cycle_params": format_cycle_params(cycle.temperature, cycle.exposure_time),
                "instruments": ", ".join(package.instrument_names),
            })

        return {
            "practice_name": _practice_name(self.clinic),
            "format": fmt,
            "label_size": LABEL_SIZES.get(sheet_format),
            "page_width": PAGE_WIDTH_IN,
            "page_height": PAGE_HEIGHT_IN,
            "pages": pages,
        }

    def render_html(self, packages, sheet_format: str = "4x2", start_position: int = 0) -> str:
        """Render labels to an HTML string.

        Raises:
            ValueError: On an unknown format or start_position out of range
        """
        return render_to_string(self.TEMPLATE, self.get_context(packages, sheet_format, start_position))

    def render_pdf(self, packages, sheet_format: str = "4x2", start_position: int = 0) -> bytes:
        return _write_pdf(self.render_html(packages, sheet_format, start_position))

    def get_filename(self) -> str:
        return f"sterilization-labels-{timezone.localdate():%Y%m%d}.pdf"


class ComplianceReportService:
    """Cycles, BI results, recalls and compliance logs for a period."""

    TEMPLATE = "sterilization/compliance_report.html"

    def __init__(self, clinic):
        self.clinic = clinic

    def get_context(self, start=None, end=None) -> dict:
        context = compliance_context(self.clinic, start, end)
        context.update({
            "practice_name": _practice_name(self.clinic),
            "generated_at": timezone.now(),
        })
        return context

    def render_html(self, start=None, end=None) -> str:
        return render_to_string(self.TEMPLATE, self.get_context(start, end))

    def render_pdf(self, start=None, end=None) -> bytes:
        return _write_pdf(self.render_html(start, end))

    def get_filename(self, start, end) -> str:
        return f"sterilization-compliance-{start:%Y%m%d}-{end:%Y%m%d}.pdf"
