"""Certificate rendering - SVG layout and PDF conversion.

This module only handles the visual side of a certificate. It knows nothing
about storage or email; the redemption pipeline in
services/redemptions_service.py owns those.

The page is a single landscape sheet of 842x595 points (A4). Every optional
template field has a fallback so rendering never fails on missing data, and
no timestamp is embedded so identical input produces identical output.
"""

import asyncio
import html
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from models import CertificateTemplate

PAGE_WIDTH = 842
PAGE_HEIGHT = 595

FALLBACK_TITLE = "Continuing Education Certificate"
FALLBACK_ISSUER = "Issuer Organization"
FALLBACK_MODE = "live"
FOOTER_TEXT = "Generated by CEU Monster"

_LEFT_MARGIN = 60
_FACT_LINE_HEIGHT = 22

# Helvetica is a PDF base-14 font, available in every viewer without embedding.
_SANS_FONT = "Helvetica, Arial, sans-serif"


@dataclass(frozen=True)
class CertificateInput:
    """Everything the renderer needs for one certificate."""

    learner_name: str
    learner_email: str
    class_id: str
    redemption_id: str
    template: CertificateTemplate | None = None
    license_number: str | None = None


def format_ceu_hours(value: object) -> str:
    """Render hours the way people write them: 3, 1.5, 0."""
    if value is None:
        return "0"
    try:
        hours = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation:
        return "0"
    return format(hours.normalize(), "f")


def _mode_label(template: CertificateTemplate | None) -> str:
    mode = template.qr_mode if template is not None else None
    if mode is None:
        return FALLBACK_MODE
    return str(getattr(mode, "value", mode))


def build_fact_lines(data: CertificateInput) -> list[str]:
    """Key facts block; the license line only appears when one was given."""
    template = data.template
    lines = [
        f"CEU Hours: {format_ceu_hours(template.ceu_hours if template else None)}",
        f"Class ID: {data.class_id}",
        f"Certificate ID: {data.redemption_id}",
        f"Mode: {_mode_label(template)}",
    ]
    if data.license_number:
        lines.append(f"License Number: {data.license_number}")
    return lines


def _text(
    content: str,
    *,
    y: int,
    size: int,
    fill: str,
    bold: bool = False,
) -> str:
    weight = ' font-weight="bold"' if bold else ""
    return (
        f'  <text x="{_LEFT_MARGIN}" y="{y}" font-family="{_SANS_FONT}" '
        f'font-size="{size}" fill="{fill}"{weight}>{html.escape(content)}</text>'
    )


def generate_certificate_svg(data: CertificateInput) -> str:
    """Generate the certificate as an SVG document.

    Layout offsets are measured from the top of the page.
    """
    template = data.template

    title = (template.title if template and template.title else None) or FALLBACK_TITLE
    issuer = (
        template.issuer_org_name if template and template.issuer_org_name else None
    ) or FALLBACK_ISSUER
    instructor = (template.instructor_name or "").strip() if template else ""
    awarded_name = data.learner_name or data.learner_email

    elements = [
        _text(title, y=80, size=28, fill="#1a1a1a", bold=True),
        _text(f"Issued by: {issuer}", y=110, size=14, fill="#333333"),
    ]
    if instructor:
        elements.append(
            _text(f"Instructor: {instructor}", y=130, size=14, fill="#333333")
        )

    elements.append(_text("Awarded to:", y=165, size=14, fill="#262626", bold=True))
    elements.append(_text(awarded_name, y=190, size=22, fill="#000000", bold=True))

    for index, line in enumerate(build_fact_lines(data)):
        elements.append(
            _text(line, y=235 + index * _FACT_LINE_HEIGHT, size=14, fill="#333333")
        )

    elements.append(_text(FOOTER_TEXT, y=535, size=10, fill="#808080"))

    body = "\n".join(elements)
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 {PAGE_WIDTH} {PAGE_HEIGHT}" width="{PAGE_WIDTH}" height="{PAGE_HEIGHT}">
  <rect x="0" y="0" width="{PAGE_WIDTH}" height="{PAGE_HEIGHT}" fill="#ffffff"/>
{body}
</svg>"""


def svg_to_pdf(svg_content: str) -> bytes:
    """Convert SVG string to PDF bytes using CairoSVG.

    Raises:
        RuntimeError: If cairo library is not installed on the system
    """
    try:
        import cairosvg
    except OSError as e:
        if "cairo" in str(e).lower():
            raise RuntimeError(
                "PDF generation requires the Cairo library. "
                "On macOS: brew install cairo. "
                "On Ubuntu/Debian: apt-get install libcairo2-dev. "
                "On Alpine: apk add cairo-dev."
            ) from e
        raise

    return cairosvg.svg2pdf(bytestring=svg_content.encode("utf-8"))


def render_certificate_pdf(data: CertificateInput) -> bytes:
    return svg_to_pdf(generate_certificate_svg(data))


async def render_certificate_pdf_async(data: CertificateInput) -> bytes:
    """Render in a thread pool; CairoSVG conversion is CPU-bound."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, render_certificate_pdf, data)
