"""Rendering module for presentation concerns.

This module handles all presentation/rendering logic:
- Certificate SVG generation and PDF conversion
- Certificate email bodies (plain text + branded HTML)

This separates presentation concerns from business logic in services.
"""

from rendering.certificates import (
    CertificateInput,
    generate_certificate_svg,
    render_certificate_pdf,
    render_certificate_pdf_async,
    svg_to_pdf,
)
from rendering.emails import build_certificate_html, build_certificate_text

__all__ = [
    "CertificateInput",
    "build_certificate_html",
    "build_certificate_text",
    "generate_certificate_svg",
    "render_certificate_pdf",
    "render_certificate_pdf_async",
    "svg_to_pdf",
]
