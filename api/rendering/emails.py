"""Certificate email bodies.

Both parts carry the same content: greeting, explanation, the download link
and a disclaimer. The HTML part is a Jinja2 template with autoescaping on.
"""

from functools import lru_cache
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

BRAND_NAME = "CEU Monster"
BRAND_URL = "https://ceumonster.com"
BRAND_LOGO_URL = (
    "https://storage.googleapis.com/public-ceu-monster-assets/logo-dark.png"
)

_templates_dir = Path(__file__).resolve().parent / "templates"


@lru_cache(maxsize=1)
def _get_environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(_templates_dir)),
        autoescape=select_autoescape(["html"]),
        keep_trailing_newline=True,
    )


def build_certificate_text(to_name: str, signed_url: str) -> str:
    return (
        f"Hi {to_name},\n\n"
        "Thanks for attending! Your CEU certificate is ready. Download it here:\n"
        f"{signed_url}\n\n"
        "If you didn’t expect this, please ignore this email.\n\n"
        f"— {BRAND_NAME}"
    )


def build_certificate_html(to_name: str, signed_url: str, subject: str) -> str:
    template = _get_environment().get_template("emails/certificate_ready.html")
    return template.render(
        to_name=to_name,
        signed_url=signed_url,
        subject=subject,
        brand_name=BRAND_NAME,
        brand_url=BRAND_URL,
        brand_logo_url=BRAND_LOGO_URL,
    )
