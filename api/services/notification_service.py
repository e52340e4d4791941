"""Certificate email delivery through the Postmark HTTP API.

The notifier never raises to its caller: every outcome is a SendResult.
Failures carry the provider's own message text so it can be stored on the
redemption record as-is.

RETRY: connection failures, 5xx and 429 responses are retried (3 attempts,
exponential backoff with jitter). Timeouts are not retried because the
message may already have been accepted.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Protocol

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from core.config import get_settings
from core.logger import get_logger
from rendering.emails import build_certificate_html, build_certificate_text

logger = get_logger(__name__)


@dataclass(frozen=True)
class CertificateEmail:
    to_email: str
    to_name: str
    signed_url: str
    subject: str


@dataclass(frozen=True)
class SendResult:
    ok: bool
    error: str | None = None
    message_id: str | None = None


class Notifier(Protocol):
    @property
    def is_configured(self) -> bool: ...

    async def send(self, email: CertificateEmail) -> SendResult: ...


class PostmarkError(Exception):
    """Postmark rejected the message (4xx other than 429)."""

    def __init__(self, message: str, error_code: int | None = None):
        super().__init__(message)
        self.error_code = error_code


class PostmarkServerError(PostmarkError):
    """Postmark returned a 5xx or 429 (retriable)."""


RETRIABLE_EXCEPTIONS: tuple[type[Exception], ...] = (
    httpx.ConnectError,
    PostmarkServerError,
)


def _provider_message(response: httpx.Response) -> tuple[str, int | None]:
    """Postmark's own error text, falling back to the HTTP status line."""
    try:
        body = response.json()
    except (json.JSONDecodeError, ValueError):
        body = None
    if isinstance(body, dict) and body.get("Message"):
        return str(body["Message"]), body.get("ErrorCode")
    return f"HTTP {response.status_code} {response.reason_phrase}".strip(), None


@retry(
    retry=retry_if_exception_type(RETRIABLE_EXCEPTIONS),
    stop=stop_after_attempt(3),
    wait=wait_exponential_jitter(initial=0.2, max=2),
    reraise=True,
)
async def _post_email(
    client: httpx.AsyncClient,
    url: str,
    server_token: str,
    payload: dict,
) -> dict:
    response = await client.post(
        url,
        json=payload,
        headers={
            "Accept": "application/json",
            "Content-Type": "application/json",
            "X-Postmark-Server-Token": server_token,
        },
    )

    if response.status_code >= 500 or response.status_code == 429:
        message, code = _provider_message(response)
        raise PostmarkServerError(message, code)

    if response.status_code != 200:
        message, code = _provider_message(response)
        raise PostmarkError(message, code)

    # 200 means accepted; a missing or odd body only costs us the message id
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


class PostmarkNotifier:
    """Notifier that sends certificate emails through Postmark."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        server_token: str,
        sender: str,
        message_stream: str = "outbound",
        bcc: str | None = None,
        api_url: str = "https://api.postmarkapp.com",
    ) -> None:
        self._client = client
        self._server_token = server_token
        self._sender = sender
        self._message_stream = message_stream
        self._bcc = bcc
        self._url = f"{api_url.rstrip('/')}/email"

    @classmethod
    def from_settings(cls, client: httpx.AsyncClient) -> PostmarkNotifier:
        settings = get_settings()
        return cls(
            client,
            server_token=settings.postmark_api_key,
            sender=settings.postmark_from,
            message_stream=settings.postmark_message_stream,
            bcc=settings.cert_bcc_email if settings.cert_bcc_enabled else None,
            api_url=settings.postmark_api_url,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._server_token)

    def build_payload(self, email: CertificateEmail) -> dict:
        payload = {
            "From": self._sender,
            "To": email.to_email,
            "Subject": email.subject,
            "TextBody": build_certificate_text(email.to_name, email.signed_url),
            "HtmlBody": build_certificate_html(
                email.to_name, email.signed_url, email.subject
            ),
            "MessageStream": self._message_stream,
        }
        if self._bcc:
            payload["Bcc"] = self._bcc
        return payload

    async def send(self, email: CertificateEmail) -> SendResult:
        if not self.is_configured:
            return SendResult(ok=False, error="Postmark server token not configured")

        logger.info(
            "email.sending",
            to=email.to_email,
            message_stream=self._message_stream,
        )
        try:
            body = await _post_email(
                self._client,
                self._url,
                self._server_token,
                self.build_payload(email),
            )
        except PostmarkError as e:
            logger.error(
                "email.send_failed",
                to=email.to_email,
                error=str(e),
                error_code=e.error_code,
            )
            return SendResult(ok=False, error=str(e))
        except httpx.HTTPError as e:
            logger.error("email.send_failed", to=email.to_email, error=str(e))
            return SendResult(ok=False, error=str(e) or type(e).__name__)
        except Exception as e:
            logger.exception("email.send_failed", to=email.to_email, error=str(e))
            return SendResult(ok=False, error=str(e) or type(e).__name__)

        logger.info("email.sent", to=email.to_email)
        return SendResult(ok=True, message_id=body.get("MessageID"))
