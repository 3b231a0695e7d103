"""Email notifier backed by the Brevo transactional email API.

For development: with no API key configured, the notifier runs in simulate
mode and only logs the email it would have sent, like the payment
simulation in other services.

Delivery failures (network errors, 4xx/5xx from Brevo) are retried with
exponential backoff for transient cases and then logged. They are never
raised: a lost email must not undo a committed escrow transition.
"""

from __future__ import annotations

from html import escape
from typing import TYPE_CHECKING, Any

import httpx
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from middleman_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from tenacity.wait import wait_base

    from middleman_escrow.config import Settings
    from middleman_escrow.domain.notifier_protocol import EscrowNotice

logger = get_logger(__name__)


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500 or exc.response.status_code == 429
    return False


def render_escrow_email(notice: EscrowNotice) -> str:
    """Render the HTML body of a middleman notification."""
    code_block = (
        f"<p>Your confirmation code is: <strong>{escape(notice.code)}</strong></p>"
        if notice.code
        else ""
    )
    link = escape(notice.action_link, quote=True)
    return f"""
      <h1>Hello {escape(notice.role)},</h1>
      <p>{escape(notice.headline)}</p>
      <ul>
        <li>Category: {escape(notice.category)}</li>
        <li>Price: {escape(notice.currency)} {notice.price}</li>
      </ul>
      {code_block}
      <p>Please follow the link below to proceed with your action:</p>
      <a href="{link}">{link}</a>
      <p>Thank you for using Legit Prove's Middleman Service!</p>
    """


class BrevoEmailNotifier:
    """Sends escrow notices through Brevo's SMTP API."""

    def __init__(
        self,
        api_key: str = "",
        api_url: str = "https://api.brevo.com/v3/smtp/email",
        sender_name: str = "Legit Prove Middleman Service",
        sender_address: str = "no-reply@legitprove.com",
        timeout_seconds: float = 10.0,
        max_attempts: int = 3,
        wait: wait_base | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the notifier.

        Args:
            api_key: Brevo API key. Empty means simulate mode (log only).
            wait: tenacity wait strategy between retries (tests pass wait_none()).
            transport: Optional httpx transport (tests pass httpx.MockTransport).
        """
        self._api_key = api_key
        self._api_url = api_url
        self._sender = {"name": sender_name, "email": sender_address}
        self._timeout = timeout_seconds
        self._max_attempts = max_attempts
        self._wait = wait or wait_exponential(multiplier=1, min=1, max=8)
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> BrevoEmailNotifier:
        return cls(
            api_key=settings.brevo_api_key,
            api_url=settings.brevo_api_url,
            sender_name=settings.email_sender_name,
            sender_address=settings.email_sender_address,
            timeout_seconds=settings.email_timeout_seconds,
            max_attempts=settings.email_max_attempts,
        )

    @property
    def simulate(self) -> bool:
        return not self._api_key

    def _payload(self, notice: EscrowNotice) -> dict[str, Any]:
        return {
            "sender": self._sender,
            "to": [{"email": notice.recipient}],
            "subject": notice.subject,
            "htmlContent": render_escrow_email(notice),
        }

    async def send(self, notice: EscrowNotice) -> bool:
        """Deliver a notice. Returns False (and logs) on any delivery failure."""
        if self.simulate:
            logger.info(
                "email.simulated",
                recipient=notice.recipient,
                subject=notice.subject,
                has_code=notice.code is not None,
            )
            return True

        try:
            await self._post(self._payload(notice))
        except (httpx.HTTPError, RetryError) as exc:
            logger.error(
                "email.delivery_failed",
                recipient=notice.recipient,
                subject=notice.subject,
                error=str(exc),
            )
            return False

        logger.info("email.sent", recipient=notice.recipient, subject=notice.subject)
        return True

    async def _post(self, payload: dict[str, Any]) -> None:
        async with httpx.AsyncClient(
            timeout=self._timeout,
            transport=self._transport,
            headers={"api-key": self._api_key, "Content-Type": "application/json"},
        ) as client:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._max_attempts),
                wait=self._wait,
                retry=retry_if_exception(_is_transient),
                reraise=True,
            ):
                with attempt:
                    response = await client.post(self._api_url, json=payload)
                    response.raise_for_status()
