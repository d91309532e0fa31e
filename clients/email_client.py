"""
Outbound email for login links, password resets and redemption receipts.

Two transports, both plain HTTPS POSTs via requests:
- ResendClient: the transactional provider (bearer API key).
- WebhookMailClient: a hosted function that renders link emails itself.

Mailer tries Resend first and falls back to the webhook for link emails.
Every send is best-effort: Mailer methods return False instead of raising,
so no primary operation ever fails because mail did.
"""

import html
import json
import logging
import os
from decimal import Decimal

import requests
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


class EmailGatewayError(Exception):
    """Raised when an email provider request fails."""


class EmailConfig(BaseModel):
    """Mail settings. Every field is optional; missing ones disable a transport."""

    resend_api_key: str | None = None
    from_email: str = Field(default="onboarding@resend.dev")
    webhook_url: str | None = None
    webhook_api_key: str | None = None
    timeout_seconds: int = Field(default=10, ge=1, le=60)

    @classmethod
    def from_env(cls) -> "EmailConfig":
        return cls(
            resend_api_key=os.getenv("RESEND_API_KEY") or None,
            from_email=os.getenv("FROM_EMAIL") or "onboarding@resend.dev",
            webhook_url=os.getenv("MAIL_WEBHOOK_URL") or None,
            webhook_api_key=os.getenv("MAIL_WEBHOOK_API_KEY") or None,
        )


class ResendClient:
    """Send HTML email through the Resend HTTP API."""

    def __init__(self, api_key: str, from_email: str, timeout_seconds: int = 10):
        """
        Raises:
            ValueError: If api_key or from_email is empty
        """
        if not api_key:
            raise ValueError("api_key is required")
        if not from_email:
            raise ValueError("from_email is required")

        self.api_key = api_key
        self.from_email = from_email
        self.timeout_seconds = timeout_seconds

    def send(self, to: str, subject: str, html_body: str) -> None:
        """
        Send one email.

        Raises:
            EmailGatewayError: On connection failure or non-2xx response
        """
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "from": self.from_email,
            "to": to,
            "subject": subject,
            "html": html_body,
        }

        try:
            response = requests.post(
                RESEND_API_URL,
                data=json.dumps(payload),
                headers=headers,
                timeout=self.timeout_seconds,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Resend connection failed: {e}")
            raise EmailGatewayError(f"Connection failed: {e}")

        if not response.ok:
            logger.error(f"Resend API error {response.status_code}: {response.text}")
            raise EmailGatewayError(f"Resend error: HTTP {response.status_code}")


class WebhookMailClient:
    """Post link-email requests to a hosted mail function."""

    def __init__(self, url: str, api_key: str | None = None, timeout_seconds: int = 10):
        if not url:
            raise ValueError("url is required")

        self.url = url
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds

    def send_link(
        self,
        to: str,
        name: str,
        subject: str,
        link: str,
        expires_in_minutes: int,
        button_text: str,
    ) -> None:
        """
        Ask the webhook to send a link email.

        Raises:
            EmailGatewayError: On connection failure or non-2xx response
        """
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        payload = {
            "to": to,
            "name": name,
            "subject": subject,
            "magicLink": link,
            "expiresInMinutes": expires_in_minutes,
            "buttonText": button_text,
        }

        try:
            response = requests.post(
                self.url,
                data=json.dumps(payload),
                headers=headers,
                timeout=self.timeout_seconds,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Mail webhook connection failed: {e}")
            raise EmailGatewayError(f"Connection failed: {e}")

        if not response.ok:
            logger.error(f"Mail webhook error {response.status_code}: {response.text}")
            raise EmailGatewayError(f"Webhook error: HTTP {response.status_code}")


def _link_email_html(greeting_name: str, intro: str, link: str, button_text: str, note: str) -> str:
    name = html.escape(greeting_name)
    href = html.escape(link, quote=True)
    return (
        "<!DOCTYPE html><html><body>"
        f"<p>Hi {name},</p>"
        f"<p>{intro}</p>"
        f'<p><a href="{href}">{html.escape(button_text)}</a></p>'
        f"<p>{note}</p>"
        f'<p>Or paste this URL into your browser:<br>{html.escape(link)}</p>'
        "</body></html>"
    )


class Mailer:
    """
    Best-effort mail dispatch with provider fallback.

    Usage:
        mailer = Mailer.from_config(EmailConfig.from_env())
        sent = mailer.send_magic_link(...)  # never raises
    """

    def __init__(
        self,
        resend: ResendClient | None = None,
        webhook: WebhookMailClient | None = None,
    ):
        self._resend = resend
        self._webhook = webhook

    @classmethod
    def from_config(cls, config: EmailConfig) -> "Mailer":
        resend = None
        if config.resend_api_key:
            resend = ResendClient(config.resend_api_key, config.from_email, config.timeout_seconds)

        webhook = None
        if config.webhook_url:
            webhook = WebhookMailClient(config.webhook_url, config.webhook_api_key, config.timeout_seconds)

        if resend is None and webhook is None:
            logger.warning("No mail transport configured; emails will only be logged")

        return cls(resend=resend, webhook=webhook)

    @property
    def is_configured(self) -> bool:
        return self._resend is not None or self._webhook is not None

    def _send_link_email(
        self,
        to: str,
        name: str,
        subject: str,
        html_body: str,
        link: str,
        expires_in_minutes: int,
        button_text: str,
    ) -> bool:
        if not self.is_configured:
            logger.warning(f"Mail not sent to {to}, no transport configured: {subject}")
            return False

        if self._resend is not None:
            try:
                self._resend.send(to, subject, html_body)
                logger.info(f"Email sent via Resend to {to}: {subject}")
                return True
            except EmailGatewayError as e:
                logger.warning(f"Resend failed for {to}, trying fallback: {e}")

        if self._webhook is not None:
            try:
                self._webhook.send_link(to, name, subject, link, expires_in_minutes, button_text)
                logger.info(f"Email sent via webhook to {to}: {subject}")
                return True
            except EmailGatewayError as e:
                logger.error(f"Mail webhook failed for {to}: {e}")

        return False

    def send_magic_link(
        self,
        to: str,
        contact_name: str | None,
        business_name: str,
        link: str,
        expires_in_minutes: int,
    ) -> bool:
        """Send a dashboard login link. True if any transport accepted it."""
        body = _link_email_html(
            contact_name or "there",
            f"Click below to log into your <strong>{html.escape(business_name)}</strong> dashboard.",
            link,
            "Open Dashboard",
            f"This link expires in {expires_in_minutes} minutes and can only be used once.",
        )
        return self._send_link_email(
            to=to,
            name=contact_name or business_name,
            subject=f"Your {business_name} Login Link",
            html_body=body,
            link=link,
            expires_in_minutes=expires_in_minutes,
            button_text="Open dashboard",
        )

    def send_password_reset(
        self,
        to: str,
        contact_name: str | None,
        business_name: str,
        link: str,
        expires_in_minutes: int,
    ) -> bool:
        """Send a password reset link. True if any transport accepted it."""
        body = _link_email_html(
            contact_name or "there",
            "We received a request to reset the password for your "
            f"<strong>{html.escape(business_name)}</strong> dashboard account.",
            link,
            "Reset Password",
            f"This link expires in {expires_in_minutes} minutes and can only be used once. "
            "If you didn't request a reset, ignore this email.",
        )
        return self._send_link_email(
            to=to,
            name=contact_name or business_name,
            subject=f"Reset Your {business_name} Password",
            html_body=body,
            link=link,
            expires_in_minutes=expires_in_minutes,
            button_text="Reset Password",
        )

    def send_redemption_confirmation(
        self,
        to: str,
        customer_name: str | None,
        business_name: str,
        redeemed_amount: Decimal,
        remaining_balance: Decimal,
    ) -> bool:
        """Send a redemption receipt. Resend only; the webhook renders link emails."""
        if self._resend is None:
            return False

        fully_redeemed = remaining_balance == 0
        subject = (
            f"Your Gift Card Has Been Fully Redeemed at {business_name}"
            if fully_redeemed
            else f"Your Gift Card Redemption Confirmation from {business_name}"
        )
        body = (
            "<!DOCTYPE html><html><body>"
            f"<p>Thank you, {html.escape(customer_name or 'Valued Customer')}!</p>"
            f"<p>Your gift card was redeemed at <strong>{html.escape(business_name)}</strong>.</p>"
            f"<p>Redeemed amount: ${redeemed_amount:.2f}<br>"
            f"Remaining balance: ${remaining_balance:.2f}</p>"
            "</body></html>"
        )

        try:
            self._resend.send(to, subject, body)
        except EmailGatewayError as e:
            logger.warning(f"Redemption email to {to} failed: {e}")
            return False

        logger.info(f"Redemption email sent to {to}")
        return True
