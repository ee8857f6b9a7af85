"""SMTP delivery of verification mails and newsletter digests."""

from __future__ import annotations

import html
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Callable, Sequence

from newsy.config import MailConfig
from newsy.models import DigestEntry

__all__ = ["EmailService", "MailDeliveryError"]

logger = logging.getLogger(__name__)


class MailDeliveryError(Exception):
    """Raised when a message could not be handed to the SMTP server."""


_NEWSLETTER_TEMPLATE = """\
<!DOCTYPE html>
<html lang="en">
  <body style="font-family: system-ui, sans-serif; color: #1f2933;">
    <h1>{title}</h1>
    {articles}
    <p style="font-size: 0.85rem; color: #6b7280;">
      <a href="{unsubscribe_url}">Unsubscribe</a>
    </p>
  </body>
</html>
"""

_ARTICLE_TEMPLATE = """\
<div style="margin-bottom: 20px;">
      <h3><a href="{url}">{title}</a></h3>
      <p>{summary}</p>
    </div>"""

_VERIFICATION_TEMPLATE = """\
<!DOCTYPE html>
<html lang="en">
  <body style="font-family: system-ui, sans-serif; color: #1f2933;">
    <h1>Confirm your Newsy subscription</h1>
    <p>We received a subscription request for {email}.</p>
    <p><a href="{verify_url}">Confirm subscription</a></p>
  </body>
</html>
"""


def render_newsletter(title: str, articles: Sequence[DigestEntry], unsubscribe_url: str) -> str:
    blocks = "\n    ".join(
        _ARTICLE_TEMPLATE.format(
            url=html.escape(entry.url, quote=True),
            title=html.escape(entry.title),
            summary=html.escape(entry.summary),
        )
        for entry in articles
    )
    return _NEWSLETTER_TEMPLATE.format(
        title=html.escape(title),
        articles=blocks,
        unsubscribe_url=html.escape(unsubscribe_url, quote=True),
    )


class EmailService:
    def __init__(
        self,
        config: MailConfig,
        smtp_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP,
    ) -> None:
        self._config = config
        self._smtp_factory = smtp_factory

    def _link(self, path: str, token: str) -> str:
        return f"{self._config.base_url.rstrip('/')}{path}?token={token}"

    def send_verification_email(self, to: str, token: str) -> None:
        verify_url = self._link("/api/subscriptions/verify", token)
        body = _VERIFICATION_TEMPLATE.format(
            email=html.escape(to),
            verify_url=html.escape(verify_url, quote=True),
        )
        self._send_html(to, "Confirm your Newsy subscription", body)

    def send_newsletter(
        self, to: str, subject: str, articles: Sequence[DigestEntry], unsubscribe_token: str
    ) -> None:
        logger.info("Sending newsletter email to %s", to)
        unsubscribe_url = self._link("/api/subscriptions/unsubscribe", unsubscribe_token)
        self._send_html(to, subject, render_newsletter(subject, articles, unsubscribe_url))

    def _sender(self) -> str:
        name = (self._config.mail_from_name or "").strip()
        if name:
            return formataddr((name, self._config.mail_from))
        return self._config.mail_from

    def _send_html(self, to: str, subject: str, body: str) -> None:
        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = self._sender()
        message["To"] = to
        message.attach(MIMEText(body, "html", "utf-8"))

        config = self._config
        try:
            with self._smtp_factory(config.smtp_host, config.smtp_port, timeout=config.timeout) as server:
                if config.use_tls:
                    server.starttls()
                if config.username and config.password:
                    server.login(config.username, config.password)
                server.sendmail(config.mail_from, [to], message.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            raise MailDeliveryError(f"Could not deliver mail to {to}") from exc
