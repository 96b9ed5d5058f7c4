"""
SMTP delivery of stat summaries to team leaders.

smtplib is blocking, so ``Mailer.send`` hands the work to Starlette's
threadpool.  Transport failures surface as ``MailDeliveryError``; there
are no retries.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage

from starlette.concurrency import run_in_threadpool

from qmstats.core.config import Settings
from qmstats.core.exceptions import MailDeliveryError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes
    maintype: str = "application"
    subtype: str = "pdf"


class Mailer:
    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def build_message(
        self,
        to: str,
        subject: str,
        body: str,
        attachments: list[Attachment] | None = None,
    ) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self._settings.MAIL_FROM
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(body)
        for att in attachments or []:
            msg.add_attachment(
                att.content,
                maintype=att.maintype,
                subtype=att.subtype,
                filename=att.filename,
            )
        return msg

    def _deliver(self, msg: EmailMessage) -> None:
        s = self._settings
        try:
            if s.MAIL_USE_SSL:
                server: smtplib.SMTP = smtplib.SMTP_SSL(
                    s.MAIL_HOST, s.MAIL_PORT, timeout=s.MAIL_TIMEOUT_SECONDS,
                    context=ssl.create_default_context(),
                )
            else:
                server = smtplib.SMTP(s.MAIL_HOST, s.MAIL_PORT, timeout=s.MAIL_TIMEOUT_SECONDS)
            with server:
                if not s.MAIL_USE_SSL and s.MAIL_STARTTLS:
                    server.starttls(context=ssl.create_default_context())
                if s.MAIL_USER and s.MAIL_PASSWORD:
                    server.login(s.MAIL_USER, s.MAIL_PASSWORD)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise MailDeliveryError(f"SMTP delivery to {msg['To']} failed: {exc}") from exc

    async def send(
        self,
        to: str,
        subject: str,
        body: str,
        attachments: list[Attachment] | None = None,
    ) -> None:
        msg = self.build_message(to, subject, body, attachments)
        await run_in_threadpool(self._deliver, msg)
        logger.info("Mail sent to %s: %s", to, subject)
