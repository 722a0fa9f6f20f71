"""Transactional email delivery for workflow actions.

SMTP is blocking, so sends run in the default executor.
"""

import asyncio
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from app.config import Settings, get_settings

logger = logging.getLogger(__name__)


class EmailService:
    """Send plain-text + HTML emails over SMTP.

    Delivery errors propagate to the caller so that a critical
    ``send_email`` action fails its workflow run.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    async def send_transactional_email(
        self,
        to: str,
        subject: str,
        body: str,
        from_address: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> dict:
        """Send one email and return a delivery summary."""
        if not to:
            raise ValueError("Email recipient is required")

        sender = from_address or self.settings.EMAIL_FROM_ADDRESS
        msg = self._build_message(to, subject or "", body or "", sender)

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, lambda: self._send_smtp(sender, to, msg))

        logger.info(f"Email sent to {to} (tenant: {tenant_id})")
        return {"sent": True, "to": to, "subject": subject}

    @staticmethod
    def _build_message(to: str, subject: str, body: str, sender: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = sender
        msg["To"] = to

        msg.attach(MIMEText(body, "plain"))
        html = f"""
        <div style="font-family: sans-serif; max-width: 600px; margin: 0 auto;">
            <div style="color: #333; line-height: 1.6;">
                {body.replace(chr(10), '<br>')}
            </div>
        </div>
        """
        msg.attach(MIMEText(html, "html"))
        return msg

    def _send_smtp(self, from_addr: str, to_addr: str, msg: MIMEMultipart) -> None:
        """Synchronous SMTP send."""
        s = self.settings
        with smtplib.SMTP(s.SMTP_HOST, s.SMTP_PORT) as server:
            if s.SMTP_USE_TLS:
                server.starttls()
            if s.SMTP_USER and s.SMTP_PASSWORD:
                server.login(s.SMTP_USER, s.SMTP_PASSWORD)
            server.sendmail(from_addr, to_addr, msg.as_string())
