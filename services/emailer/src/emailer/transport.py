from __future__ import annotations

import os
import smtplib
from email.message import EmailMessage

from emailer.worker import EmailJob


class SmtpSender:
    """Blocking SMTP delivery; the worker runs it off the event loop."""

    def __init__(
        self,
        *,
        host: str,
        port: int = 587,
        username: str | None = None,
        password: str | None = None,
        from_address: str | None = None,
        timeout: float = 15.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_address = from_address or username or "no-reply@localhost"
        self.timeout = timeout

    @classmethod
    def from_env(cls) -> SmtpSender | None:
        host = os.getenv("SMTP_HOST", "").strip()
        if not host:
            return None
        return cls(
            host=host,
            port=int(os.getenv("SMTP_PORT", "587")),
            username=os.getenv("SMTP_USER", "").strip() or None,
            password=os.getenv("SMTP_PASSWORD", "") or None,
            from_address=os.getenv("EMAIL_FROM", "").strip() or None,
        )

    def build_message(self, job: EmailJob) -> EmailMessage:
        message = EmailMessage()
        message["From"] = f"Job Search App <{self.from_address}>"
        message["To"] = job.recipient
        message["Subject"] = job.subject
        message.set_content("This message requires an HTML capable mail client.")
        message.add_alternative(job.html, subtype="html")
        return message

    def __call__(self, job: EmailJob) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(self.build_message(job))
