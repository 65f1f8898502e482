import base64
from typing import List, Optional

import httpx
from jinja2 import DictLoader, Environment, select_autoescape

from app_logger import get_logger
from config import Settings
from errors import DependencyError

logger = get_logger("mail")

TEMPLATES = {
    "otp.html": r"""
    <html>
      <body style="font-family:'Segoe UI',Tahoma,sans-serif;background:#000000;color:#ffffff;margin:0;padding:0">
        <div style="max-width:600px;margin:40px auto;background:#0f1014;border:1px solid #2d2d3a;border-radius:16px">
          <div style="padding:32px 20px;text-align:center;border-bottom:1px solid #4338ca">
            <h1 style="margin:0;font-size:26px;letter-spacing:2px;text-transform:uppercase">{{ event_name }}</h1>
          </div>
          <div style="padding:32px 30px;text-align:center">
            <p style="color:#cbd5e1">Hi <strong>{{ name }}</strong>, use this code to verify your email address:</p>
            <p style="font-size:42px;font-weight:bold;letter-spacing:12px;color:#a5b4fc;font-family:'Courier New',monospace">{{ otp }}</p>
            <p style="color:#f87171;font-size:13px">This code expires in {{ ttl_minutes }} minutes. Never share it with anyone.</p>
          </div>
        </div>
      </body>
    </html>
    """,
    "ticket.html": r"""
    <html>
      <body style="font-family:'Segoe UI',Tahoma,sans-serif;background:#000000;color:#ffffff;margin:0;padding:0">
        <div style="max-width:600px;margin:40px auto;background:#0f1014;border:1px solid #2d2d3a;border-radius:16px">
          <div style="padding:32px 20px;text-align:center;border-bottom:1px solid #4338ca">
            <h1 style="margin:0;font-size:26px;letter-spacing:2px;text-transform:uppercase">{{ event_name }}</h1>
          </div>
          <div style="padding:32px 30px;text-align:center;color:#cbd5e1">
            <p>Hi <strong>{{ name }}</strong>, your registration is confirmed.</p>
            <p>Your entry pass is attached. Show the QR code at the venue entrance.</p>
            <p style="font-size:12px;color:#64748b">Ticket ID: {{ ticket_id }}</p>
          </div>
        </div>
      </body>
    </html>
    """,
}

env = Environment(loader=DictLoader(TEMPLATES), autoescape=select_autoescape(["html"]))


class BrevoMailer:
    """Transactional email over the Brevo (Sendinblue) v3 HTTP API.

    Owns its HTTP client; call ``close()`` on shutdown.
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        sender_name: str,
        sender_email: str,
        event_name: str,
        otp_ttl_minutes: int = 10,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_url = api_url
        self.sender = {"name": sender_name, "email": sender_email}
        self.event_name = event_name
        self.otp_ttl_minutes = otp_ttl_minutes
        self.client = httpx.Client(
            timeout=timeout,
            transport=transport,
            headers={"api-key": api_key, "accept": "application/json"},
        )
        if not api_key:
            logger.warning("MAIL_API_KEY is not set; email delivery will fail")

    @classmethod
    def from_settings(cls, settings: Settings) -> "BrevoMailer":
        return cls(
            api_url=settings.mail_api_url,
            api_key=settings.mail_api_key,
            sender_name=settings.mail_sender_name,
            sender_email=settings.mail_sender_email,
            event_name=settings.event_name,
            otp_ttl_minutes=settings.otp_ttl_minutes,
            timeout=settings.mail_timeout_seconds,
        )

    def send(self, to: str, subject: str, html: str, attachments: Optional[List[tuple[str, bytes]]] = None) -> None:
        payload = {
            "sender": self.sender,
            "to": [{"email": to}],
            "subject": subject,
            "htmlContent": html,
        }
        if attachments:
            payload["attachment"] = [
                {"name": filename, "content": base64.b64encode(content).decode("ascii")}
                for filename, content in attachments
            ]
        try:
            response = self.client.post(self.api_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Email to %s failed: %s", to, exc)
            raise DependencyError() from exc
        logger.info("Email '%s' sent to %s", subject, to)

    def send_otp(self, email: str, otp: str, name: str) -> None:
        html = env.get_template("otp.html").render(
            event_name=self.event_name, name=name, otp=otp, ttl_minutes=self.otp_ttl_minutes
        )
        self.send(email, f"{self.event_name} - Email Verification Code", html)

    def send_ticket(self, email: str, name: str, pdf: bytes, ticket_id: str) -> None:
        html = env.get_template("ticket.html").render(event_name=self.event_name, name=name, ticket_id=ticket_id)
        self.send(
            email,
            f"{self.event_name} - Your Entry Pass",
            html,
            attachments=[(ticket_filename(ticket_id), pdf)],
        )

    def close(self) -> None:
        self.client.close()


def ticket_filename(ticket_id: str) -> str:
    return f"Ticket-{ticket_id[-6:]}.pdf"
