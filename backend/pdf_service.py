"""
Ticket PDF rendering.
The ticket is laid out as HTML (Jinja2, in-memory template) and converted to
PDF by WeasyPrint, so no template files or fonts need to ship with the app.
"""
from typing import Any

from jinja2 import DictLoader, Environment, select_autoescape

from app_logger import get_logger
from errors import DependencyError

logger = get_logger("pdf")

TEMPLATES = {
    "ticket.html": r"""
    <html>
      <head>
        <meta charset="utf-8">
        <style>
          @page { size: A5 landscape; margin: 0; }
          body { margin: 0; background: #0a0a0f; color: #ffffff; font-family: "Courier New", monospace; }
          .card { margin: 24px; padding: 24px 32px; border: 2px solid #22d3ee; border-radius: 12px; }
          .title { font-size: 28px; font-weight: bold; text-align: center; letter-spacing: 2px; }
          .subtitle { font-size: 10px; text-align: center; color: #94a3b8; letter-spacing: 2px; margin-bottom: 16px; }
          .details { float: left; width: 60%; }
          .label { font-size: 9px; color: #94a3b8; }
          .value { font-size: 12px; font-weight: bold; margin-bottom: 8px; }
          .qr { float: right; width: 35%; text-align: center; }
          .qr img { width: 160px; height: 160px; background: #ffffff; padding: 6px; }
          .scan { font-size: 8px; color: #ec4899; margin-top: 6px; }
          .footer { clear: both; padding-top: 12px; font-size: 7px; text-align: center; color: #94a3b8; }
        </style>
      </head>
      <body>
        <div class="card">
          <div class="title">{{ event_name }}</div>
          <div class="subtitle">OFFICIAL ENTRY PASS</div>
          <div class="details">
            <div class="label">TICKET ID</div><div class="value">{{ ticket_id }}</div>
            <div class="label">NAME</div><div class="value">{{ holder_name }}</div>
            <div class="label">EMAIL</div><div class="value">{{ email }}</div>
            {% if phone %}<div class="label">PHONE</div><div class="value">{{ phone }}</div>{% endif %}
            {% if gender %}<div class="label">GENDER</div><div class="value">{{ gender }}</div>{% endif %}
            {% if dob %}<div class="label">DATE OF BIRTH</div><div class="value">{{ dob }}</div>{% endif %}
          </div>
          <div class="qr">
            <img src="{{ qr_code }}" alt="QR code">
            <div class="scan">SCAN AT ENTRY</div>
          </div>
          <div class="footer">SYSTEM GENERATED. INVALID WITHOUT QR. ONE ENTRY PER TICKET.</div>
        </div>
      </body>
    </html>
    """,
}

env = Environment(loader=DictLoader(TEMPLATES), autoescape=select_autoescape(["html"]))


def build_ticket_html(context: dict[str, Any]) -> str:
    return env.get_template("ticket.html").render(**context)


class WeasyPrintRenderer:
    def render_ticket(self, context: dict[str, Any]) -> bytes:
        html = build_ticket_html(context)
        try:
            # WeasyPrint loads Pango at import time; keep that off the app import path
            from weasyprint import HTML

            return HTML(string=html).write_pdf()
        except Exception as exc:
            logger.exception("PDF generation failed for ticket %s", context.get("ticket_id"))
            raise DependencyError() from exc
