from typing import Tuple

import models
import qr_service
from app_logger import get_logger
from errors import NotFoundError
from mail_service import ticket_filename
from ticket_store import TicketStore

logger = get_logger("issuance")


class TicketIssuance:
    """Assigns QR tokens and exports finished tickets as PDF, by download or email."""

    def __init__(self, store: TicketStore, pdf_renderer, mailer, event_name: str, qr_token_prefix: str):
        self.store = store
        self.pdf_renderer = pdf_renderer
        self.mailer = mailer
        self.event_name = event_name
        self.qr_token_prefix = qr_token_prefix

    def new_qr_token(self, ticket_id: str) -> str:
        return qr_service.generate_qr_token(ticket_id, self.qr_token_prefix)

    def render_pdf(self, ticket: models.Ticket) -> bytes:
        qr_payload = ticket.qr_token or ticket.id
        return self.pdf_renderer.render_ticket(
            {
                "ticket_id": ticket.id,
                "event_name": self.event_name,
                "holder_name": ticket.holder_name,
                "email": ticket.holder_email,
                "phone": ticket.holder_phone,
                "gender": ticket.holder_gender,
                "dob": ticket.holder_dob.isoformat() if ticket.holder_dob else None,
                "qr_code": qr_service.qr_data_url(qr_payload),
            }
        )

    def dispatch(self, ticket: models.Ticket) -> None:
        pdf = self.render_pdf(ticket)
        self.mailer.send_ticket(ticket.holder_email, ticket.holder_name, pdf, ticket.id)
        logger.info("Ticket %s emailed to %s", ticket.id, ticket.holder_email)

    def get_issued(self, ticket_id: str) -> models.Ticket:
        ticket = self.store.find_by_id(ticket_id)
        if ticket is None or not ticket.is_verified:
            raise NotFoundError()
        return ticket

    def download(self, ticket_id: str) -> Tuple[str, bytes]:
        ticket = self.get_issued(ticket_id)
        return ticket_filename(ticket.id), self.render_pdf(ticket)

    def resend_email(self, ticket_id: str) -> None:
        self.dispatch(self.get_issued(ticket_id))
