from typing import Tuple

import models
import qr_service
from app_logger import get_logger
from errors import InvalidOtpError, NotFoundError
from otp_service import OtpIssuer
from ticket_store import TicketStore

logger = get_logger("retrieval")


class LoginWorkflow:
    """Lets a registered holder get back to their ticket by proving control of the email again."""

    def __init__(self, store: TicketStore, otp: OtpIssuer):
        self.store = store
        self.otp = otp

    def request_login(self, email: str) -> models.Ticket:
        ticket = self.store.find_by_email(email)
        if ticket is None or not ticket.is_verified:
            raise NotFoundError("No registered ticket found for this email.")
        self.otp.issue(ticket)
        return ticket

    def verify_login(self, email: str, code: str) -> Tuple[models.Ticket, str]:
        """Returns the ticket and a QR PNG data URL of its token."""
        ticket = self.store.find_by_email(email)
        if ticket is None or not ticket.is_verified or not self.otp.validate(ticket, code):
            raise InvalidOtpError()
        self.otp.consume(ticket)
        logger.info("Holder logged in to ticket %s", ticket.id)
        return ticket, qr_service.qr_data_url(ticket.qr_token or ticket.id)
