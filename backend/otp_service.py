import secrets
from datetime import datetime, timedelta
from typing import Callable, Optional

import models
from app_logger import get_logger
from ticket_store import TicketStore

logger = get_logger("otp")

OTP_TTL_MINUTES = 10


class OtpIssuer:
    """Issues and checks the 6-digit one-time codes stored on a ticket.

    A code is single-use because callers ``consume`` it right after a
    successful ``validate``; expiry is compared against the clock on every
    check rather than being tracked by a timer.
    """

    def __init__(
        self,
        store: TicketStore,
        mailer,
        ttl_minutes: int = OTP_TTL_MINUTES,
        clock: Callable[[], datetime] = models.utcnow,
    ):
        self.store = store
        self.mailer = mailer
        self.ttl = timedelta(minutes=ttl_minutes)
        self.clock = clock

    @staticmethod
    def generate_code() -> str:
        return str(100000 + secrets.randbelow(900000))

    def issue(self, ticket: models.Ticket) -> str:
        """Store a fresh code on ``ticket`` (superseding any previous one) and email it."""
        code = self.generate_code()
        ticket.otp_code = code
        ticket.otp_expiry = self.clock() + self.ttl
        self.store.save(ticket)
        logger.info("OTP issued for ticket %s, expires %s", ticket.id, ticket.otp_expiry.isoformat())
        self.mailer.send_otp(ticket.holder_email, code, ticket.holder_name)
        return code

    def validate(self, ticket: Optional[models.Ticket], code: str) -> bool:
        if ticket is None or not code or not code.isascii():
            return False
        if not ticket.otp_code or ticket.otp_expiry is None:
            return False
        if not secrets.compare_digest(ticket.otp_code, code):
            return False
        return self.clock() < ticket.otp_expiry

    def consume(self, ticket: models.Ticket) -> None:
        ticket.otp_code = None
        ticket.otp_expiry = None
        self.store.save(ticket)
