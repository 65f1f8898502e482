from typing import Any, Optional

import models
from app_logger import get_logger
from errors import (
    AlreadyRegisteredError,
    DependencyError,
    DuplicateError,
    InvalidOtpError,
    NotFoundError,
    NotVerifiedError,
    TicketDispatchError,
)
from issuance import TicketIssuance
from otp_service import OtpIssuer
from ticket_store import TicketStore

logger = get_logger("registration")

DETAIL_FIELDS = (
    "holder_name",
    "holder_phone",
    "holder_gender",
    "holder_dob",
    "holder_referral_source",
    "holder_referral_details",
    "holder_buying_interest",
    "holder_buying_interest_details",
)


class RegistrationWorkflow:
    """Three-step signup: initiate (send OTP) -> verify email -> complete (issue ticket).

    A ticket stays ``pending`` until ``complete`` moves it to ``verified``,
    which is terminal for this workflow.
    """

    def __init__(self, store: TicketStore, otp: OtpIssuer, issuance: TicketIssuance):
        self.store = store
        self.otp = otp
        self.issuance = issuance

    def initiate(self, email: str, name: Optional[str] = None) -> models.Ticket:
        ticket = self.store.find_by_email(email)
        if ticket is not None and ticket.is_verified:
            raise AlreadyRegisteredError()

        if ticket is None:
            try:
                ticket = self.store.create(
                    holder_email=email,
                    holder_name=name or models.DEFAULT_HOLDER_NAME,
                    status=models.TicketStatus.PENDING.value,
                    is_email_verified=False,
                )
            except DuplicateError:
                # Another request created the row first; continue with theirs
                ticket = self.store.find_by_email(email)
                if ticket is None:
                    raise
                if ticket.is_verified:
                    raise AlreadyRegisteredError()
        else:
            if name:
                ticket.holder_name = name
            ticket.is_email_verified = False

        self.otp.issue(ticket)
        logger.info("Registration initiated for ticket %s", ticket.id)
        return ticket

    def verify_email(self, email: str, code: str) -> models.Ticket:
        ticket = self.store.find_by_email(email)
        if ticket is None or ticket.is_verified or not self.otp.validate(ticket, code):
            raise InvalidOtpError()
        ticket.is_email_verified = True
        self.otp.consume(ticket)
        logger.info("Email verified for ticket %s", ticket.id)
        return ticket

    def complete(self, email: str, details: dict[str, Any]) -> models.Ticket:
        ticket = self.store.find_by_email(email)
        if ticket is None:
            raise NotFoundError("Registration session not found.")
        if ticket.is_verified:
            raise AlreadyRegisteredError("Ticket already generated for this email.")
        if not ticket.is_email_verified:
            raise NotVerifiedError()

        changes = {field: details[field] for field in DETAIL_FIELDS if field in details}
        changes["qr_token"] = self.issuance.new_qr_token(ticket.id)
        changes["status"] = models.TicketStatus.VERIFIED.value
        promoted = self.store.compare_and_set(
            ticket.id,
            expected={"status": models.TicketStatus.PENDING.value, "is_email_verified": True},
            changes=changes,
        )
        self.store.refresh(ticket)
        if not promoted:
            # Lost a race against another completion (or a concurrent re-initiate)
            if ticket.is_verified:
                raise AlreadyRegisteredError("Ticket already generated for this email.")
            raise NotVerifiedError()
        logger.info("Ticket %s issued", ticket.id)

        # The ticket is durable from here on; delivery problems do not undo it
        try:
            self.issuance.dispatch(ticket)
        except DependencyError as exc:
            logger.error("Ticket %s issued but not delivered", ticket.id)
            raise TicketDispatchError(ticket.id) from exc
        return ticket

    def resend(self, email: str) -> models.Ticket:
        ticket = self.store.find_by_email(email)
        if ticket is None or ticket.status != models.TicketStatus.PENDING.value:
            raise NotFoundError("No pending registration found for this email.")
        self.otp.issue(ticket)
        return ticket

    def check_email(self, email: str) -> bool:
        ticket = self.store.find_by_email(email)
        return ticket is not None and ticket.is_verified
