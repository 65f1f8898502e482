from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Union

import models
from app_logger import get_logger, mask
from errors import NotFoundError, NotVerifiedError, ValidationError
from ticket_store import TicketStore

logger = get_logger("checkin")


@dataclass
class Authorized:
    ticket: models.Ticket


@dataclass
class CheckedIn:
    ticket: models.Ticket


@dataclass
class Duplicate:
    holder_name: str
    check_in_time: Optional[datetime]


class CheckInWorkflow:
    """Scanner-side ticket validation and the single write path for check-in.

    ``validate`` and ``check_in`` enforce the same rules independently, so a
    client cannot skip the duplicate check by calling ``check_in`` directly.
    """

    def __init__(self, store: TicketStore, clock: Callable[[], datetime] = models.utcnow):
        self.store = store
        self.clock = clock

    def _lookup(self, qr_token: str) -> models.Ticket:
        token = (qr_token or "").strip()
        if not token:
            raise ValidationError("QR data is required.")
        ticket = self.store.find_by_qr_token(token)
        if ticket is None:
            logger.warning("Scan of unknown QR payload %s", mask(token, 8))
            raise NotFoundError("Invalid ticket.")
        if not ticket.is_verified:
            raise NotVerifiedError("Ticket is not verified or has been cancelled.")
        return ticket

    def validate(self, qr_token: str) -> Union[Authorized, Duplicate]:
        ticket = self._lookup(qr_token)
        if ticket.is_checked_in:
            return Duplicate(ticket.holder_name, ticket.check_in_time)
        return Authorized(ticket)

    def check_in(self, qr_token: str) -> Union[CheckedIn, Duplicate]:
        ticket = self._lookup(qr_token)
        if not ticket.is_checked_in:
            applied = self.store.compare_and_set(
                ticket.id,
                expected={"status": models.TicketStatus.VERIFIED.value, "is_checked_in": False},
                changes={"is_checked_in": True, "check_in_time": self.clock()},
            )
            self.store.refresh(ticket)
            if applied:
                logger.info("Ticket %s checked in at %s", ticket.id, ticket.check_in_time.isoformat())
                return CheckedIn(ticket)
            if not ticket.is_verified:
                raise NotVerifiedError("Ticket cannot be checked in.")
        logger.info("Duplicate check-in attempt for ticket %s", ticket.id)
        return Duplicate(ticket.holder_name, ticket.check_in_time)
