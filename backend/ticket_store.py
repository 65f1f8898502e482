from typing import Any, List, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import models
from app_logger import get_logger
from errors import DuplicateError

logger = get_logger("store")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class TicketStore:
    """Ticket records keyed by holder email (unique, case-folded) and by QR token (unique, sparse)."""

    def __init__(self, db: Session):
        self.db = db

    def find_by_email(self, email: str) -> Optional[models.Ticket]:
        return (
            self.db.query(models.Ticket)
            .filter(models.Ticket.holder_email == normalize_email(email))
            .first()
        )

    def find_by_qr_token(self, token: str) -> Optional[models.Ticket]:
        if not token:
            return None
        return self.db.query(models.Ticket).filter(models.Ticket.qr_token == token).first()

    def find_by_id(self, ticket_id: str) -> Optional[models.Ticket]:
        if not ticket_id:
            return None
        return self.db.get(models.Ticket, ticket_id)

    def create(self, **fields: Any) -> models.Ticket:
        fields["holder_email"] = normalize_email(fields.get("holder_email", ""))
        ticket = models.Ticket(**fields)
        self.db.add(ticket)
        self._commit()
        self.db.refresh(ticket)
        return ticket

    def save(self, ticket: models.Ticket) -> models.Ticket:
        self._commit()
        return ticket

    def refresh(self, ticket: models.Ticket) -> models.Ticket:
        self.db.refresh(ticket)
        return ticket

    def compare_and_set(self, ticket_id: str, expected: dict[str, Any], changes: dict[str, Any]) -> bool:
        """Apply ``changes`` only if the stored row still matches ``expected``.

        Runs as one conditional UPDATE, so of two concurrent callers racing on
        the same row at most one sees ``True``.
        """
        stmt = update(models.Ticket).where(models.Ticket.id == ticket_id)
        for column, value in expected.items():
            stmt = stmt.where(getattr(models.Ticket, column) == value)
        stmt = stmt.values(**changes).execution_options(synchronize_session=False)
        try:
            result = self.db.execute(stmt)
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            logger.warning("Conditional update of ticket %s hit a unique constraint", ticket_id)
            raise DuplicateError() from exc
        return result.rowcount == 1

    def list_tickets(self) -> List[models.Ticket]:
        return self.db.query(models.Ticket).order_by(models.Ticket.created_at.desc()).all()

    def count(self, **filters: Any) -> int:
        query = self.db.query(func.count(models.Ticket.id))
        for column, value in filters.items():
            query = query.filter(getattr(models.Ticket, column) == value)
        return query.scalar() or 0

    def recent_check_ins(self, limit: int = 5) -> List[models.Ticket]:
        return (
            self.db.query(models.Ticket)
            .filter(models.Ticket.is_checked_in.is_(True))
            .order_by(models.Ticket.check_in_time.desc())
            .limit(limit)
            .all()
        )

    def _commit(self) -> None:
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise DuplicateError() from exc
