import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Date, DateTime, String

from database import Base

DEFAULT_HOLDER_NAME = "Attendee"


def utcnow() -> datetime:
    # Stored naive, always UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TicketStatus(str, enum.Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    CANCELLED = "cancelled"  # schema only, nothing transitions into it


class Gender(str, enum.Enum):
    MALE = "Male"
    FEMALE = "Female"
    OTHER = "Other"


class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    holder_name = Column(String, nullable=False, default=DEFAULT_HOLDER_NAME)
    holder_email = Column(String, nullable=False, unique=True, index=True)  # stored lower-cased
    holder_phone = Column(String, nullable=True)
    holder_gender = Column(String, nullable=True)
    holder_dob = Column(Date, nullable=True)
    holder_referral_source = Column(String, nullable=True)
    holder_referral_details = Column(String, nullable=True)
    holder_buying_interest = Column(String, nullable=True)
    holder_buying_interest_details = Column(String, nullable=True)
    status = Column(String, nullable=False, default=TicketStatus.PENDING.value, index=True)
    is_email_verified = Column(Boolean, nullable=False, default=False)
    otp_code = Column(String, nullable=True)
    otp_expiry = Column(DateTime, nullable=True)
    qr_token = Column(String, nullable=True, unique=True)  # set once, on verification
    is_checked_in = Column(Boolean, nullable=False, default=False, index=True)
    check_in_time = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def is_verified(self) -> bool:
        return self.status == TicketStatus.VERIFIED.value
