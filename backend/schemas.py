from pydantic import BaseModel, ConfigDict, EmailStr, Field, PlainSerializer
from pydantic.alias_generators import to_camel
from typing import Annotated, Optional, List
from datetime import date, datetime

from models import Gender, as_utc

# Timestamps are stored naive in UTC; send them with an explicit offset
UtcDatetime = Annotated[datetime, PlainSerializer(lambda value: as_utc(value).isoformat(), return_type=str)]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class MessageResponse(CamelModel):
    message: str


# ------------- Registration -------------

class InitiateVerificationRequest(CamelModel):
    email: EmailStr
    name: Optional[str] = Field(default=None, max_length=200)


class VerifyOtpRequest(CamelModel):
    email: EmailStr
    otp: str = Field(pattern=r"^[0-9]{6}$")


class CompleteRegistrationRequest(CamelModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: EmailStr
    name: str = Field(min_length=1, max_length=200)
    phone: str = Field(min_length=1, max_length=40)
    gender: Gender
    dob: date
    referral_source: Optional[str] = None
    referral_details: Optional[str] = None
    buying_interest: Optional[str] = None
    buying_interest_details: Optional[str] = None


class EmailRequest(CamelModel):
    email: EmailStr


class TicketRef(CamelModel):
    id: str


class CompleteRegistrationResponse(CamelModel):
    message: str
    ticket: TicketRef


class EmailStatusResponse(CamelModel):
    exists: bool
    message: str


# ------------- Login / retrieval -------------

class TicketView(CamelModel):
    id: str
    holder_name: str
    email: str
    phone: Optional[str] = None
    gender: Optional[str] = None
    dob: Optional[date] = None
    qr_code: str


class LoginResponse(CamelModel):
    message: str
    ticket: TicketView


# ------------- Admin -------------

class ScanRequest(CamelModel):
    qr_data: str


class AttendeeDetails(CamelModel):
    id: str
    holder_name: str
    holder_email: str
    holder_phone: Optional[str] = None
    holder_gender: Optional[str] = None
    holder_dob: Optional[date] = None
    is_checked_in: bool


class ValidateTicketResponse(CamelModel):
    message: str
    data: AttendeeDetails


class CheckInDetails(CamelModel):
    id: str
    holder_name: str
    check_in_time: UtcDatetime


class CheckInResponse(CamelModel):
    message: str
    data: CheckInDetails


class AdminTicket(CamelModel):
    id: str
    holder_name: str
    holder_email: str
    holder_phone: Optional[str] = None
    holder_gender: Optional[str] = None
    holder_dob: Optional[date] = None
    holder_referral_source: Optional[str] = None
    holder_referral_details: Optional[str] = None
    holder_buying_interest: Optional[str] = None
    holder_buying_interest_details: Optional[str] = None
    status: str
    is_email_verified: bool
    qr_token: Optional[str] = None
    is_checked_in: bool
    check_in_time: Optional[UtcDatetime] = None
    created_at: UtcDatetime
    updated_at: UtcDatetime


class TicketListResponse(CamelModel):
    count: int
    tickets: List[AdminTicket]


class DashboardMetrics(CamelModel):
    total_tickets: int
    checked_in: int
    verified: int
    pending: int
    cancelled: int


class RecentCheckIn(CamelModel):
    id: str
    holder_name: str
    holder_email: str
    check_in_time: Optional[UtcDatetime] = None


class DashboardStatsResponse(CamelModel):
    metrics: DashboardMetrics
    recent_check_ins: List[RecentCheckIn]
