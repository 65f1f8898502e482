"""Error taxonomy shared by the workflows and mapped to HTTP responses in main.py."""
from datetime import datetime
from typing import Any, Optional

from models import as_utc


class TicketingError(Exception):
    status_code = 500
    message = "Operation failed."

    def __init__(self, message: Optional[str] = None, data: Optional[dict[str, Any]] = None):
        self.message = message or self.message
        self.data = data
        super().__init__(self.message)


class ValidationError(TicketingError):
    status_code = 400
    message = "Invalid request data."


class AuthenticationError(TicketingError):
    status_code = 401
    message = "Authentication failed."


class AdminRequiredError(TicketingError):
    status_code = 403
    message = "Access denied: Admin privileges required."


class NotFoundError(TicketingError):
    status_code = 404
    message = "Ticket not found."


class AlreadyRegisteredError(TicketingError):
    status_code = 409
    message = "This email is already registered."


class InvalidOtpError(TicketingError):
    status_code = 400
    message = "Invalid or expired OTP."


class NotVerifiedError(TicketingError):
    status_code = 400
    message = "Email not verified."


class DuplicateError(TicketingError):
    status_code = 409
    message = "A ticket with these details already exists."


class DuplicateCheckInError(TicketingError):
    status_code = 409
    message = "Ticket already checked in."

    def __init__(self, holder_name: str, check_in_time: Optional[datetime]):
        self.holder_name = holder_name
        self.check_in_time = check_in_time
        super().__init__(
            data={
                "holderName": holder_name,
                "checkInTime": as_utc(check_in_time).isoformat() if check_in_time else None,
            }
        )


class DependencyError(TicketingError):
    """Email or PDF provider failure. The public message never carries provider details."""

    status_code = 500
    message = "Operation failed."


class TicketDispatchError(DependencyError):
    message = "Registration complete, but the ticket email could not be sent. Please request it again."

    def __init__(self, ticket_id: str):
        self.ticket_id = ticket_id
        super().__init__(data={"ticket": {"id": ticket_id}})
