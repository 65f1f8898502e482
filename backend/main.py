from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

import models
import schemas
from app_logger import get_logger, setup_logging
from auth import AdminPolicy, Identity, TokenVerifier
from checkin import CheckInWorkflow, Duplicate
from config import Settings, get_settings
from dashboard import Dashboard
from database import engine, get_db
from errors import AdminRequiredError, AuthenticationError, DuplicateCheckInError, TicketingError
from issuance import TicketIssuance
from mail_service import BrevoMailer
from otp_service import OtpIssuer
from pdf_service import WeasyPrintRenderer
from registration import RegistrationWorkflow
from retrieval import LoginWorkflow
from ticket_store import TicketStore

setup_logging(get_settings().log_level)
logger = get_logger("api")

models.Base.metadata.create_all(bind=engine)


def warn_insecure_defaults(settings: Settings) -> None:
    if not settings.auth_disabled and settings.uses_default_jwt_secret:
        logger.warning("AUTH_JWT_SECRET is not set; admin tokens are signed with the built-in default")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    warn_insecure_defaults(settings)
    app.state.mailer = BrevoMailer.from_settings(settings)
    app.state.pdf_renderer = WeasyPrintRenderer()
    logger.info("Collaborators ready for %s", settings.event_name)
    yield
    app.state.mailer.close()


app = FastAPI(title="Event Ticketing API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(get_settings().cors_origins),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

admin_bearer = HTTPBearer(auto_error=False)


# ------------- Error mapping -------------

@app.exception_handler(TicketingError)
async def ticketing_error_handler(request: Request, exc: TicketingError):
    content = {"message": exc.message}
    if exc.data is not None:
        content["data"] = exc.data
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(part) for part in error["loc"][1:]), "message": error["msg"]}
        for error in exc.errors()
    ]
    message = f"{errors[0]['field']}: {errors[0]['message']}" if errors else "Invalid request data."
    return JSONResponse(status_code=400, content={"message": message, "errors": errors})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": "Operation failed."})


# ------------- Dependencies -------------

def get_clock() -> Callable[[], datetime]:
    return models.utcnow


def get_mailer(request: Request):
    return request.app.state.mailer


def get_pdf_renderer(request: Request):
    return request.app.state.pdf_renderer


def get_store(db: Session = Depends(get_db)) -> TicketStore:
    return TicketStore(db)


def get_otp_issuer(
    store: TicketStore = Depends(get_store),
    mailer=Depends(get_mailer),
    settings: Settings = Depends(get_settings),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> OtpIssuer:
    return OtpIssuer(store, mailer, ttl_minutes=settings.otp_ttl_minutes, clock=clock)


def get_issuance(
    store: TicketStore = Depends(get_store),
    pdf_renderer=Depends(get_pdf_renderer),
    mailer=Depends(get_mailer),
    settings: Settings = Depends(get_settings),
) -> TicketIssuance:
    return TicketIssuance(store, pdf_renderer, mailer, settings.event_name, settings.qr_token_prefix)


def get_registration(
    store: TicketStore = Depends(get_store),
    otp: OtpIssuer = Depends(get_otp_issuer),
    issuance: TicketIssuance = Depends(get_issuance),
) -> RegistrationWorkflow:
    return RegistrationWorkflow(store, otp, issuance)


def get_login(store: TicketStore = Depends(get_store), otp: OtpIssuer = Depends(get_otp_issuer)) -> LoginWorkflow:
    return LoginWorkflow(store, otp)


def get_checkin(
    store: TicketStore = Depends(get_store),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> CheckInWorkflow:
    return CheckInWorkflow(store, clock=clock)


def get_dashboard(store: TicketStore = Depends(get_store)) -> Dashboard:
    return Dashboard(store)


def get_token_verifier(settings: Settings = Depends(get_settings)) -> TokenVerifier:
    return TokenVerifier(
        settings.auth_jwt_secret,
        algorithms=settings.auth_jwt_algorithms,
        issuer=settings.auth_jwt_issuer,
        audience=settings.auth_jwt_audience,
    )


def get_admin_policy(settings: Settings = Depends(get_settings)) -> AdminPolicy:
    return AdminPolicy(settings.admin_emails)


def get_admin_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(admin_bearer),
    settings: Settings = Depends(get_settings),
    verifier: TokenVerifier = Depends(get_token_verifier),
    policy: AdminPolicy = Depends(get_admin_policy),
) -> Identity:
    if settings.auth_disabled:
        return Identity(subject="admin", email=next(iter(settings.admin_emails), None), email_verified=True)
    if credentials is None:
        raise AuthenticationError("No authorization token provided.")
    identity = verifier.verify(credentials.credentials)
    if not policy.is_admin(identity):
        logger.warning("Admin access denied for subject %s", identity.subject)
        raise AdminRequiredError()
    return identity


# ------------- Routes -------------

@app.get("/", response_model=schemas.MessageResponse)
def read_root():
    return {"message": "Welcome to the Event Ticketing API"}


@app.post("/user/initiate-verification", response_model=schemas.MessageResponse)
def initiate_verification(
    req: schemas.InitiateVerificationRequest,
    registration: RegistrationWorkflow = Depends(get_registration),
):
    registration.initiate(req.email, req.name)
    return {"message": "OTP sent successfully."}


@app.post("/user/verify-otp", response_model=schemas.MessageResponse)
def verify_otp(req: schemas.VerifyOtpRequest, registration: RegistrationWorkflow = Depends(get_registration)):
    registration.verify_email(req.email, req.otp)
    return {"message": "Email verified successfully."}


@app.post("/user/complete-registration", response_model=schemas.CompleteRegistrationResponse)
def complete_registration(
    req: schemas.CompleteRegistrationRequest,
    registration: RegistrationWorkflow = Depends(get_registration),
):
    details = {
        "holder_name": req.name,
        "holder_phone": req.phone,
        "holder_gender": req.gender.value,
        "holder_dob": req.dob,
        "holder_referral_source": req.referral_source,
        "holder_referral_details": req.referral_details or "",
        "holder_buying_interest": req.buying_interest,
        "holder_buying_interest_details": req.buying_interest_details or "",
    }
    ticket = registration.complete(req.email, details)
    return {"message": "Registration complete!", "ticket": {"id": ticket.id}}


@app.post("/user/resend-otp", response_model=schemas.MessageResponse)
def resend_otp(req: schemas.EmailRequest, registration: RegistrationWorkflow = Depends(get_registration)):
    registration.resend(req.email)
    return {"message": "OTP resent successfully."}


@app.post("/user/check-email", response_model=schemas.EmailStatusResponse)
def check_email(req: schemas.EmailRequest, registration: RegistrationWorkflow = Depends(get_registration)):
    if registration.check_email(req.email):
        return {"exists": True, "message": "This email is already registered."}
    return {"exists": False, "message": "Email is available."}


@app.post("/user/send-login-otp", response_model=schemas.MessageResponse)
def send_login_otp(req: schemas.EmailRequest, login: LoginWorkflow = Depends(get_login)):
    login.request_login(req.email)
    return {"message": "OTP sent to your email."}


@app.post("/user/verify-login-otp", response_model=schemas.LoginResponse)
def verify_login_otp(req: schemas.VerifyOtpRequest, login: LoginWorkflow = Depends(get_login)):
    ticket, qr_code = login.verify_login(req.email, req.otp)
    view = schemas.TicketView(
        id=ticket.id,
        holder_name=ticket.holder_name,
        email=ticket.holder_email,
        phone=ticket.holder_phone,
        gender=ticket.holder_gender,
        dob=ticket.holder_dob,
        qr_code=qr_code,
    )
    return schemas.LoginResponse(message="Login successful.", ticket=view)


@app.get("/user/ticket/{ticket_id}/download")
def download_ticket(ticket_id: str, issuance: TicketIssuance = Depends(get_issuance)):
    filename, pdf = issuance.download(ticket_id)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/user/ticket/{ticket_id}/email", response_model=schemas.MessageResponse)
def email_ticket(ticket_id: str, issuance: TicketIssuance = Depends(get_issuance)):
    issuance.resend_email(ticket_id)
    return {"message": "Ticket email sent successfully!"}


@app.post("/admin/validate-ticket", response_model=schemas.ValidateTicketResponse)
def validate_ticket(
    req: schemas.ScanRequest,
    checkin: CheckInWorkflow = Depends(get_checkin),
    admin: Identity = Depends(get_admin_identity),
):
    outcome = checkin.validate(req.qr_data)
    if isinstance(outcome, Duplicate):
        raise DuplicateCheckInError(outcome.holder_name, outcome.check_in_time)
    return schemas.ValidateTicketResponse(
        message="Valid ticket",
        data=schemas.AttendeeDetails.model_validate(outcome.ticket),
    )


@app.post("/admin/checkin", response_model=schemas.CheckInResponse)
def check_in_ticket(
    req: schemas.ScanRequest,
    checkin: CheckInWorkflow = Depends(get_checkin),
    admin: Identity = Depends(get_admin_identity),
):
    outcome = checkin.check_in(req.qr_data)
    if isinstance(outcome, Duplicate):
        raise DuplicateCheckInError(outcome.holder_name, outcome.check_in_time)
    logger.info("Check-in of ticket %s recorded by %s", outcome.ticket.id, admin.email)
    return schemas.CheckInResponse(
        message="Check-in successful",
        data=schemas.CheckInDetails.model_validate(outcome.ticket),
    )


@app.get("/admin/tickets", response_model=schemas.TicketListResponse)
def list_tickets(dashboard: Dashboard = Depends(get_dashboard), admin: Identity = Depends(get_admin_identity)):
    tickets = [schemas.AdminTicket.model_validate(ticket) for ticket in dashboard.list_tickets()]
    return schemas.TicketListResponse(count=len(tickets), tickets=tickets)


@app.get("/admin/stats", response_model=schemas.DashboardStatsResponse)
def dashboard_stats(dashboard: Dashboard = Depends(get_dashboard), admin: Identity = Depends(get_admin_identity)):
    stats = dashboard.stats()
    return schemas.DashboardStatsResponse(
        metrics=schemas.DashboardMetrics(**stats["metrics"]),
        recent_check_ins=[schemas.RecentCheckIn.model_validate(ticket) for ticket in stats["recent_check_ins"]],
    )
