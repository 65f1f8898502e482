import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Tuple

from dotenv import load_dotenv

load_dotenv()

DEFAULT_JWT_SECRET = "supersecretkey"


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() == "true"


def _env_list(name: str, default: str = "") -> Tuple[str, ...]:
    raw_value = os.getenv(name, default)
    return tuple(item.strip() for item in raw_value.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    database_url: str
    event_name: str
    qr_token_prefix: str
    otp_ttl_minutes: int
    admin_emails: Tuple[str, ...]
    auth_disabled: bool
    auth_jwt_secret: str
    auth_jwt_algorithms: Tuple[str, ...]
    auth_jwt_issuer: str | None
    auth_jwt_audience: str | None
    mail_api_url: str
    mail_api_key: str
    mail_sender_name: str
    mail_sender_email: str
    mail_timeout_seconds: float
    cors_origins: Tuple[str, ...]
    log_level: str

    @property
    def uses_default_jwt_secret(self) -> bool:
        return self.auth_jwt_secret == DEFAULT_JWT_SECRET

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", "sqlite:///./tickets.db"),
            event_name=os.getenv("EVENT_NAME", "Event 2026"),
            qr_token_prefix=os.getenv("QR_TOKEN_PREFIX", "TICKET"),
            otp_ttl_minutes=int(os.getenv("OTP_TTL_MINUTES", "10")),
            admin_emails=_env_list("ADMIN_EMAILS"),
            auth_disabled=_env_bool("AUTH_DISABLED"),
            auth_jwt_secret=os.getenv("AUTH_JWT_SECRET", DEFAULT_JWT_SECRET),
            auth_jwt_algorithms=_env_list("AUTH_JWT_ALGORITHMS", "HS256"),
            auth_jwt_issuer=os.getenv("AUTH_JWT_ISSUER") or None,
            auth_jwt_audience=os.getenv("AUTH_JWT_AUDIENCE") or None,
            mail_api_url=os.getenv("MAIL_API_URL", "https://api.brevo.com/v3/smtp/email"),
            mail_api_key=os.getenv("MAIL_API_KEY", ""),
            mail_sender_name=os.getenv("MAIL_SENDER_NAME", "Registration System"),
            mail_sender_email=os.getenv("MAIL_SENDER_EMAIL", "no-reply@example.com"),
            mail_timeout_seconds=float(os.getenv("MAIL_TIMEOUT_SECONDS", "10")),
            cors_origins=_env_list("CORS_ORIGINS", "*"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
