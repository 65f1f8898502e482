from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from jose import JWTError, jwt

from app_logger import get_logger
from errors import AuthenticationError

logger = get_logger("auth")


@dataclass(frozen=True)
class Identity:
    subject: str
    email: Optional[str]
    email_verified: bool


class TokenVerifier:
    """Verifies bearer tokens minted by the identity provider and extracts the caller's identity."""

    def __init__(
        self,
        secret: str,
        algorithms: Sequence[str] = ("HS256",),
        issuer: Optional[str] = None,
        audience: Optional[str] = None,
    ):
        self.secret = secret
        self.algorithms = list(algorithms)
        self.issuer = issuer
        self.audience = audience

    def verify(self, token: str) -> Identity:
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=self.algorithms,
                issuer=self.issuer,
                audience=self.audience,
                options={"verify_aud": self.audience is not None},
            )
        except JWTError as exc:
            raise AuthenticationError("Invalid token.") from exc

        subject: str | None = payload.get("sub")
        if not subject:
            raise AuthenticationError("Invalid token.")
        email: str | None = payload.get("email")
        return Identity(
            subject=subject,
            email=email.strip().lower() if email else None,
            email_verified=bool(payload.get("email_verified", False)),
        )


class AdminPolicy:
    def __init__(self, admin_emails: Iterable[str]):
        self.admin_emails = frozenset(email.strip().lower() for email in admin_emails if email.strip())

    def is_admin(self, identity: Identity) -> bool:
        if not identity.email or not identity.email_verified:
            return False
        return identity.email in self.admin_emails
