"""
Authentication: password hashing, JWT sessions and one-time recovery codes.
"""
import logging
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Set

from email_validator import EmailNotValidError, validate_email
from fastapi import Depends, Header, HTTPException, Request
from jose import JWTError, jwt
from passlib.context import CryptContext

from orderkaro.client import DataClient
from orderkaro.errors import ErrorKind, RemoteError, validation_error

logger = logging.getLogger(__name__)

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ALGORITHM = "HS256"
MIN_PASSWORD_LENGTH = 6
OTP_EXPIRE_MINUTES = 15
BLOCKED_EMAIL_DOMAINS = {"example.com", "test.com", "localhost"}


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    return pwd_context.verify(plain_password, hashed_password)


def normalize_email(email: Optional[str]) -> str:
    """
    Trim, lowercase and validate an email address.

    Raises a validation error for missing, malformed or blocked addresses.
    """
    if not email or not email.strip():
        raise validation_error("Email is required")
    sanitized = email.strip().lower()
    try:
        normalized = validate_email(sanitized, check_deliverability=False).normalized
    except EmailNotValidError:
        raise validation_error("Email format is invalid")

    domain = normalized.rsplit("@", 1)[-1]
    if domain in BLOCKED_EMAIL_DOMAINS:
        raise validation_error(f"Email domain {domain} is not allowed")
    return normalized


def check_password(password: Optional[str]) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise validation_error(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")


def public_user(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "name": row["name"],
        "email": row["email"],
        "is_admin": row["is_admin"],
    }


def _aware(value) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class AuthSession:
    access_token: str
    user: Dict[str, Any] = field(default_factory=dict)
    token_type: str = "bearer"

    def to_dict(self):
        return {"access_token": self.access_token, "token_type": self.token_type, "user": self.user}


class AuthClient:
    """Sign-up, sign-in and session handling against the users table."""

    def __init__(self, data: DataClient, secret_key: str, expire_days: int = 7):
        self._data = data
        self._secret_key = secret_key
        self.expire_days = expire_days
        # jti of signed-out tokens; kept for the life of the process
        self._revoked: Set[str] = set()

    def create_access_token(self, user_id: int, expires_delta: Optional[timedelta] = None) -> str:
        """
        Create a JWT access token for a user.

        Args:
            user_id: The user the token identifies.
            expires_delta: Optional expiration time delta. Defaults to expire_days.

        Returns:
            Encoded JWT token string
        """
        if expires_delta is None:
            expires_delta = timedelta(days=self.expire_days)
        expire = datetime.now(timezone.utc) + expires_delta
        to_encode = {"sub": str(user_id), "jti": uuid.uuid4().hex, "exp": expire}
        return jwt.encode(to_encode, self._secret_key, algorithm=ALGORITHM)

    def _decode(self, token: str) -> Dict[str, Any]:
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[ALGORITHM])
        except JWTError:
            raise RemoteError(ErrorKind.AUTH, "Invalid or expired token")
        if payload.get("sub") is None:
            raise RemoteError(ErrorKind.AUTH, "Invalid token payload")
        return payload

    def _session_for(self, user: Dict[str, Any]) -> AuthSession:
        return AuthSession(access_token=self.create_access_token(user["id"]), user=public_user(user))

    def sign_up(self, name: str, email: str, password: str) -> AuthSession:
        if not name or not name.strip():
            raise validation_error("Name is required")
        email = normalize_email(email)
        check_password(password)

        existing = self._data.table("users").eq("email", email).maybe_single()
        if existing is not None:
            raise RemoteError(ErrorKind.CONFLICT, "User already exists")

        user = self._data.table("users").insert({
            "name": name.strip(),
            "email": email,
            "password_hash": hash_password(password),
            "is_admin": False,
        })[0]
        logger.info("Registered user %s", user["id"])
        return self._session_for(user)

    def sign_in(self, email: str, password: str) -> AuthSession:
        email = normalize_email(email)
        if not password:
            raise validation_error("Password is required")

        user = self._data.table("users").eq("email", email).maybe_single()
        if user is None or not verify_password(password, user["password_hash"]):
            raise RemoteError(ErrorKind.AUTH, "Invalid credentials")
        return self._session_for(user)

    def sign_out(self, token: str) -> None:
        payload = self._decode(token)
        if payload.get("jti"):
            self._revoked.add(payload["jti"])

    def get_session(self, token: str) -> Dict[str, Any]:
        """Return the public user behind a token."""
        payload = self._decode(token)
        if payload.get("jti") in self._revoked:
            raise RemoteError(ErrorKind.AUTH, "Session has been signed out")

        user = self._data.table("users").eq("id", int(payload["sub"])).maybe_single()
        if user is None:
            raise RemoteError(ErrorKind.AUTH, "User not found")
        return public_user(user)

    def update_password(self, user_id: int, new_password: str) -> None:
        check_password(new_password)
        updated = self._data.table("users").eq("id", user_id).update(
            {"password_hash": hash_password(new_password)}
        )
        if not updated:
            raise RemoteError(ErrorKind.NOT_FOUND, "User not found")

    def reset_password_for_email(self, email: str) -> Optional[str]:
        """
        Issue a one-time recovery code.

        Returns the code so the caller can deliver it, or None when the
        email is unknown. Callers must not reveal which case happened.
        """
        email = normalize_email(email)
        user = self._data.table("users").eq("email", email).maybe_single()
        if user is None:
            return None

        code = f"{secrets.randbelow(10 ** 6):06d}"
        self._data.table("one_time_codes").insert({
            "user_id": user["id"],
            "code_hash": hash_password(code),
            "purpose": "recovery",
            "expires_at": datetime.now(timezone.utc) + timedelta(minutes=OTP_EXPIRE_MINUTES),
        })
        return code

    def verify_otp(self, email: str, code: str) -> AuthSession:
        """Exchange a valid recovery code for a session; each code works once."""
        email = normalize_email(email)
        if not code:
            raise validation_error("Code is required")

        user = self._data.table("users").eq("email", email).maybe_single()
        if user is None:
            raise RemoteError(ErrorKind.AUTH, "Invalid or expired code")

        now = datetime.now(timezone.utc)
        candidates = (
            self._data.table("one_time_codes")
            .eq("user_id", user["id"])
            .eq("used", False)
            .order("created_at", ascending=False)
            .select()
        )
        for candidate in candidates:
            if _aware(candidate["expires_at"]) < now:
                continue
            if verify_password(code, candidate["code_hash"]):
                self._data.table("one_time_codes").eq("id", candidate["id"]).update({"used": True})
                return self._session_for(user)

        raise RemoteError(ErrorKind.AUTH, "Invalid or expired code")


# ============================================================================
# FASTAPI DEPENDENCIES
# ============================================================================

def get_auth_client(request: Request) -> AuthClient:
    return request.app.state.services.auth


def bearer_token(authorization: Optional[str] = Header(default=None)) -> str:
    """Read the token from an `Authorization: Bearer <token>` header."""
    if not authorization:
        raise HTTPException(
            status_code=401,
            detail="Not authorized, no token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=401,
            detail="Invalid authentication header format",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return parts[1]


def get_current_user(
    token: str = Depends(bearer_token),
    auth: AuthClient = Depends(get_auth_client),
) -> Dict[str, Any]:
    """Dependency returning the authenticated user for the request."""
    try:
        return auth.get_session(token)
    except RemoteError as error:
        if error.kind != ErrorKind.AUTH:
            raise
        raise HTTPException(
            status_code=401,
            detail="Not authorized, token failed",
            headers={"WWW-Authenticate": "Bearer"},
        )


def require_admin(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    if not user.get("is_admin"):
        raise HTTPException(status_code=403, detail="Not authorized as an admin")
    return user
