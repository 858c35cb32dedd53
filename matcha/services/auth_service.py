"""
Matcha: Authentication Service

Registration, email verification, login/logout and password recovery.

Identity capabilities are injected rather than built in:

- ``PasswordHasher``: ``hash(password)`` / ``verify(password, digest)``;
  scrypt by default.
- ``Mailer``: delivers verification and reset links; the default only
  logs them.
- token generator: 32 random bytes, URL-safe.

One-time tokens are stored as their SHA-256 digest.  An expired, used or
unknown token is always reported the same way ("invalid or expired") so a
caller cannot tell the cases apart.
"""

from __future__ import annotations

import re
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Protocol

import structlog
from email_validator import EmailNotValidError, validate_email
from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from matcha.config import get_settings
from matcha.database import atomic
from matcha.errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from matcha.models.auth import EmailVerification, PasswordReset, UserPassword
from matcha.models.user import User, utcnow
from matcha.services.user_service import GENDERS, SEXUAL_PREFERENCES, UserService, require_user
from matcha.utils.sanitize import sanitize_email, sanitize_text, sanitize_username
from matcha.utils.security import (
    PasswordHasher,
    ScryptPasswordHasher,
    generate_token,
    hash_token,
    is_common_password,
)

logger = structlog.get_logger("matcha.auth_service")

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 50
MINIMUM_AGE = 18

_USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")
_INVALID_TOKEN = "Invalid or expired token."
_INVALID_CREDENTIALS = "Invalid username or password."


# ──────────────────────────────────────────────────────────────────────────────
# Mail delivery
# ──────────────────────────────────────────────────────────────────────────────

class Mailer(Protocol):
    async def send_verification(self, email: str, username: str, link: str) -> None: ...

    async def send_password_reset(self, email: str, username: str, link: str) -> None: ...


class LogMailer:
    """Development mailer: writes the links to the log instead of sending."""

    async def send_verification(self, email: str, username: str, link: str) -> None:
        logger.info("verification_mail", email=email, username=username, link=link)

    async def send_password_reset(self, email: str, username: str, link: str) -> None:
        logger.info("password_reset_mail", email=email, username=username, link=link)


# ──────────────────────────────────────────────────────────────────────────────
# Validation helpers
# ──────────────────────────────────────────────────────────────────────────────

def password_problems(password: str | None, min_length: int) -> list[str]:
    """Return every way *password* fails the password policy."""
    if not password:
        return ["Password is required."]

    problems: list[str] = []
    if len(password) < min_length:
        problems.append(f"Password must be at least {min_length} characters.")
    if not (
        any(c.isupper() for c in password)
        and any(c.islower() for c in password)
        and any(c.isdigit() for c in password)
    ):
        problems.append(
            "Password must contain at least one uppercase letter, one lowercase "
            "letter, and one number."
        )
    if is_common_password(password):
        problems.append("Password is too common.")
    return problems


def _years_between(born: date, today: date) -> int:
    years = today.year - born.year
    if (today.month, today.day) < (born.month, born.day):
        years -= 1
    return years


class AuthService:
    def __init__(
        self,
        hasher: PasswordHasher | None = None,
        mailer: Mailer | None = None,
        token_factory: Callable[[], str] = generate_token,
        users: UserService | None = None,
    ) -> None:
        self.hasher = hasher or ScryptPasswordHasher()
        self.mailer = mailer or LogMailer()
        self.token_factory = token_factory
        self.users = users or UserService()
        # Verified against when the account does not exist so both paths
        # cost one hash.
        self._dummy_hash = self.hasher.hash(uuid.uuid4().hex)

    # ── Registration ─────────────────────────────────────────────────────

    async def register(
        self,
        db_session: AsyncSession,
        *,
        username: str,
        email: str,
        password: str,
        confirm_password: str,
        first_name: str,
        last_name: str,
        birth_date: date | None,
        gender: str,
        sexual_preference: str = "both",
    ) -> User:
        """Create an unverified account and mail its verification link.

        Raises
        ------
        ValidationError
            With every problem found in the input.
        ConflictError
            If the username or email is already taken.
        """
        settings = get_settings()
        errors: list[str] = []

        clean_username = sanitize_username(username)
        if not username or not username.strip():
            errors.append("Username is required.")
        elif clean_username != username.strip() or not _USERNAME_PATTERN.match(clean_username):
            errors.append("Username can only contain letters, numbers, and underscores.")
        elif len(clean_username) < USERNAME_MIN_LENGTH:
            errors.append(f"Username must be at least {USERNAME_MIN_LENGTH} characters.")
        elif len(clean_username) > USERNAME_MAX_LENGTH:
            errors.append(f"Username must be at most {USERNAME_MAX_LENGTH} characters.")

        clean_email = ""
        if not email or not email.strip():
            errors.append("Email is required.")
        else:
            try:
                clean_email = validate_email(
                    sanitize_email(email), check_deliverability=False
                ).normalized.lower()
            except EmailNotValidError:
                errors.append("Invalid email format.")

        errors.extend(password_problems(password, settings.PASSWORD_MIN_LENGTH))
        if password != confirm_password:
            errors.append("Passwords do not match.")

        clean_first = sanitize_text(first_name)
        clean_last = sanitize_text(last_name)
        if not clean_first:
            errors.append("First name is required.")
        if not clean_last:
            errors.append("Last name is required.")

        if birth_date is None:
            errors.append("Birth date is required.")
        elif _years_between(birth_date, date.today()) < MINIMUM_AGE:
            errors.append(f"You must be at least {MINIMUM_AGE} years old.")

        if gender not in GENDERS:
            errors.append(f"Gender must be one of: {', '.join(GENDERS)}.")
        if sexual_preference not in SEXUAL_PREFERENCES:
            errors.append(
                f"Sexual preference must be one of: {', '.join(SEXUAL_PREFERENCES)}."
            )

        if errors:
            logger.info("registration_rejected", error_count=len(errors))
            raise ValidationError(errors)

        token = self.token_factory()
        async with atomic(db_session):
            taken = (
                await db_session.execute(
                    select(User.username, User.email).where(
                        or_(User.username == clean_username, User.email == clean_email)
                    )
                )
            ).first()
            if taken is not None:
                field = "Username" if taken.username == clean_username else "Email"
                raise ConflictError(f"{field} is already taken.", code="already_registered")

            user = User(
                username=clean_username,
                email=clean_email,
                first_name=clean_first,
                last_name=clean_last,
                birth_date=birth_date,
                gender=gender,
                sexual_preference=sexual_preference,
            )
            db_session.add(user)
            await db_session.flush()

            db_session.add(UserPassword(user_id=user.id, password_hash=self.hasher.hash(password)))
            db_session.add(EmailVerification(
                user_id=user.id,
                token_hash=hash_token(token),
                expires_at=utcnow() + timedelta(hours=settings.EMAIL_VERIFICATION_TTL_HOURS),
            ))
            await db_session.flush()

        logger.info("user_registered", user_id=str(user.id), username=user.username)
        await self._deliver(
            self.mailer.send_verification,
            user,
            f"{settings.APP_BASE_URL}/verify-email?token={token}",
        )
        return user

    async def verify_email(self, db_session: AsyncSession, token: str) -> User:
        """Consume a verification token and mark its owner verified.

        Raises
        ------
        NotFoundError
            If the token is unknown, used or expired.
        """
        async with atomic(db_session):
            verification = await self._live_token(db_session, EmailVerification, token)
            verification.is_used = True
            user = await require_user(db_session, verification.user_id, active=False)
            user.is_email_verified = True
            user.email_verified_at = utcnow()
            await db_session.flush()

        logger.info("email_verified", user_id=str(user.id))
        return user

    # ── Sessions ─────────────────────────────────────────────────────────

    async def login(self, db_session: AsyncSession, identifier: str, password: str) -> User:
        """Authenticate by username or email and mark the user online.

        Raises
        ------
        ValidationError
            If either field is empty.
        AuthenticationError
            Bad credentials (``invalid_credentials``), unverified email
            (``email_not_verified``) or a deactivated account
            (``account_deactivated``).
        """
        errors: list[str] = []
        if not identifier or not identifier.strip():
            errors.append("Username or email is required.")
        if not password:
            errors.append("Password is required.")
        if errors:
            raise ValidationError(errors)

        identifier = identifier.strip()
        stmt = (
            select(User, UserPassword.password_hash)
            .join(UserPassword, UserPassword.user_id == User.id)
            .where(or_(User.username == identifier, User.email == identifier.lower()))
        )
        row = (await db_session.execute(stmt)).first()

        if row is None:
            self.hasher.verify(password, self._dummy_hash)
            logger.info("login_failed", reason="unknown_user")
            raise AuthenticationError(_INVALID_CREDENTIALS)

        user, password_hash = row
        log = logger.bind(user_id=str(user.id))

        if not self.hasher.verify(password, password_hash):
            log.info("login_failed", reason="bad_password")
            raise AuthenticationError(_INVALID_CREDENTIALS)

        if get_settings().REQUIRE_EMAIL_VERIFICATION and not user.is_email_verified:
            log.info("login_failed", reason="email_not_verified")
            raise AuthenticationError(
                "Please verify your email before logging in.", code="email_not_verified"
            )

        if not user.is_active:
            log.info("login_failed", reason="deactivated")
            raise AuthenticationError(
                "This account has been deactivated.", code="account_deactivated"
            )

        await self.users.set_online(db_session, user.id)
        log.info("login_succeeded")
        return user

    async def logout(self, db_session: AsyncSession, user_id: uuid.UUID) -> None:
        await self.users.set_offline(db_session, user_id)
        logger.info("logout", user_id=str(user_id))

    # ── Passwords ────────────────────────────────────────────────────────

    async def request_password_reset(self, db_session: AsyncSession, email: str) -> None:
        """Mail a reset link.  Unknown addresses are ignored silently."""
        settings = get_settings()
        user = await self.users.get_by_email(db_session, sanitize_email(email))
        if user is None or not user.is_active:
            logger.info("password_reset_ignored")
            return

        token = self.token_factory()
        async with atomic(db_session):
            # Only the newest link stays usable.
            await db_session.execute(
                update(PasswordReset)
                .where(PasswordReset.user_id == user.id, PasswordReset.is_used.is_(False))
                .values(is_used=True)
            )
            db_session.add(PasswordReset(
                user_id=user.id,
                token_hash=hash_token(token),
                expires_at=utcnow() + timedelta(hours=settings.PASSWORD_RESET_TTL_HOURS),
            ))
            await db_session.flush()

        logger.info("password_reset_requested", user_id=str(user.id))
        await self._deliver(
            self.mailer.send_password_reset,
            user,
            f"{settings.APP_BASE_URL}/reset-password?token={token}",
        )

    async def reset_password(
        self,
        db_session: AsyncSession,
        token: str,
        new_password: str,
    ) -> None:
        """Set a new password using a reset token.

        Raises
        ------
        ValidationError
            If the new password breaks the policy.
        NotFoundError
            If the token is unknown, used or expired.
        """
        problems = password_problems(new_password, get_settings().PASSWORD_MIN_LENGTH)
        if problems:
            raise ValidationError(problems)

        async with atomic(db_session):
            reset = await self._live_token(db_session, PasswordReset, token)
            reset.is_used = True
            await self._store_password(db_session, reset.user_id, new_password)

        logger.info("password_reset_completed", user_id=str(reset.user_id))

    async def change_password(
        self,
        db_session: AsyncSession,
        user_id: uuid.UUID,
        current_password: str,
        new_password: str,
    ) -> None:
        problems = password_problems(new_password, get_settings().PASSWORD_MIN_LENGTH)
        if new_password and new_password == current_password:
            problems.append("New password must be different from the current password.")
        if problems:
            raise ValidationError(problems)

        async with atomic(db_session):
            credentials = await self._credentials(db_session, user_id)
            if not self.hasher.verify(current_password, credentials.password_hash):
                logger.info("password_change_failed", user_id=str(user_id))
                raise AuthenticationError("Current password is incorrect.")
            credentials.password_hash = self.hasher.hash(new_password)
            await db_session.flush()

        logger.info("password_changed", user_id=str(user_id))

    # ── Private helpers ──────────────────────────────────────────────────

    async def _live_token(self, db_session: AsyncSession, model, token: str):
        if not token:
            raise NotFoundError(_INVALID_TOKEN)
        stmt = select(model).where(
            model.token_hash == hash_token(token),
            model.is_used.is_(False),
            model.expires_at > datetime.now(timezone.utc),
        )
        record = (await db_session.execute(stmt)).scalar_one_or_none()
        if record is None:
            logger.info("token_rejected", kind=model.__tablename__)
            raise NotFoundError(_INVALID_TOKEN)
        return record

    async def _credentials(self, db_session: AsyncSession, user_id: uuid.UUID) -> UserPassword:
        stmt = select(UserPassword).where(UserPassword.user_id == user_id)
        credentials = (await db_session.execute(stmt)).scalar_one_or_none()
        if credentials is None:
            raise NotFoundError(f"User {user_id} not found.")
        return credentials

    async def _store_password(
        self,
        db_session: AsyncSession,
        user_id: uuid.UUID,
        password: str,
    ) -> None:
        credentials = await self._credentials(db_session, user_id)
        credentials.password_hash = self.hasher.hash(password)
        await db_session.flush()

    async def _deliver(self, send, user: User, link: str) -> None:
        # The account change is already committed; a mail failure is logged
        # for the operator instead of failing the request.
        try:
            await send(user.email, user.username, link)
        except Exception:
            logger.exception("mail_delivery_failed", user_id=str(user.id))
