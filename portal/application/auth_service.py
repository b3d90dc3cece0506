from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, TypeVar

from werkzeug.security import check_password_hash

from portal.domain.contracts import ROLE_VENDOR, AuthLoginInput, AuthRegisterInput, AuthUser
from portal.errors import UpstreamUnavailable, ValidationError
from portal.infrastructure.repositories.auth_repository import AuthRepository
from portal.policies import normalize_role


logger = logging.getLogger("portal")

T = TypeVar("T")

MIN_PASSWORD_LENGTH = 6


class AuthService:
    def __init__(
        self,
        repository: AuthRepository | None = None,
        *,
        retry_attempts: int = 3,
        retry_backoff_ms: int = 200,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.repository = repository or AuthRepository()
        self.retry_attempts = max(1, int(retry_attempts))
        self.retry_backoff_ms = max(0, int(retry_backoff_ms))
        self._sleep = sleep

    def configure_retry(self, attempts: int, backoff_ms: int) -> None:
        self.retry_attempts = max(1, int(attempts))
        self.retry_backoff_ms = max(0, int(backoff_ms))

    def _with_retry(self, operation: str, call: Callable[[], T]) -> T:
        """Retry transient identity store failures with linear backoff."""
        attempt = 1
        while True:
            try:
                return call()
            except UpstreamUnavailable as exc:
                if attempt >= self.retry_attempts:
                    logger.error(
                        "auth_retry_exhausted",
                        extra={"operation": operation, "attempts": attempt, "details": exc.details},
                    )
                    raise
                delay = (self.retry_backoff_ms * attempt) / 1000.0
                logger.warning(
                    "auth_retry",
                    extra={"operation": operation, "attempt": attempt, "delay_seconds": delay},
                )
                self._sleep(delay)
                attempt += 1

    def login(self, db, auth_input: AuthLoginInput, raw_users: object) -> AuthUser | None:
        email = (auth_input.email or "").strip().lower()
        password = auth_input.password or ""
        if not email or not password:
            return None
        return self._with_retry("login", lambda: self._login(db, email, password, raw_users))

    def _login(self, db, email: str, password: str, raw_users: object) -> AuthUser | None:
        db_user = self.repository.find_user_by_email(db, email)
        if db_user and check_password_hash(db_user["password_hash"], password):
            return AuthUser(
                user_id=db_user["id"],
                email=db_user["email"],
                display_name=db_user.get("display_name") or db_user["email"].split("@")[0],
                role=normalize_role(db_user.get("role")),
            )
        if db_user:
            return None

        for user in self._parse_users(raw_users):
            if user["email"] == email and user["password"] == password:
                self._provision(db, user)
                return AuthUser(
                    user_id=user["user_id"],
                    email=user["email"],
                    display_name=user["display_name"],
                    role=user["role"],
                )
        return None

    def _provision(self, db, user: dict) -> None:
        # Configured users get an auth_users row so officers can receive notifications.
        if self.repository.user_id_exists(db, user["user_id"]):
            return
        self.repository.create_user(
            db,
            email=user["email"],
            password=user["password"],
            display_name=user["display_name"],
            role=user["role"],
            user_id=user["user_id"],
        )
        logger.info("configured_user_provisioned", extra={"user_id": user["user_id"], "role": user["role"]})

    def register(self, db, auth_input: AuthRegisterInput) -> AuthUser:
        email = (auth_input.email or "").strip().lower()
        password = auth_input.password or ""
        display_name = (auth_input.display_name or "").strip() or None
        if not email or not password:
            raise ValidationError(code="auth_missing_credentials")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(code="password_too_short")

        return self._with_retry("register", lambda: self._register(db, email, password, display_name))

    def _register(self, db, email: str, password: str, display_name: str | None) -> AuthUser:
        if self.repository.email_exists(db, email):
            raise ValidationError(
                code="email_already_registered",
                message_key="email_already_registered",
                http_status=400,
                critical=False,
            )

        user_id = self.repository.create_user(
            db,
            email=email,
            password=password,
            display_name=display_name,
            role=ROLE_VENDOR,
        )
        return AuthUser(
            user_id=user_id,
            email=email,
            display_name=display_name or email.split("@")[0],
            role=ROLE_VENDOR,
        )

    @staticmethod
    def _parse_users(raw_users: object) -> Iterable[dict]:
        if not raw_users:
            return []
        if isinstance(raw_users, str):
            entries = []
            for chunk in raw_users.replace("\n", ",").replace(";", ",").split(","):
                entry = chunk.strip()
                if entry:
                    entries.append(entry)
        elif isinstance(raw_users, (list, tuple, set)):
            entries = [str(item).strip() for item in raw_users if str(item).strip()]
        else:
            return []

        users = []
        for entry in entries:
            parts = [part.strip() for part in entry.split(":")]
            if len(parts) < 4:
                continue
            email, password = parts[0].lower(), parts[1]
            role = normalize_role(parts[2], default="")
            user_id = parts[3]
            if not role or not user_id:
                logger.warning("configured_user_skipped", extra={"email": email})
                continue
            display_name = parts[4] if len(parts) > 4 and parts[4] else email.split("@")[0]
            users.append(
                {
                    "email": email,
                    "password": password,
                    "role": role,
                    "user_id": user_id,
                    "display_name": display_name,
                }
            )
        return users
