"""
PIN authentication for the single local user.

Lockout is evaluated lazily: a credential stays "locked" in the table until
the next login attempt notices that `locked_until` has passed.
"""
from __future__ import annotations

import logging
import math
import re
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Any, Callable, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.orm import Session

from .config import Settings
from .database import Credential, as_utc, utcnow
from .errors import (
    AuthError,
    ConflictError,
    InvalidCredentialError,
    LockedError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

PIN_RE = re.compile(r"[0-9]{6}")


@lru_cache(maxsize=None)
def _pwd_context(rounds: int) -> CryptContext:
    return CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)


def validate_pin(pin: Any) -> str:
    if not isinstance(pin, str) or not PIN_RE.fullmatch(pin):
        raise ValidationError("PIN must be exactly 6 digits")
    return pin


class AuthService:
    def __init__(
        self,
        session: Session,
        settings: Settings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.settings = settings
        self.clock = clock
        self.pwd_context = _pwd_context(settings.bcrypt_rounds)

    # ---- Credential store ----

    def get_credential(self) -> Optional[Credential]:
        return self.session.execute(select(Credential).limit(1)).scalar_one_or_none()

    def get_credential_by_id(self, user_id: str) -> Optional[Credential]:
        return self.session.get(Credential, user_id)

    def _save(self, credential: Credential) -> None:
        self.session.add(credential)
        self.session.commit()

    # ---- Operations ----

    def status(self) -> dict:
        has_user = self.get_credential() is not None
        return {"has_user": has_user, "requires_setup": not has_user}

    def setup(self, pin: Any) -> Credential:
        validate_pin(pin)
        if self.get_credential() is not None:
            raise ConflictError("A PIN is already configured")

        credential = Credential(
            pin_hash=self.pwd_context.hash(pin),
            failed_attempts=0,
            locked_until=None,
            created_at=self.clock(),
        )
        self._save(credential)
        logger.info("Created credential %s", credential.id)
        return credential

    def login(self, pin: Any) -> dict:
        validate_pin(pin)
        credential = self.get_credential()
        if credential is None:
            raise NotFoundError("No user found. Please create your PIN first.")

        now = self.clock()
        locked_until = as_utc(credential.locked_until)
        if locked_until is not None:
            if now < locked_until:
                remaining = math.ceil((locked_until - now).total_seconds())
                logger.warning("Login refused, credential locked for %ss", remaining)
                raise LockedError(remaining)
            credential.failed_attempts = 0
            credential.locked_until = None
            self._save(credential)

        if not self.pwd_context.verify(pin, credential.pin_hash):
            raise self._register_failure(credential, now)

        credential.failed_attempts = 0
        credential.locked_until = None
        self._save(credential)
        logger.info("Login succeeded for credential %s", credential.id)
        return {"token": self.create_access_token(credential.id), "user": credential}

    def _register_failure(self, credential: Credential, now: datetime) -> Exception:
        threshold = self.settings.max_failed_attempts
        failed = (credential.failed_attempts or 0) + 1
        credential.failed_attempts = failed

        if failed >= threshold:
            window = self.settings.lockout_seconds
            credential.locked_until = now + timedelta(seconds=window)
            self._save(credential)
            logger.warning("Credential %s locked for %ss after %d failed attempts", credential.id, window, failed)
            return LockedError(
                window,
                f"Incorrect PIN. Too many failed attempts. Access locked for {window} seconds.",
            )

        self._save(credential)
        logger.info("Incorrect PIN for credential %s (%d/%d)", credential.id, failed, threshold)
        return InvalidCredentialError(threshold - failed)

    # ---- Tokens ----

    def create_access_token(self, user_id: str, expires_delta: Optional[timedelta] = None) -> str:
        expire = self.clock() + (expires_delta or timedelta(days=self.settings.jwt_expires_days))
        return jwt.encode(
            {"sub": user_id, "exp": expire},
            self.settings.jwt_secret,
            algorithm=self.settings.jwt_algorithm,
        )

    def verify_token(self, token: str) -> Credential:
        try:
            payload = jwt.decode(token, self.settings.jwt_secret, algorithms=[self.settings.jwt_algorithm])
        except JWTError as exc:
            logger.info("Rejected token: %s", exc)
            raise AuthError("Invalid token", status_code=403) from exc

        user_id = payload.get("sub")
        if not user_id:
            raise AuthError("Invalid token", status_code=403)
        credential = self.get_credential_by_id(user_id)
        if credential is None:
            raise AuthError("User not found", status_code=403)
        return credential
