from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Tuple

import bcrypt
import jwt

from pharmapos.config import settings
from pharmapos.db.sqlite import (
    find_active_pharmacist,
    find_active_user,
    find_user_by_email,
    open_sales_session,
    update_user_password,
)
from pharmapos.services.mailer import send_password_reset_email

log = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"


def _mask(v: str) -> str:
    v = str(v or "")
    return "*" * len(v) if len(v) <= 2 else v[:1] + "*" * (len(v) - 2) + v[-1:]


def hash_secret(plain: str) -> str:
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def check_secret(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # не bcrypt-хэш в базе
        return False


def issue_token(claims: Dict[str, Any], hours: int) -> str:
    now = datetime.now(timezone.utc)
    payload = dict(claims)
    payload["iat"] = now
    payload["exp"] = now + timedelta(hours=hours)
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    return jwt.decode(token, settings.jwt_secret, algorithms=[JWT_ALGORITHM])


# ---------------- PMS (admin / manager) ----------------

def pms_login(employee_id: str, password: str) -> Optional[Dict[str, Any]]:
    log.info("PMS login attempt for employee_id=%s", employee_id)

    user = find_active_user(employee_id)
    if not user:
        log.info("no active user with employee_id=%s", employee_id)
        return None

    if not check_secret(password, user["password"]):
        log.info("invalid password for employee_id=%s", employee_id)
        return None

    token = issue_token(
        {
            "userId": user["user_id"],
            "role": user["role"],
            "employeeId": user["employee_id"],
            "name": user["name"],
            "branchId": user["branch_id"],
        },
        settings.pms_token_hours,
    )
    log.info("PMS login ok for employee_id=%s", employee_id)
    return {
        "token": token,
        "user": {
            "name": user["name"],
            "role": user["role"],
            "employeeId": user["employee_id"],
            "branchId": user["branch_id"],
        },
    }


# ---------------- POS (pharmacist) ----------------

def pos_login(pin_code: str) -> Optional[Dict[str, Any]]:
    log.info("POS login attempt with PIN %s", _mask(pin_code))

    pharmacist = find_active_pharmacist(pin_code)
    if not pharmacist:
        log.info("no active pharmacist for PIN %s", _mask(pin_code))
        return None

    session_id = open_sales_session(int(pharmacist["branch_id"]), int(pharmacist["staff_id"]))

    token = issue_token(
        {
            "staffId": pharmacist["staff_id"],
            "name": pharmacist["name"],
            "branchId": pharmacist["branch_id"],
            "sessionId": session_id,
        },
        settings.pos_token_hours,
    )
    log.info("POS login ok for %s, session=%s", pharmacist["name"], session_id)
    return {
        "token": token,
        "pharmacist": {
            "name": pharmacist["name"],
            "staffId": pharmacist["staff_id"],
            "branchId": pharmacist["branch_id"],
            "sessionId": session_id,
        },
    }


# ---------------- password reset ----------------

@dataclass
class _ResetEntry:
    token: str
    expiry: float


class ResetTokenStore:
    """Одноразовые 6-значные коды сброса пароля, в памяти процесса."""

    def __init__(self, ttl_minutes: int, clock: Callable[[], float] = time.time):
        self._ttl = ttl_minutes * 60
        self._clock = clock
        self._entries: Dict[str, _ResetEntry] = {}

    @staticmethod
    def generate() -> str:
        return str(100000 + secrets.randbelow(900000))

    def issue(self, employee_id: str) -> str:
        token = self.generate()
        self._entries[employee_id] = _ResetEntry(token=token, expiry=self._clock() + self._ttl)
        return token

    def matches(self, employee_id: str, token: str) -> bool:
        entry = self._entries.get(employee_id)
        return entry is not None and secrets.compare_digest(entry.token, str(token))

    def expired(self, employee_id: str) -> bool:
        entry = self._entries.get(employee_id)
        return entry is None or self._clock() > entry.expiry

    def discard(self, employee_id: str) -> None:
        self._entries.pop(employee_id, None)


reset_tokens = ResetTokenStore(settings.reset_token_minutes)


def forgot_password(employee_id: str, email: str, store: Optional[ResetTokenStore] = None) -> bool:
    store = store or reset_tokens

    if not find_user_by_email(employee_id, email):
        log.info("password reset requested for unknown employee_id=%s", employee_id)
        return False

    token = store.issue(employee_id)
    send_password_reset_email(email, token)
    log.info("password reset token issued for employee_id=%s", employee_id)
    return True


def verify_reset_token(employee_id: str, token: str, store: Optional[ResetTokenStore] = None) -> Tuple[bool, str]:
    store = store or reset_tokens

    if not store.matches(employee_id, token):
        return False, "Invalid or expired reset token"

    if store.expired(employee_id):
        store.discard(employee_id)
        return False, "Reset token has expired"

    return True, "Token verified successfully"


def reset_password(
    employee_id: str,
    token: str,
    new_password: str,
    store: Optional[ResetTokenStore] = None,
) -> Tuple[bool, str]:
    store = store or reset_tokens

    if not store.matches(employee_id, token):
        return False, "Invalid or expired reset token"

    if store.expired(employee_id):
        store.discard(employee_id)
        return False, "Invalid or expired reset token"

    update_user_password(employee_id, hash_secret(new_password))
    store.discard(employee_id)
    log.info("password reset for employee_id=%s", employee_id)
    return True, "Password has been reset successfully"
