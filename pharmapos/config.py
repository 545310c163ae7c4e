from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parents[1]  # .../pharmapos repo root
load_dotenv(dotenv_path=ROOT_DIR / ".env")


def _get_env(*keys: str, default: str | None = None) -> str | None:
    for k in keys:
        v = os.getenv(k)
        if v is not None and str(v).strip() != "":
            return v.strip()
    return default


def _get_int(*keys: str, default: int | None = None) -> int | None:
    v = _get_env(*keys, default=None)
    if v is None:
        return default
    return int(v)


def _get_path(*keys: str, default: str) -> str:
    v = _get_env(*keys, default=default)
    return str(v)


@dataclass(frozen=True)
class Settings:
    jwt_secret: str
    db_path: str
    export_dir: str
    currency: str
    decimals: int
    pms_token_hours: int
    pos_token_hours: int
    reset_token_minutes: int
    tz_offset_hours: int
    smtp_host: str
    smtp_port: int
    smtp_user: str
    smtp_password: str
    mail_from: str
    log_level: str


settings = Settings(
    jwt_secret=_get_env("JWT_SECRET", "SECRET_KEY", default="") or "",
    db_path=_get_path("DB_PATH", "DATABASE_PATH", default=str(ROOT_DIR / "data" / "pharmacy.db")),
    export_dir=_get_path("EXPORT_DIR", default=str(ROOT_DIR / "exports")),
    currency=_get_env("CURRENCY", default="PHP") or "PHP",
    decimals=_get_int("DECIMALS", default=2),
    pms_token_hours=_get_int("PMS_TOKEN_HOURS", default=8) or 8,
    pos_token_hours=_get_int("POS_TOKEN_HOURS", default=12) or 12,
    reset_token_minutes=_get_int("RESET_TOKEN_MINUTES", default=15) or 15,
    # DATE() of stored UTC timestamps is taken in this offset
    tz_offset_hours=_get_int("TZ_OFFSET_HOURS", default=8) or 0,
    smtp_host=_get_env("SMTP_HOST", "EMAIL_HOST", default="") or "",
    smtp_port=_get_int("SMTP_PORT", "EMAIL_PORT", default=587) or 587,
    smtp_user=_get_env("SMTP_USER", "EMAIL_USER", default="") or "",
    smtp_password=_get_env("SMTP_PASSWORD", "EMAIL_PASSWORD", default="") or "",
    mail_from=_get_env("MAIL_FROM", "EMAIL_FROM", default="no-reply@pharmapos.local") or "",
    log_level=(_get_env("LOG_LEVEL", default="INFO") or "INFO").upper(),
)

if not settings.jwt_secret:
    raise RuntimeError("JWT_SECRET is empty. Set JWT_SECRET in .env")
