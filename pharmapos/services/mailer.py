from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from pharmapos.config import settings

log = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parents[1] / "templates"

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html"]),
)


def render_reset_email(token: str) -> str:
    return _env.get_template("reset_email.html").render(
        token=token,
        minutes=settings.reset_token_minutes,
    )


def send_password_reset_email(email: str, token: str) -> bool:
    """
    Отправка кода сброса через SMTP.
    Без SMTP_HOST письмо не отправляется, только пишем в лог.
    """
    if not settings.smtp_host:
        log.warning("SMTP_HOST is not set, reset email to %s not sent", email)
        return False

    msg = EmailMessage()
    msg["Subject"] = "Password reset code"
    msg["From"] = settings.mail_from
    msg["To"] = email
    msg.set_content(f"Your password reset code is {token}. It expires in {settings.reset_token_minutes} minutes.")
    msg.add_alternative(render_reset_email(token), subtype="html")

    with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=10) as smtp:
        smtp.starttls()
        if settings.smtp_user:
            smtp.login(settings.smtp_user, settings.smtp_password)
        smtp.send_message(msg)

    log.info("reset email sent to %s", email)
    return True
