import logging
from typing import Dict, Optional, Tuple

import resend

import config
from errors import UnexpectedError

logger = logging.getLogger(__name__)


class MailDeliveryError(UnexpectedError):
    default_message = "Could not send email"


class Mailer:
    """Sends transactional email through the Resend API."""

    def __init__(self, api_key: str, sender: str):
        self.api_key = (api_key or "").strip()
        self.sender = sender

    def send(self, to: str, subject: str, text: str, html: str) -> str:
        if not self.api_key:
            raise MailDeliveryError("Email delivery is not configured")
        payload: Dict[str, object] = {
            "from": self.sender,
            "to": [to],
            "subject": subject,
            "text": text,
            "html": html,
        }
        resend.api_key = self.api_key
        try:
            response = resend.Emails.send(payload)
        except Exception as exc:
            logger.error("Resend rejected mail to %s: %s", to, exc)
            raise MailDeliveryError() from exc
        message_id = response.get("id") if isinstance(response, dict) else None
        if not message_id:
            logger.error("Unexpected Resend response for %s: %r", to, response)
            raise MailDeliveryError()
        logger.info("Email sent to %s (%s)", to, message_id)
        return message_id


_mailer: Optional[Mailer] = None


def get_mailer() -> Mailer:
    global _mailer
    if _mailer is None:
        _mailer = Mailer(config.RESEND_API_KEY, config.MAIL_FROM)
    return _mailer


def otp_email(name: str, otp: str, minutes: int,
              subject: str = "EcoBloom OTP Verification") -> Tuple[str, str, str]:
    name = name or "User"
    text = (
        f"Hi {name},\n\n"
        f"Your EcoBloom OTP is: {otp}\n"
        f"It will expire in {minutes} minutes.\n\n"
        "If you didn't request this, please ignore."
    )
    html = f"""
  <div style="font-family:Arial,Helvetica,sans-serif;max-width:600px;margin:auto;padding:20px;border:1px solid #eee;border-radius:10px;">
    <h2 style="color:#2e7d32;">EcoBloom Verification</h2>
    <p>Hi <b>{name}</b>,</p>
    <p>Your OTP code is:</p>
    <div style="font-size:28px;font-weight:700;letter-spacing:4px;padding:10px 20px;background:#f4f6f8;border-radius:8px;display:inline-block;">
      {otp}
    </div>
    <p style="margin-top:20px;">This OTP will expire in <b>{minutes} minutes</b>.</p>
    <p style="font-size:12px;color:#888;">If you didn't request this, please ignore this email.</p>
  </div>
  """
    return subject, text, html
