"""ZeptoMail implementation of the Notifier protocol.

- async httpx via HttpClient
- injected EmailSettings
- Jinja2 HTML templates from templates/emails/, plain-text alternative inline
"""

import os
from typing import Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from config import EmailSettings
from infrastructure.http_client import HttpClient
from shared.logging import get_logger

log = get_logger(__name__)

_ZEPTO_API_URL = "https://api.zeptomail.com/v1.1/email"
_DEFAULT_TEMPLATE_DIR = os.path.join(
    os.path.dirname(os.path.dirname(os.path.dirname(__file__))),
    "templates",
    "emails",
)


class ZeptoMailNotifier:
    def __init__(
        self,
        settings: EmailSettings,
        http_client: HttpClient,
        *,
        app_name: str = "MyHealthLink",
        otp_ttl_minutes: int = 10,
        reset_ttl_minutes: int = 15,
        template_dir: str = _DEFAULT_TEMPLATE_DIR,
    ) -> None:
        self._settings = settings
        self._http = http_client
        self._app_name = app_name
        self._otp_ttl_minutes = otp_ttl_minutes
        self._reset_ttl_minutes = reset_ttl_minutes
        self._jinja = Environment(
            loader=FileSystemLoader(template_dir),
            autoescape=select_autoescape(["html", "xml"]),
        )

    async def _send(
        self,
        to_email: str,
        to_name: Optional[str],
        subject: str,
        html_body: str,
        text_body: Optional[str] = None,
    ) -> bool:
        if not self._settings.zepto_api_token:
            log.error("email_send_failed", reason="token_not_configured")
            return False

        payload: dict = {
            "from": {
                "address": self._settings.zepto_from_email,
                "name": self._settings.zepto_from_name,
            },
            "to": [
                {
                    "email_address": {
                        "address": to_email,
                        "name": to_name or to_email,
                    }
                }
            ],
            "subject": subject,
            "htmlbody": html_body,
        }
        if text_body:
            payload["textbody"] = text_body

        token = self._settings.zepto_api_token
        if not token.startswith("Zoho-enczapikey "):
            token = f"Zoho-enczapikey {token}"

        headers = {"Authorization": token, "Content-Type": "application/json"}

        try:
            response = await self._http.post(
                _ZEPTO_API_URL, json=payload, headers=headers
            )
            if response.status_code in (200, 201, 202):
                log.info("email_sent_success", to_email=to_email, subject=subject)
                return True
            log.error(
                "email_send_failed",
                to_email=to_email,
                subject=subject,
                status_code=response.status_code,
                response=response.text[:200],
            )
            return False
        except Exception as e:
            log.error(
                "email_send_error",
                to_email=to_email,
                subject=subject,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

    async def send_otp_email(
        self,
        email: str,
        user_name: Optional[str],
        otp_code: str,
        *,
        is_resend: bool = False,
    ) -> bool:
        if is_resend:
            subject = f"New Verification Code - {self._app_name}"
        else:
            subject = f"Verify Your {self._app_name} Account"
        template = self._jinja.get_template("otp.html")
        html_body = template.render(
            otp_code=otp_code,
            user_name=user_name,
            app_name=self._app_name,
            is_resend=is_resend,
            ttl_minutes=self._otp_ttl_minutes,
        )
        text_body = (
            f"{subject}\n\n"
            f"Hi{f' {user_name}' if user_name else ''},\n\n"
            f"Your verification code is: {otp_code}\n\n"
            f"This code expires in {self._otp_ttl_minutes} minutes. "
            f"If it expires, you can request a new one.\n"
        )
        return await self._send(email, user_name, subject, html_body, text_body)

    async def send_password_reset_email(
        self, email: str, user_name: Optional[str], reset_url: str
    ) -> bool:
        subject = f"Password Reset Request - {self._app_name}"
        template = self._jinja.get_template("password_reset.html")
        html_body = template.render(
            reset_url=reset_url,
            user_name=user_name,
            app_name=self._app_name,
            ttl_minutes=self._reset_ttl_minutes,
        )
        text_body = (
            f"{subject}\n\n"
            f"Hi{f' {user_name}' if user_name else ''},\n\n"
            f"Reset your password here: {reset_url}\n\n"
            f"This link expires in {self._reset_ttl_minutes} minutes. "
            f"If you didn't request a reset, ignore this email.\n"
        )
        return await self._send(email, user_name, subject, html_body, text_body)
