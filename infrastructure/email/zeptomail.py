"""ZeptoMail implementation of EmailProvider.

Messages are rendered from the Jinja2 templates in templates/emails and
posted to the ZeptoMail HTTP API. Every failure is logged and reported as
False; the Notifier decides whether that fails the request.
"""

import os
from typing import Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from config import EmailSettings
from infrastructure.http_client import HttpClient
from shared.logging import get_logger

log = get_logger(__name__)

_DEFAULT_TEMPLATE_DIR = os.path.join(
    os.path.dirname(os.path.dirname(os.path.dirname(__file__))),
    "templates",
    "emails",
)

OTP_TTL_MINUTES = 15
RESET_LINK_TTL_MINUTES = 60


class ZeptoMailProvider:
    def __init__(
        self,
        settings: EmailSettings,
        http_client: HttpClient,
        app_name: str = "Br3achBl0ckers",
        template_dir: str = _DEFAULT_TEMPLATE_DIR,
    ) -> None:
        self._settings = settings
        self._http = http_client
        self._app_name = app_name
        self._jinja = Environment(
            loader=FileSystemLoader(template_dir),
            autoescape=select_autoescape(["html", "xml"]),
        )

    def render(self, template_name: str, **context) -> str:
        template = self._jinja.get_template(template_name)
        return template.render(app_name=self._app_name, **context)

    async def _send(
        self,
        to_email: str,
        to_name: Optional[str],
        subject: str,
        html_body: str,
        text_body: Optional[str] = None,
    ) -> bool:
        if not self._settings.zepto_api_token:
            log.error("zepto_mail_send_failed", reason="token_not_configured")
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
                self._settings.zepto_api_url, json=payload, headers=headers
            )
        except Exception as e:
            log.error(
                "email_send_error",
                to_email=to_email,
                subject=subject,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        if response.status_code in (200, 201, 202):
            log.info("email_sent_success", to_email=to_email, subject=subject)
            return True
        log.error(
            "email_sent_failed",
            to_email=to_email,
            subject=subject,
            status_code=response.status_code,
            response=response.text[:200],
        )
        return False

    async def send_verification_otp(self, email: str, user_name: str, otp_code: str) -> bool:
        subject = "Verify Your Email - OTP"
        html_body = self.render(
            "verification.html",
            otp_code=otp_code,
            user_name=user_name,
            ttl_minutes=OTP_TTL_MINUTES,
        )
        text_body = (
            f"Welcome to {self._app_name}!\n\n"
            f"Your verification code is: {otp_code}\n\n"
            f"This code will expire in {OTP_TTL_MINUTES} minutes.\n"
            f"If you did not create this account, please ignore this email."
        )
        return await self._send(email, user_name, subject, html_body, text_body)

    async def send_password_reset_link(
        self, email: str, user_name: str, reset_url: str
    ) -> bool:
        subject = "Password Reset Request"
        html_body = self.render(
            "password_reset.html",
            reset_url=reset_url,
            user_name=user_name,
            ttl_minutes=RESET_LINK_TTL_MINUTES,
        )
        text_body = (
            f"Password Reset Request\n\n"
            f"Open the link below to reset your password:\n{reset_url}\n\n"
            f"This link will expire in 1 hour.\n"
            f"If you didn't request this, please ignore this email."
        )
        return await self._send(email, user_name, subject, html_body, text_body)
