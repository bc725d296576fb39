"""EmailProvider that only logs. Used in development and tests (EMAIL_PROVIDER=log)."""

from shared.logging import get_logger

log = get_logger(__name__)


class LogEmailProvider:
    def __init__(self) -> None:
        # Most recent message per address, handy in a local shell session
        self.outbox: dict[str, dict] = {}

    async def send_verification_otp(self, email: str, user_name: str, otp_code: str) -> bool:
        self.outbox[email] = {"kind": "verification", "otp_code": otp_code}
        log.info("email_logged", kind="verification", to_email=email)
        return True

    async def send_password_reset_link(
        self, email: str, user_name: str, reset_url: str
    ) -> bool:
        self.outbox[email] = {"kind": "password_reset", "reset_url": reset_url}
        log.info("email_logged", kind="password_reset", to_email=email)
        return True
