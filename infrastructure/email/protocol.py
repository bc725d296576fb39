"""EmailProvider protocol - services depend on this, not the concrete implementation."""

from typing import Protocol


class EmailProvider(Protocol):
    async def send_verification_otp(self, email: str, user_name: str, otp_code: str) -> bool: ...

    async def send_password_reset_link(
        self, email: str, user_name: str, reset_url: str
    ) -> bool: ...
