"""
Notifier - decides how an outgoing email is dispatched.

sync        await the provider; a False result raises EmailDispatchFailed (502)
background  schedule the send on the event loop and return immediately;
            failures are logged only
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Literal

from errors import EmailDispatchFailed
from infrastructure.email.protocol import EmailProvider
from shared.logging import get_logger

log = get_logger(__name__)

DispatchMode = Literal["sync", "background"]


class Notifier:
    def __init__(self, provider: EmailProvider, mode: DispatchMode = "sync") -> None:
        self.provider = provider
        self.mode = mode
        self._pending: set[asyncio.Task] = set()

    async def send_verification_otp(self, email: str, user_name: str, otp_code: str) -> None:
        await self._dispatch(
            "verification",
            email,
            self.provider.send_verification_otp(email, user_name, otp_code),
        )

    async def send_password_reset_link(
        self, email: str, user_name: str, reset_url: str
    ) -> None:
        await self._dispatch(
            "password_reset",
            email,
            self.provider.send_password_reset_link(email, user_name, reset_url),
        )

    async def _dispatch(self, kind: str, email: str, send: Awaitable[bool]) -> None:
        if self.mode == "background":
            task = asyncio.create_task(self._send_logged(kind, email, send))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            return

        if not await send:
            log.error("email_dispatch_failed", kind=kind, to_email=email)
            raise EmailDispatchFailed()

    async def _send_logged(self, kind: str, email: str, send: Awaitable[bool]) -> None:
        try:
            ok = await send
        except Exception as e:
            log.error(
                "email_dispatch_error",
                kind=kind,
                to_email=email,
                error=str(e),
                error_type=type(e).__name__,
            )
            return
        if not ok:
            log.error("email_dispatch_failed", kind=kind, to_email=email)

    async def drain(self) -> None:
        """Wait for background sends still in flight (used on shutdown)."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
