"""Outbound HTTP client for the mail API."""

from typing import Any, Optional

import httpx

from config import EmailSettings


class HttpClient:
    """httpx.AsyncClient with a connect timeout kept separate from the read one.

    In sync dispatch mode a mail send holds the request open for up to
    ``timeout`` seconds.
    """

    def __init__(
        self,
        timeout: float = 10.0,
        connect_timeout: Optional[float] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=connect_timeout or timeout),
            headers=headers,
        )

    @classmethod
    def for_email(cls, settings: EmailSettings) -> "HttpClient":
        return cls(
            timeout=settings.email_http_timeout_seconds,
            connect_timeout=min(5.0, settings.email_http_timeout_seconds),
            headers={"Accept": "application/json"},
        )

    @property
    def timeout(self) -> httpx.Timeout:
        return self._client.timeout

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self._client.post(url, **kwargs)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()
