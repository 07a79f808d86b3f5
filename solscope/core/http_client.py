"""
Shared aiohttp plumbing for upstream API clients.

Session ownership, bounded retry with a fixed delay, 429 handling and API key
redaction live here so the Helius and Dune clients only describe their
endpoints.
"""

import asyncio
import logging
import re
from typing import Any, Dict, Optional

import aiohttp

from ..config import ScopeConfig
from .errors import RateLimitedError, UpstreamError

logger = logging.getLogger(__name__)

_SECRET_PATTERN = re.compile(r"((?:api-key|key)=)[^&\s]+")


def redact(text: str) -> str:
    """Redact api-key query parameter values, e.g. api-key=XXXX -> api-key=REDACTED."""
    return _SECRET_PATTERN.sub(r"\1REDACTED", text)


class AsyncHttpClient:
    """Base class for aiohttp-backed API clients."""

    source = "http"

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        retry_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
        timeout_seconds: float = 30.0,
    ):
        """
        Args:
            session: Optional aiohttp session (for connection pooling)
            retry_attempts: Attempts per request, first try included
            retry_delay: Fixed delay in seconds between attempts
            timeout_seconds: Per-request timeout
        """
        self.retry_attempts = max(1, retry_attempts if retry_attempts is not None else ScopeConfig.get_retry_attempts())
        self.retry_delay = retry_delay if retry_delay is not None else ScopeConfig.get_retry_delay_seconds()
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session = session
        self._own_session = False

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._own_session = True
        return self._session

    async def close(self):
        """Close session if we own it."""
        if self._own_session and self._session:
            await self._session.close()
            self._session = None
            self._own_session = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def _retry_after(self, response: aiohttp.ClientResponse) -> float:
        header = response.headers.get("Retry-After")
        try:
            return float(header) if header else self.retry_delay
        except ValueError:
            return self.retry_delay

    async def _request_json(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        Make a request and decode the JSON body.

        Retries 429, 5xx and transport errors up to ``retry_attempts`` times
        with a fixed delay. Other 4xx answers fail immediately.

        Raises:
            RateLimitedError: Still rate limited after the last attempt
            UpstreamError: Any other failure
        """
        session = await self._get_session()
        last_error = ""
        rate_limited = False

        for attempt in range(1, self.retry_attempts + 1):
            delay = self.retry_delay
            try:
                async with session.request(
                    method, url, params=params, json=json_body, headers=headers, timeout=self.timeout
                ) as response:
                    if response.status == 429:
                        rate_limited = True
                        delay = self._retry_after(response)
                        last_error = "HTTP 429"
                        logger.warning(f"[{self.source}] Rate limited (attempt {attempt}/{self.retry_attempts})")
                    elif response.status >= 500:
                        rate_limited = False
                        last_error = f"HTTP {response.status}"
                        logger.warning(f"[{self.source}] Server error {response.status} (attempt {attempt}/{self.retry_attempts})")
                    elif response.status >= 400:
                        body = await response.text()
                        raise UpstreamError(
                            self.source,
                            f"{self.source} request failed: HTTP {response.status}",
                            details=redact(body[:200]),
                        )
                    else:
                        try:
                            return await response.json(content_type=None)
                        except ValueError as e:
                            raise UpstreamError(
                                self.source, f"{self.source} returned a malformed payload", details=str(e)
                            ) from e
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                rate_limited = False
                last_error = redact(str(e)) or type(e).__name__
                logger.warning(f"[{self.source}] Request failed: {last_error} (attempt {attempt}/{self.retry_attempts})")

            if attempt < self.retry_attempts:
                await asyncio.sleep(delay)

        if rate_limited:
            raise RateLimitedError(self.source, details=f"{self.source}: {last_error}")
        raise UpstreamError(self.source, f"{self.source} request failed", details=last_error)
