"""Shared plumbing for REST-based provider adapters."""

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import httpx

from storyreel_core_schemas import ProviderError, ProviderErrorKind
from storyreel_providers.polling import DEFAULT_MAX_ATTEMPTS, DEFAULT_POLL_INTERVAL

logger = logging.getLogger(__name__)


def error_from_response(response: httpx.Response, provider: str) -> ProviderError:
    """Build a ProviderError describing a failed HTTP response."""
    detail = response.text[:300] if response.content else response.reason_phrase
    return ProviderError(
        f"HTTP {response.status_code}: {detail}",
        kind=ProviderErrorKind.from_status_code(response.status_code),
        provider=provider,
        status_code=response.status_code,
    )


@contextmanager
def translate_transport_errors(provider: str) -> Iterator[None]:
    """Re-raise httpx transport failures as ProviderError."""
    try:
        yield
    except httpx.TimeoutException as e:
        raise ProviderError(f"Request timed out: {e}", provider=provider) from e
    except httpx.RequestError as e:
        raise ProviderError(f"Network error: {e}", provider=provider) from e


class HTTPAdapter:
    """Base class for adapters talking to a JSON REST API with httpx."""

    PROVIDER = "http"
    BASE_URL = ""
    REQUEST_TIMEOUT = 60.0
    DOWNLOAD_TIMEOUT = 300.0
    POLL_INTERVAL = DEFAULT_POLL_INTERVAL
    MAX_POLL_ATTEMPTS = DEFAULT_MAX_ATTEMPTS

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        poll_interval: Optional[float] = None,
        max_poll_attempts: Optional[int] = None,
    ):
        """Initialize the adapter.

        Args:
            transport: Optional httpx transport (tests pass a MockTransport)
            poll_interval: Seconds between job status polls
            max_poll_attempts: Polls before a job is declared timed out
        """
        self._transport = transport
        self.poll_interval = self.POLL_INTERVAL if poll_interval is None else poll_interval
        self.max_poll_attempts = max_poll_attempts or self.MAX_POLL_ATTEMPTS

    def _client(self, timeout: Optional[float] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.BASE_URL,
            timeout=timeout or self.REQUEST_TIMEOUT,
            transport=self._transport,
        )

    def _headers(self, credential: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {credential}"}

    def _check(self, response: httpx.Response) -> httpx.Response:
        if response.is_error:
            raise error_from_response(response, self.PROVIDER)
        return response

    def _json(self, response: httpx.Response) -> Any:
        self._check(response)
        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(f"Invalid JSON response: {e}", provider=self.PROVIDER) from e

    async def _download(self, url: str, headers: Optional[dict[str, str]] = None) -> bytes:
        """Fetch a finished artifact by URL."""
        with translate_transport_errors(self.PROVIDER):
            async with httpx.AsyncClient(
                timeout=self.DOWNLOAD_TIMEOUT,
                transport=self._transport,
                follow_redirects=True,
            ) as client:
                response = await client.get(url, headers=headers)
        self._check(response)
        return response.content

    async def _probe(self, path: str, headers: dict[str, str]) -> bool:
        """Issue one cheap authenticated GET; any failure means False."""
        try:
            async with self._client(timeout=15.0) as client:
                response = await client.get(path, headers=headers)
            return response.is_success
        except Exception as e:
            logger.warning("%s key validation failed: %s", self.PROVIDER, e)
            return False
