"""Authenticated HTTP transport with JSON error-envelope unwrapping."""

import json
from typing import Any, Callable, Optional

import httpx
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from feedsync.core.exceptions import ApiError, TransportError, UploadError
from feedsync.utils.config import (
    API_BASE_URL,
    APP_NAME,
    APP_VERSION,
    CONNECT_TIMEOUT,
    MAX_RETRIES,
    READ_TIMEOUT,
    RETRY_INITIAL_WAIT,
    RETRY_MAX_WAIT,
    RETRY_MULTIPLIER,
    UPLOAD_TIMEOUT,
)
from feedsync.utils.logging import get_logger

logger = get_logger(__name__)

# Returns the current bearer token, or None when signed out
TokenProvider = Callable[[], Optional[str]]


def _is_network_failure(error: BaseException) -> bool:
    return isinstance(error, TransportError) and not isinstance(error, ApiError)


def parse_body(response: httpx.Response) -> Any:
    """
    Parse a response body.

    JSON content types are decoded directly; anything else is read as text
    and given a best-effort JSON parse.
    """
    content_type = response.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            return response.json()
        except ValueError:
            logger.debug("Response declared JSON but did not parse, reading as text")

    text = response.text
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return text


def extract_error_message(payload: Any, response: httpx.Response) -> str:
    """
    Pick the human-readable message for a failed response.

    Order: `error` field, `message` field, non-empty text body, status text.
    """
    if isinstance(payload, dict):
        for key in ("error", "message"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value
    elif isinstance(payload, str) and payload.strip():
        return payload
    return response.reason_phrase or "Unknown error"


class Transport:
    """
    Async HTTP transport for the feed backend.

    Attaches the session's bearer credential to every request and turns
    non-success responses into ApiError carrying the server's message.
    """

    def __init__(
        self,
        token_provider: Optional[TokenProvider] = None,
        base_url: str = API_BASE_URL,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize transport.

        Args:
            token_provider: Callable returning the current access token
            base_url: Backend origin
            client: Pre-built client (ownership stays with the caller)
        """
        self.token_provider = token_provider
        self.base_url = base_url
        self.client = client
        self._owns_client = client is None
        self.request_count = 0

    async def __aenter__(self):
        """Create HTTP client on context entry."""
        if self.client is None:
            self.client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(CONNECT_TIMEOUT, read=READ_TIMEOUT),
                follow_redirects=True,
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Close HTTP client on context exit."""
        await self.aclose()

    async def aclose(self) -> None:
        if self.client and self._owns_client:
            await self.client.aclose()
            self.client = None

    def _get_headers(self) -> dict:
        headers = {
            "Accept": "application/json",
            "User-Agent": f"{APP_NAME}/{APP_VERSION}",
        }
        token = self.token_provider() if self.token_provider else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def request(
        self,
        method: str,
        path: str,
        json_body: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> Any:
        """
        Send an API request and return the parsed body.

        GET requests retry on network failures; mutations are sent once.

        Raises:
            ApiError: On non-success HTTP status
            TransportError: On network failure
        """
        if method.upper() == "GET":
            return await self._send_idempotent(path, params)
        return await self._send(method, path, json_body, params)

    @retry(
        retry=retry_if_exception(_is_network_failure),
        stop=stop_after_attempt(MAX_RETRIES),
        wait=wait_exponential(
            multiplier=RETRY_MULTIPLIER,
            min=RETRY_INITIAL_WAIT,
            max=RETRY_MAX_WAIT,
        ),
        reraise=True,
    )
    async def _send_idempotent(self, path: str, params: Optional[dict]) -> Any:
        return await self._send("GET", path, None, params)

    async def _send(
        self,
        method: str,
        path: str,
        json_body: Optional[dict],
        params: Optional[dict],
    ) -> Any:
        if self.client is None:
            raise TransportError("Transport must be used as context manager")

        self.request_count += 1
        logger.debug(f"{method} {path}")

        try:
            response = await self.client.request(
                method,
                path,
                json=json_body,
                params=params,
                headers=self._get_headers(),
            )
        except httpx.HTTPError as e:
            logger.warning(f"Network error on {method} {path}: {e}")
            raise TransportError(f"Network error: {e}") from e

        payload = parse_body(response)

        if not response.is_success:
            message = extract_error_message(payload, response)
            logger.warning(f"{method} {path} failed with HTTP {response.status_code}: {message}")
            raise ApiError(response.status_code, message)

        return payload

    async def put_object(self, upload_url: str, data: bytes, content_type: Optional[str]) -> None:
        """
        Upload raw bytes to a signed upload target.

        The signed URL authorizes the transfer, so no bearer token is sent.

        Raises:
            UploadError: If the transfer fails or is rejected
        """
        if self.client is None:
            raise TransportError("Transport must be used as context manager")

        try:
            response = await self.client.put(
                upload_url,
                content=data,
                headers={"Content-Type": content_type or "application/octet-stream"},
                timeout=httpx.Timeout(CONNECT_TIMEOUT, read=UPLOAD_TIMEOUT, write=UPLOAD_TIMEOUT),
            )
        except httpx.HTTPError as e:
            raise UploadError(f"Upload failed: {e}") from e

        if not response.is_success:
            logger.error(f"Signed upload rejected with HTTP {response.status_code}")
            raise UploadError("Upload failed")

        logger.debug(f"Uploaded {len(data)} bytes")

    def get_stats(self) -> dict:
        return {
            "total_requests": self.request_count,
        }
