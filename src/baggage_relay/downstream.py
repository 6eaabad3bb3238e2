"""DownstreamClient - POST a message to the API service with propagated context."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import ValidationError

from .carrier import encode
from .exceptions import DownstreamError
from .messages import ProcessRequest, ProcessResponse

if TYPE_CHECKING:
    from types import TracebackType

    from .context import Context
    from .messages import Message

logger = logging.getLogger(__name__)


class DownstreamClient:
    """
    HTTP adapter for ``POST {base_url}/process``.

    The context is re-encoded into request headers on every call; nothing is
    picked up implicitly. Every failure (transport error, non-2xx status,
    unparseable or mis-shaped body) is raised as DownstreamError.

    ``timeout=None`` leaves the request unbounded.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    @property
    def process_url(self) -> str:
        return f"{self.base_url}/process"

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> DownstreamClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    def build_headers(self, context: Context) -> dict[str, str]:
        """Request headers: content type merged with the encoded carrier."""
        headers = {"Content-Type": "application/json"}
        headers.update(encode(context))
        return headers

    async def call(self, message: Message, context: Context) -> ProcessResponse:
        body = ProcessRequest.from_message(message).model_dump(by_alias=True)
        headers = self.build_headers(context)

        logger.info("Calling API service at %s", self.process_url)
        try:
            response = await self._get_client().post(
                self.process_url, json=body, headers=headers
            )
        except httpx.HTTPError as e:
            logger.error("API service call failed: %s", e)
            raise DownstreamError(f"Request to {self.process_url} failed: {e}") from e

        if not response.is_success:
            logger.error(
                "API service returned HTTP %d: %s", response.status_code, response.text
            )
            raise DownstreamError(
                f"API service returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload: Any = response.json()
        except ValueError as e:
            raise DownstreamError(
                f"Failed to parse API response: {e}",
                status_code=response.status_code,
            ) from e
        try:
            result = ProcessResponse.model_validate(payload)
        except ValidationError as e:
            raise DownstreamError(
                f"Unexpected API response shape: {e}",
                status_code=response.status_code,
            ) from e

        logger.info(
            "API service response: %s", result.model_dump_json(by_alias=True)
        )
        return result
