"""Generic HTTP action provider."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from ..contracts import HttpActionConfig
from ..errors import ActionExecutionError

logger = logging.getLogger(__name__)


def response_body(response: httpx.Response) -> Any:
    """Return the decoded JSON body, falling back to text."""
    try:
        return response.json()
    except ValueError:
        return response.text


class HttpxProvider:
    """Perform the configured request with ``httpx``.

    Non-2xx responses are returned like any other response; interpreting the
    status is left to later actions.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None) -> None:
        self._client = client

    async def http_request(self, config: HttpActionConfig, payload: dict[str, Any]) -> Any:
        request_kwargs: dict[str, Any] = {"headers": config.headers, "timeout": config.timeout}
        if config.body is not None:
            if isinstance(config.body, (str, bytes)):
                request_kwargs["content"] = config.body
            else:
                request_kwargs["json"] = config.body

        try:
            if self._client is not None:
                response = await self._client.request(
                    config.method, config.url, **request_kwargs
                )
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.request(
                        config.method, config.url, **request_kwargs
                    )
        except httpx.TimeoutException as e:
            raise ActionExecutionError(
                "http", e, f"HTTP {config.method} {config.url} timed out after {config.timeout}s"
            ) from e
        except httpx.HTTPError as e:
            raise ActionExecutionError(
                "http", e, f"HTTP {config.method} {config.url} failed: {e}"
            ) from e

        logger.info(f"HTTP {config.method} {config.url} -> {response.status_code}")
        return response_body(response)
