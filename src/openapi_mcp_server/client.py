"""Configuration and HTTP client for the upstream API."""

from typing import Any, List, Mapping, Optional, Tuple

import httpx
import structlog
from pydantic import Field, HttpUrl, TypeAdapter, ValidationError
from pydantic_settings import BaseSettings

from .errors import ConfigurationError, UpstreamRequestFailed

logger = structlog.get_logger(__name__)

_HTTP_URL = TypeAdapter(HttpUrl)


class ServerConfig(BaseSettings):
    """Configuration for the OpenAPI MCP server."""

    spec_source: Optional[str] = Field(
        default=None,
        description="Path or http(s) URL of the OpenAPI document",
    )
    base_url: Optional[HttpUrl] = Field(
        default=None,
        description="Base URL of the upstream API (overrides the document's servers)",
    )
    timeout: int = Field(default=30, description="Request timeout in seconds")
    log_level: str = Field(default="INFO", description="Logging level")

    model_config = {"env_prefix": "OPENAPI_MCP_", "case_sensitive": False}


def validate_base_url(url: str) -> str:
    """Return *url* without a trailing slash, or raise ConfigurationError.

    Only absolute http(s) URLs are accepted.
    """
    try:
        _HTTP_URL.validate_python(url)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid base URL: {url!r}") from e
    return url.rstrip("/")


class ApiClient:
    """Asynchronous client for the upstream API."""

    def __init__(self, timeout: float = 30):
        self.timeout = timeout
        self.client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _ensure_client(self):
        if not self.client:
            self.client = httpx.AsyncClient(timeout=self.timeout)

    async def close(self) -> None:
        if self.client:
            await self.client.aclose()
            self.client = None

    async def send(
        self,
        method: str,
        url: str,
        params: Optional[List[Tuple[str, str]]] = None,
        headers: Optional[Mapping[str, str]] = None,
        content: Optional[str] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request and return the response with its body still unread.

        The caller reads the body with ``aread()`` and must close the
        response. Network-level failures raise UpstreamRequestFailed.
        """
        await self._ensure_client()
        request = self.client.build_request(
            method=method,
            url=url,
            params=params or None,
            headers=headers,
            content=content,
            **kwargs,
        )
        try:
            response = await self.client.send(request, stream=True)
        except httpx.RequestError as e:
            logger.error("Request error", error=str(e), method=method, url=url)
            raise UpstreamRequestFailed(f"API request failed: {e}") from e

        logger.info(
            "API request",
            method=method,
            url=str(request.url),
            status_code=response.status_code,
        )
        return response
