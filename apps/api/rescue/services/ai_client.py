"""Google Gemini client used by the intake pipeline.

Wraps the ``generateContent`` REST endpoint. The optional photo is fetched
and inlined as base64; it is an enhancement only, so any problem fetching it
drops the image and the call proceeds text-only.
"""

from __future__ import annotations

import base64
import logging
from typing import Any
from urllib.parse import urlsplit

import httpx

from rescue.core.config import Settings, settings as default_settings
from rescue.core.structured_logging import safe_url
from rescue.services.ai_errors import (
    ApiConnectionError,
    ApiServerError,
    ConfigurationError,
    TemporaryError,
)

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "image/jpeg"
MIME_TYPES = {
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
}


class GeminiAPIError(Exception):
    """Non-retriable HTTP error (4xx other than 429) from Gemini."""

    def __init__(self, status_code: int, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Gemini API returned {status_code}")


def detect_mime_type(url: str) -> str:
    """Infer the image MIME type from the URL path extension."""
    path = urlsplit(url).path.lower()
    for extension, mime_type in MIME_TYPES.items():
        if path.endswith(extension):
            return mime_type
    return DEFAULT_MIME_TYPE


class GeminiClient:
    """Thin async client for Gemini ``generateContent``."""

    def __init__(
        self,
        config: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._config = config or default_settings
        # Injectable for tests
        self._transport = transport

    @property
    def endpoint(self) -> str:
        base = self._config.GEMINI_BASE_URL.rstrip("/")
        return f"{base}/models/{self._config.GEMINI_MODEL}:generateContent"

    def _timeout(self) -> httpx.Timeout:
        return httpx.Timeout(
            self._config.AI_READ_TIMEOUT,
            connect=self._config.AI_CONNECT_TIMEOUT,
        )

    async def generate(self, prompt: str, image_url: str | None = None) -> dict[str, Any]:
        """
        Send *prompt* (and the optional image) and return the raw envelope.

        Raises:
            ConfigurationError: GEMINI_API_KEY is not set.
            ApiConnectionError: timeout or transport failure.
            ApiServerError: 5xx response.
            TemporaryError: 429 rate limit.
            GeminiAPIError: any other non-success status.
        """
        if not self._config.GEMINI_API_KEY:
            raise ConfigurationError("GEMINI_API_KEY is not configured", setting="GEMINI_API_KEY")

        body = {
            "contents": [
                {
                    "role": "user",
                    "parts": await self._build_parts(prompt, image_url),
                }
            ]
        }

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout(), transport=self._transport
            ) as client:
                response = await client.post(
                    self.endpoint,
                    headers={
                        "Content-Type": "application/json",
                        "x-goog-api-key": self._config.GEMINI_API_KEY,
                    },
                    json=body,
                )
        except httpx.TimeoutException as exc:
            raise ApiConnectionError(
                f"Gemini request timed out ({type(exc).__name__})", timeout=True
            ) from exc
        except httpx.TransportError as exc:
            raise ApiConnectionError(f"Gemini connection failed ({type(exc).__name__})") from exc

        if response.status_code >= 500:
            raise ApiServerError(response.status_code, response.text[:1000])
        if response.status_code == 429:
            retry_after = response.headers.get("retry-after")
            raise TemporaryError(
                "Gemini rate limit exceeded",
                retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        if response.status_code >= 400:
            raise GeminiAPIError(response.status_code, response.text[:1000])

        try:
            return response.json()
        except ValueError:
            # Let the parser report the structural problem
            return {}

    # ── Image handling ───────────────────────────────────────────────

    async def _build_parts(self, prompt: str, image_url: str | None) -> list[dict[str, Any]]:
        parts: list[dict[str, Any]] = [{"text": prompt}]
        if not image_url:
            return parts

        encoded = await self.fetch_image_base64(image_url)
        if encoded:
            parts.append(
                {
                    "inline_data": {
                        "data": encoded,
                        "mime_type": detect_mime_type(image_url),
                    }
                }
            )
        return parts

    async def fetch_image_base64(self, url: str) -> str | None:
        """Download *url* and return base64 data, or ``None`` on any failure."""
        max_bytes = self._config.MAX_IMAGE_BYTES
        try:
            async with httpx.AsyncClient(
                timeout=self._config.IMAGE_FETCH_TIMEOUT,
                transport=self._transport,
                follow_redirects=True,
            ) as client:
                async with client.stream("GET", url) as response:
                    if response.status_code != 200:
                        logger.warning(
                            "Image download failed: %s (%s)",
                            response.status_code,
                            safe_url(url),
                        )
                        return None

                    declared = response.headers.get("content-length")
                    if declared and declared.isdigit() and int(declared) > max_bytes:
                        logger.warning("Image too large: %s bytes declared", declared)
                        return None

                    chunks: list[bytes] = []
                    total = 0
                    async for chunk in response.aiter_bytes():
                        total += len(chunk)
                        if total > max_bytes:
                            logger.warning("Image too large: over %d KB", max_bytes // 1024)
                            return None
                        chunks.append(chunk)
        except httpx.TimeoutException:
            logger.warning("Image download timed out: %s", safe_url(url))
            return None
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("Image download failed: %s (%s)", safe_url(url), type(exc).__name__)
            return None

        data = b"".join(chunks)
        if not data:
            return None
        encoded = base64.b64encode(data).decode("ascii")
        logger.info("Image encoded size: %d KB", len(encoded) // 1024)
        return encoded
