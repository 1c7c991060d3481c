"""Twilio Studio client - triggers the outbound call flow to the vet."""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from rescue.core.config import Settings, settings as default_settings
from rescue.services.appointment_errors import TwilioApiError, TwilioConnectionError

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 10.0


class TwilioStudioClient:
    """Studio Flow Executions API (``/v2/Flows/{flow}/Executions``)."""

    def __init__(
        self,
        config: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._config = config or default_settings
        self._transport = transport

    @property
    def executions_url(self) -> str:
        base = self._config.TWILIO_STUDIO_BASE_URL.rstrip("/")
        return f"{base}/Flows/{self._config.TWILIO_FLOW_SID}/Executions"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            auth=(self._config.TWILIO_ACCOUNT_SID, self._config.TWILIO_AUTH_TOKEN),
            timeout=httpx.Timeout(self._config.TWILIO_TIMEOUT, connect=CONNECT_TIMEOUT),
            transport=self._transport,
        )

    async def initiate_execution(
        self,
        to: str,
        from_: str,
        parameters: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Start a flow execution, which places the call.

        ``Parameters`` travels as a JSON string inside the form body.

        Raises:
            TwilioConnectionError: timeout or transport failure.
            TwilioApiError: non-2xx status or a response without ``sid``.
        """
        form = {
            "To": to,
            "From": from_,
            "Parameters": json.dumps(parameters or {}),
        }
        try:
            async with self._client() as client:
                response = await client.post(self.executions_url, data=form)
        except httpx.TimeoutException as exc:
            raise TwilioConnectionError(
                f"Twilio request timed out ({type(exc).__name__})", timeout=True
            ) from exc
        except httpx.TransportError as exc:
            raise TwilioConnectionError(
                f"Twilio connection failed ({type(exc).__name__})"
            ) from exc

        body = _json_or_empty(response)
        if not response.is_success:
            logger.error("Twilio API error: %s", response.status_code)
            raise TwilioApiError(
                f"Twilio API Error: {response.status_code}",
                status_code=response.status_code,
                body=body,
            )
        if not body.get("sid"):
            raise TwilioApiError(
                "Twilio response missing execution sid",
                status_code=response.status_code,
                body=body,
            )

        logger.info("Twilio execution initiated: %s", body["sid"])
        return body

    async def get_execution_status(self, execution_sid: str) -> dict[str, Any] | None:
        """Fetch an execution; ``None`` on any non-2xx status."""
        try:
            async with self._client() as client:
                response = await client.get(f"{self.executions_url}/{execution_sid}")
        except httpx.TimeoutException as exc:
            raise TwilioConnectionError(
                f"Twilio request timed out ({type(exc).__name__})", timeout=True
            ) from exc
        except httpx.TransportError as exc:
            raise TwilioConnectionError(
                f"Twilio connection failed ({type(exc).__name__})"
            ) from exc

        if not response.is_success:
            logger.error("Twilio API error: %s", response.status_code)
            return None
        return _json_or_empty(response)


def _json_or_empty(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
