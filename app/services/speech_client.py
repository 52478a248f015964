from typing import Any

import httpx

from app.core.config import Settings
from app.core.errors import ActivityRejectedError, TransientActivityError
from app.core.logging import get_logger

logger = get_logger(__name__)

TRANSIENT_STATUS_CODES = {408, 429, 500, 502, 503, 504}


class SpeechTranslationClient:
    """Thin async client for the video translation REST API."""

    def __init__(
        self,
        *,
        endpoint: str,
        api_key: str,
        api_version: str,
        timeout_seconds: float = 60,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = endpoint.rstrip("/") + "/videotranslation"
        self.api_key = api_key
        self.api_version = api_version
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    def _headers(self, operation_id: str | None = None) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Ocp-Apim-Subscription-Key"] = self.api_key
        if operation_id:
            headers["Operation-Id"] = operation_id
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: dict[str, Any] | None = None,
        operation_id: str | None = None,
    ) -> dict[str, Any]:
        url = f"{self.base_url}/{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self.transport) as client:
                response = await client.request(
                    method,
                    url,
                    params={"api-version": self.api_version},
                    headers=self._headers(operation_id),
                    json=json_body,
                )
        except httpx.TransportError as exc:
            raise TransientActivityError(f"{method} {path} failed: {exc}") from exc

        if response.status_code in TRANSIENT_STATUS_CODES:
            raise TransientActivityError(f"{method} {path} returned HTTP {response.status_code}")
        if response.status_code >= 400:
            logger.error(
                "translation api rejected request",
                extra={"extra": {"path": path, "status_code": response.status_code, "body": response.text[:500]}},
            )
            raise ActivityRejectedError(
                f"{method} {path} returned HTTP {response.status_code}: {response.text[:200]}"
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise ActivityRejectedError(f"{method} {path} returned a non-JSON body") from exc
        if not isinstance(data, dict):
            raise ActivityRejectedError(f"{method} {path} returned an unexpected payload")
        return data

    async def create_translation(
        self, translation_id: str, operation_id: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        return await self._request(
            "PUT", f"translations/{translation_id}", json_body=body, operation_id=operation_id
        )

    async def get_translation(self, translation_id: str) -> dict[str, Any]:
        return await self._request("GET", f"translations/{translation_id}")

    async def create_iteration(
        self, translation_id: str, iteration_id: str, operation_id: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        return await self._request(
            "PUT",
            f"translations/{translation_id}/iterations/{iteration_id}",
            json_body=body,
            operation_id=operation_id,
        )

    async def get_iteration(self, translation_id: str, iteration_id: str) -> dict[str, Any]:
        return await self._request("GET", f"translations/{translation_id}/iterations/{iteration_id}")


def build_speech_client(settings: Settings) -> SpeechTranslationClient:
    return SpeechTranslationClient(
        endpoint=settings.speech_endpoint,
        api_key=settings.speech_api_key,
        api_version=settings.speech_api_version,
        timeout_seconds=settings.speech_timeout_seconds,
    )
