"""HTTP recognizer — implements the Recognizer port against the recognition service.

The service exposes two multipart endpoints taking an ``image`` file part:

  classifier:  {"success": true, "results": {"class": "...", "confidence": 0.82}}
               {"success": false, "error": "..."}
  barcode:     {"barcode": "4006381333931"}   (empty string when none found)

Barcode scanning is disabled when no barcode endpoint is configured.
"""

import json
import logging
from typing import Any

import httpx

from app.application.interfaces import Classification, Recognizer
from app.domain.exceptions import RecognitionUnavailableError

logger = logging.getLogger(__name__)


class HttpRecognizer(Recognizer):
    """Infrastructure adapter — talks to the recognition service over httpx."""

    def __init__(
        self,
        classifier_url: str,
        barcode_url: str = "",
        *,
        barcode_timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._classifier_url = classifier_url
        self._barcode_url = barcode_url
        self._barcode_timeout = barcode_timeout
        self._http_client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        """Return the injected client or create a new one."""
        if self._http_client is not None:
            return self._http_client
        return httpx.AsyncClient()

    async def scan_barcode(self, image: bytes) -> str | None:
        if not self._barcode_url:
            return None

        data = await self._post_image(self._barcode_url, image, timeout=self._barcode_timeout)
        barcode = data.get("barcode")
        if barcode is None:
            return None
        return str(barcode).strip() or None

    async def classify(self, image: bytes, *, timeout: float) -> Classification:
        data = await self._post_image(self._classifier_url, image, timeout=timeout)

        if not data.get("success"):
            raise RecognitionUnavailableError(data.get("error") or "classifier reported failure")

        return self._parse_classification(data.get("results"))

    async def _post_image(self, url: str, image: bytes, *, timeout: float) -> dict[str, Any]:
        client = await self._get_client()
        should_close = self._http_client is None

        try:
            response = await client.post(
                url,
                files={"image": ("image.png", image, "application/octet-stream")},
                timeout=timeout,
            )
        except httpx.TimeoutException as exc:
            raise RecognitionUnavailableError(f"timed out after {timeout}s calling {url}") from exc
        except httpx.HTTPError as exc:
            raise RecognitionUnavailableError(f"{type(exc).__name__}: {exc}") from exc
        finally:
            if should_close:
                await client.aclose()

        if response.status_code != 200:
            self._raise_service_error(response)

        try:
            data = response.json()
        except ValueError as exc:
            raise RecognitionUnavailableError("response is not valid JSON", response.status_code) from exc
        if not isinstance(data, dict):
            raise RecognitionUnavailableError("unexpected response shape", response.status_code)
        return data

    @staticmethod
    def _parse_classification(results: Any) -> Classification:
        """Accept a results object, a JSON-encoded object, or a ranked list of them."""
        if isinstance(results, str):
            try:
                results = json.loads(results)
            except ValueError as exc:
                raise RecognitionUnavailableError("classifier results are not valid JSON") from exc
        if isinstance(results, list):
            results = results[0] if results else None
        if not isinstance(results, dict):
            raise RecognitionUnavailableError("classifier returned no results")

        label = results.get("class", results.get("label", ""))
        try:
            return Classification(
                label=str(label or ""),
                confidence=float(results.get("confidence", 0.0)),
            )
        except (TypeError, ValueError) as exc:
            raise RecognitionUnavailableError(f"invalid classification: {exc}") from exc

    @staticmethod
    def _raise_service_error(response: httpx.Response) -> None:
        """Raise RecognitionUnavailableError with the service's error message."""
        try:
            body = response.json()
            message = body.get("error") or response.text
        except (ValueError, AttributeError):
            message = response.text
        logger.warning("Recognition service error %d: %s", response.status_code, message)
        raise RecognitionUnavailableError(str(message), response.status_code)
