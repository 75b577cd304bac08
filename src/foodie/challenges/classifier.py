"""HTTP client for the external food image classifier.

The classifier answers ``POST {base_url}/predict`` (multipart field
``file``) with ``{"predictions": [{"class": int, "score": float}, ...]}``.
Any failure raises ExternalServiceError; there is no fallback class.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from foodie.challenges.classes import UNKNOWN_CLASS, class_name
from foodie.config import Settings, get_settings
from foodie.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Prediction:
    class_name: str
    class_id: int
    score: float  # percentage, 0-100


class ClassifierClient:
    """Async classifier client. ``transport`` lets tests swap in ``httpx.MockTransport``."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        download_timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.download_timeout = download_timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> ClassifierClient:
        settings = settings or get_settings()
        return cls(
            settings.classifier_url,
            timeout=settings.classifier_timeout_seconds,
            download_timeout=settings.image_download_timeout_seconds,
        )

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=timeout)

    async def predict(self, image: bytes, filename: str = "image.jpg") -> Prediction:
        """Classify raw image bytes and return the highest-scoring class."""
        try:
            async with self._client(self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/predict",
                    files={"file": (filename, image, "application/octet-stream")},
                )
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPError as e:
            logger.warning("Classifier request failed: %s", e)
            raise ExternalServiceError(f"Image classifier unavailable: {e}") from e
        except ValueError as e:
            raise ExternalServiceError("Image classifier returned invalid JSON") from e

        return _top_prediction(body)

    async def predict_url(self, url: str) -> Prediction:
        """Download an image and classify it."""
        try:
            async with self._client(self.download_timeout) as client:
                response = await client.get(url, follow_redirects=True)
                response.raise_for_status()
                image = response.content
        except httpx.HTTPError as e:
            logger.warning("Image download failed for %s: %s", url, e)
            raise ExternalServiceError(f"Could not download image: {e}") from e

        filename = url.rsplit("/", 1)[-1].split("?", 1)[0] or "image.jpg"
        return await self.predict(image, filename)


def _top_prediction(body: object) -> Prediction:
    if not isinstance(body, dict) or not isinstance(body.get("predictions", []), list):
        raise ExternalServiceError("Image classifier returned an unexpected payload")

    predictions = body.get("predictions") or []
    if not predictions:
        return Prediction(class_name=UNKNOWN_CLASS, class_id=-1, score=0.0)

    try:
        top = max(predictions, key=lambda p: float(p["score"]))
        class_id = int(top["class"])
        score = float(top["score"])
    except (KeyError, TypeError, ValueError) as e:
        raise ExternalServiceError("Image classifier returned a malformed prediction") from e

    return Prediction(class_name=class_name(class_id), class_id=class_id, score=round(score * 100, 2))
