"""
HuggingFace Inference API classifier client.

Posts image bytes to a hosted image-classification model (nateraw/food by
default) and returns the (label, score) candidates it answers with.
"""

import asyncio
import base64
from typing import Any, Optional

import aiohttp
import structlog
from pydantic import ValidationError as PydanticValidationError

from nutrivision.config import ClassifierConfig
from nutrivision.domain.recognition.candidates import ClassificationCandidate
from nutrivision.domain.shared.errors import ClassifierError

logger = structlog.get_logger(__name__)


def parse_classifier_payload(payload: Any) -> list[ClassificationCandidate]:
    """Parse an inference response body into candidates.

    Accepted shapes:
    - [{"label": ..., "score": ...}, ...]
    - [[{"label": ..., "score": ...}, ...]] (batched, flattened)

    An object carrying "error" is the service refusing the request.

    Raises:
        ClassifierError: rejected for error objects, malformed otherwise

    Example:
        >>> parse_classifier_payload([{"label": "pizza", "score": 0.9}])[0].label
        'pizza'
    """
    if isinstance(payload, dict):
        if "error" in payload:
            raise ClassifierError.rejected(f"Classifier error: {payload['error']}")
        raise ClassifierError.malformed("Expected a JSON array of candidates")

    if not isinstance(payload, list):
        raise ClassifierError.malformed(
            f"Expected a JSON array, got {type(payload).__name__}"
        )

    if payload and all(isinstance(item, list) for item in payload):
        payload = [entry for batch in payload for entry in batch]

    candidates = []
    for item in payload:
        if not isinstance(item, dict):
            raise ClassifierError.malformed(f"Candidate is not an object: {item!r}")
        try:
            candidates.append(
                ClassificationCandidate(label=item.get("label"), score=item.get("score"))
            )
        except PydanticValidationError as e:
            raise ClassifierError.malformed(f"Invalid candidate {item!r}: {e}") from e
    return candidates


class HuggingFaceClassifierClient:
    """HuggingFace Inference API client.

    Example:
        >>> async def run(image: bytes):
        ...     async with HuggingFaceClassifierClient(ClassifierConfig()) as client:
        ...         return await client.classify(image, "image/jpeg")
    """

    def __init__(self, config: ClassifierConfig) -> None:
        self.config = config
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "HuggingFaceClassifierClient":
        self._session = aiohttp.ClientSession()
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    def _build_request(self, data: bytes, content_type: str) -> dict[str, Any]:
        headers = {}
        if self.config.api_token:
            headers["Authorization"] = f"Bearer {self.config.api_token}"

        if self.config.payload_encoding == "base64":
            return {
                "headers": headers,
                "json": {"inputs": base64.b64encode(data).decode("ascii")},
            }

        headers["Content-Type"] = content_type
        return {"headers": headers, "data": data}

    async def classify(
        self, data: bytes, content_type: str = "application/octet-stream"
    ) -> list[ClassificationCandidate]:
        """Classify an encoded image.

        Args:
            data: Encoded image bytes (not validated here)
            content_type: MIME type sent with raw payloads

        Returns:
            Candidates in the order the service returned them

        Raises:
            ClassifierError: transport, rejected or malformed
        """
        if not self._session:
            raise ClassifierError.transport("Client not initialized, use async with")

        try:
            async with self._session.post(
                self.config.url,
                timeout=aiohttp.ClientTimeout(total=self.config.timeout_seconds),
                **self._build_request(data, content_type),
            ) as response:
                if response.status >= 400:
                    body = await response.text()
                    logger.warning(
                        "Classifier rejected request",
                        status=response.status,
                        body=body[:200],
                    )
                    raise ClassifierError.rejected(
                        f"Classifier API error: {response.status}",
                        status=response.status,
                    )

                try:
                    payload = await response.json(content_type=None)
                except (aiohttp.ContentTypeError, ValueError) as e:
                    raise ClassifierError.malformed(
                        f"Classifier response is not JSON: {e}"
                    ) from e

        except asyncio.TimeoutError as e:
            raise ClassifierError.transport("Classifier API timeout") from e
        except aiohttp.ClientError as e:
            raise ClassifierError.transport(f"Classifier API client error: {e}") from e

        candidates = parse_classifier_payload(payload)
        logger.info("Classifier responded", candidates=len(candidates))
        return candidates
