# pricewatch/services/vision_client.py

"""Vision extraction collaborator: screenshot in, {name, price} out."""

import base64
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import google.generativeai as genai

from pricewatch.config.settings import Settings

logger = logging.getLogger("pricewatch.vision")

_DATA_URL_RE = re.compile(r"^data:(image/\w+);base64,")
_JSON_BLOCK_RE = re.compile(r"\{[\s\S]*\}")

_PROMPT = """You are analyzing a screenshot of a product page or a page of
search results. Extract the following information for the most relevant
product:

1. Product Name/Title
2. Current Price (if there's both sale and original price, use the sale price)

Return ONLY a JSON object in this exact format:
{
  "name": "Product Name Here",
  "price": 19.99
}

If any field is not found, use null for that field.
For price, return only the number without currency symbol.
Be precise - only extract what you see clearly in the screenshot.

JSON:"""


@dataclass
class VisionResult:
    """Shape returned by the vision collaborator."""

    success: bool
    name: str | None = None
    price: float | None = None
    error: str = ""


def parse_vision_response(text: str) -> VisionResult:
    """Pull the JSON object out of a model reply."""
    match = _JSON_BLOCK_RE.search(text or "")
    if not match:
        return VisionResult(
            success=False, error="Could not parse AI response",
        )
    try:
        data: Any = json.loads(match.group(0))
    except json.JSONDecodeError:
        return VisionResult(
            success=False, error="Could not parse AI response",
        )
    if not isinstance(data, dict):
        return VisionResult(
            success=False, error="Unexpected AI response shape",
        )
    raw_price = data.get("price")
    price: float | None = None
    if raw_price is not None:
        try:
            price = float(str(raw_price).replace(",", "").lstrip("$"))
        except ValueError:
            price = None
    name = data.get("name")
    return VisionResult(
        success=True,
        name=str(name) if name else None,
        price=price,
    )


class VisionClient(ABC):
    """Opaque image-recognition backend."""

    @abstractmethod
    def is_configured(self) -> bool:
        """True when the backend has credentials."""
        ...

    @abstractmethod
    def extract(self, image_b64: str) -> VisionResult:
        """Extract {name, price} from a base64 image or data URL."""
        ...


class GeminiVisionClient(VisionClient):
    """Google Gemini vision model behind the ``VisionClient`` boundary."""

    def __init__(
        self,
        api_key: str | None = None,
        model_name: str | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else Settings.GEMINI_API_KEY
        self.model_name = model_name or Settings.GEMINI_MODEL
        self._model: Any = None

    def is_configured(self) -> bool:
        """Gemini needs an API key."""
        return bool(self.api_key)

    def _get_model(self) -> Any:
        """Configure the SDK and build the model lazily."""
        if self._model is None:
            genai.configure(api_key=self.api_key)
            self._model = genai.GenerativeModel(self.model_name)
        return self._model

    def extract(self, image_b64: str) -> VisionResult:
        """Ask Gemini for the product name and price in a screenshot."""
        if not self.is_configured():
            return VisionResult(
                success=False, error="GEMINI_API_KEY not configured",
            )

        mime_type = "image/jpeg"
        prefix = _DATA_URL_RE.match(image_b64)
        if prefix:
            mime_type = prefix.group(1)
            image_b64 = image_b64[prefix.end():]

        try:
            image_bytes = base64.b64decode(image_b64)
            response = self._get_model().generate_content(
                [_PROMPT, {"mime_type": mime_type, "data": image_bytes}]
            )
            text = str(response.text).strip()
        except Exception as exc:
            logger.error(
                "Gemini vision extraction failed: %s", exc, exc_info=True,
            )
            return VisionResult(success=False, error=str(exc))

        result = parse_vision_response(text)
        logger.info(
            "Vision extraction: success=%s name=%r price=%r",
            result.success,
            result.name,
            result.price,
        )
        return result
