# Module: generation
# License: MIT (Listing Studio project)
# Description: Listing-text and mannequin-image generation behind one request/response contract.
# Platform: Server
# Dependencies: openai, Pillow

"""
===================================
GENERATION SERVICE
File: generation.py
===================================

Two operations on top of the OpenAI API:

    generate_listing    multimodal completion (responses API) → strict JSON
                        → ListingResult (title lower-cased, safe defaults)
    generate_mannequin  image edit with the reference photos → PNG data URL

Order of checks for both operations:
    1. use_ai == False  → deterministic demo output, no key check, no call
    2. missing API key  → ConfigurationError (400), no call
    3. provider call    → ProviderError on failure
"""

import base64
import io
import json
import logging
import time
from dataclasses import asdict, dataclass
from functools import lru_cache
from typing import Any, Callable, Optional

from openai import APIStatusError, AsyncOpenAI, OpenAIError
from PIL import Image

from pipeline.errors import ConfigurationError, ProviderError
from pipeline.payload import GenerationRequest
from pipeline.platform_utils import Settings
from pipeline.prompts import (
    DEFAULT_GARMENT,
    ListingPromptOptions,
    MannequinPromptOptions,
    build_listing_prompt,
    build_mannequin_prompt,
)
from pipeline.transport import MAX_TEXT_IMAGES, to_image_attachments, to_text_inputs

logger = logging.getLogger("studio.generation")

MISSING_KEY_MESSAGE = "OPENAI_API_KEY is missing. Set it in the server environment."
NO_IMAGE_MESSAGE = "no image returned by the provider"


@dataclass
class ListingResult:
    title: str = ""
    description: str = ""
    price: str = ""
    mannequin_prompt: str = DEFAULT_GARMENT

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> "ListingResult":
        if not isinstance(data, dict):
            data = {}
        return cls(
            title=_text(data.get("title")),
            description=_text(data.get("description")),
            price=_text(data.get("price")),
            mannequin_prompt=_text(data.get("mannequin_prompt")),
        )


@dataclass
class MannequinResult:
    image_data_url: Optional[str] = None

    def to_dict(self) -> dict:
        return {"ok": True, "image_data_url": self.image_data_url}


DEMO_LISTING = ListingResult(
    title="lowercase title (demo mode)",
    description="demo mode description. enable AI to generate it automatically.",
    price="—",
    mannequin_prompt="a garment",
)


@lru_cache(maxsize=1)
def demo_mannequin_png() -> str:
    """Fixed light-grey placeholder returned in demo mode."""
    buf = io.BytesIO()
    Image.new("RGB", (256, 256), (235, 235, 235)).save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return str(value).strip()


def parse_listing_response(raw_text: Optional[str]) -> ListingResult:
    """
    Turn the model's text into a ListingResult.

    Markdown code fences are tolerated. Anything that does not parse to a JSON
    object is treated as {} so every field falls back to its default. The title
    is always lower-cased.
    """
    json_text = (raw_text or "").strip()
    if json_text.startswith("```"):
        lines = [l for l in json_text.split("\n") if not l.strip().startswith("```")]
        json_text = "\n".join(lines)

    try:
        obj = json.loads(json_text or "{}")
    except json.JSONDecodeError:
        logger.warning("Listing response is not valid JSON; using defaults")
        obj = {}
    if not isinstance(obj, dict):
        obj = {}

    title = _text(obj.get("title")).lower()
    return ListingResult(
        title=title,
        description=_text(obj.get("description")),
        price=_text(obj.get("price")),
        mannequin_prompt=_text(obj.get("mannequin_prompt")) or title or DEFAULT_GARMENT,
    )


def _provider_error(exc: OpenAIError) -> ProviderError:
    if isinstance(exc, APIStatusError):
        return ProviderError(str(exc), status_code=exc.status_code)
    return ProviderError(str(exc) or exc.__class__.__name__)


def _default_client_factory(api_key: str) -> AsyncOpenAI:
    return AsyncOpenAI(api_key=api_key)


class GenerationService:
    """
    Facade over the provider's text and image-edit operations.

    Args:
        settings: Model names, key and listing locale.
        client_factory: Builds the AsyncOpenAI client from the API key.
    """

    def __init__(
        self,
        settings: Settings,
        client_factory: Callable[[str], Any] = _default_client_factory,
    ):
        self.settings = settings
        self._client_factory = client_factory

    def _client(self) -> Any:
        if not self.settings.has_key:
            raise ConfigurationError(MISSING_KEY_MESSAGE)
        return self._client_factory(self.settings.openai_api_key)

    async def generate_listing(self, request: GenerationRequest) -> ListingResult:
        if not request.use_ai:
            logger.info("Listing: demo mode")
            return ListingResult(**DEMO_LISTING.to_dict())

        client = self._client()

        prompt = build_listing_prompt(ListingPromptOptions(
            extra=request.extra,
            language=self.settings.listing_language,
            marketplace=self.settings.marketplace,
            currency=self.settings.currency,
        ))
        content = [{"type": "input_text", "text": prompt}]
        content.extend(to_text_inputs(request.images, cap=MAX_TEXT_IMAGES))

        kwargs = {
            "model": self.settings.text_model,
            "input": [{"role": "user", "content": content}],
            "text": {"format": {"type": "json_object"}},
        }
        if self.settings.reasoning_effort:
            kwargs["reasoning"] = {"effort": self.settings.reasoning_effort}

        start = time.time()
        try:
            response = await client.responses.create(**kwargs)
        except OpenAIError as e:
            logger.error("Listing generation failed: %s", e)
            raise _provider_error(e) from e

        latency_ms = int((time.time() - start) * 1000)
        logger.info(
            "Listing generated with %d image(s) in %dms",
            len(content) - 1, latency_ms,
            extra={"stage": "listing", "latency_ms": latency_ms},
        )
        return parse_listing_response(getattr(response, "output_text", None))

    async def generate_mannequin(self, request: GenerationRequest) -> MannequinResult:
        if not request.use_ai:
            logger.info("Mannequin: demo mode")
            return MannequinResult(image_data_url=demo_mannequin_png())

        client = self._client()
        attachments = to_image_attachments(request.images)

        prompt = build_mannequin_prompt(MannequinPromptOptions(
            description=request.description or DEFAULT_GARMENT,
            gender=request.gender,
        ))

        start = time.time()
        try:
            result = await client.images.edit(
                model=self.settings.image_model,
                image=[a.as_file() for a in attachments],
                prompt=prompt,
                size=self.settings.image_size,
            )
        except OpenAIError as e:
            logger.error("Mannequin generation failed: %s", e)
            raise _provider_error(e) from e

        data = getattr(result, "data", None) or []
        b64 = getattr(data[0], "b64_json", None) if data else None
        if not b64:
            raise ProviderError(NO_IMAGE_MESSAGE)

        latency_ms = int((time.time() - start) * 1000)
        logger.info(
            "Mannequin generated from %d reference(s) in %dms",
            len(attachments), latency_ms,
            extra={"stage": "mannequin", "latency_ms": latency_ms},
        )
        return MannequinResult(image_data_url=f"data:image/png;base64,{b64}")
