"""Google Gemini adapter built on the google-genai SDK."""

from __future__ import annotations

import base64
import binascii
import logging
from typing import TYPE_CHECKING, Any

from google import genai
from google.genai import types

from prompt_chain.core.types import LLMResponse, ServiceType
from prompt_chain.exceptions import ConfigurationError, ProviderError

if TYPE_CHECKING:
    from prompt_chain.config import FrozenConfig
    from prompt_chain.services.base import GenerationRequest

log = logging.getLogger(__name__)


class GoogleGenAIAdapter:
    """Generation adapter for Gemini text and image models.

    Text-producing services call `model`; image-producing services call
    `image_model` with both TEXT and IMAGE response modalities and return the
    first inline image part.
    """

    name = "gemini"
    capabilities: frozenset[ServiceType] = frozenset(ServiceType)

    def __init__(
        self,
        api_key: str | None,
        *,
        model: str = "gemini-2.0-flash",
        image_model: str = "gemini-2.0-flash-preview-image-generation",
        client: Any | None = None,
    ) -> None:
        if client is None:
            if not api_key:
                raise ConfigurationError(
                    "An API key is required to create the Gemini client"
                )
            client = genai.Client(api_key=api_key)
        self._client = client
        self.model = model
        self.image_model = image_model

    @classmethod
    def from_config(
        cls, config: FrozenConfig, *, client: Any | None = None
    ) -> GoogleGenAIAdapter:
        return cls(
            config.api_key,
            model=config.model,
            image_model=config.image_model,
            client=client,
        )

    async def generate(self, request: GenerationRequest) -> LLMResponse:
        contents = self._build_contents(request)
        if request.service.produces_image:
            model_name = self.image_model
            config = types.GenerateContentConfig(response_modalities=["TEXT", "IMAGE"])
        else:
            model_name = self.model
            config = None

        log.debug(
            "Gemini %s request to %s (%d part(s))",
            request.service.value,
            model_name,
            len(contents),
        )
        try:
            response = await self._client.aio.models.generate_content(
                model=model_name, contents=contents, config=config
            )
        except Exception as e:
            raise ProviderError(
                f"Gemini API error: {e}",
                service=request.service,
                retryable=_is_transient_error(e),
            ) from e

        if request.service.produces_image:
            return self._image_response(response)
        return self._text_response(response)

    def _build_contents(self, request: GenerationRequest) -> list[Any]:
        parts: list[Any] = []
        for image in request.images:
            try:
                data = base64.b64decode(image.data, validate=True)
            except (binascii.Error, ValueError) as e:
                raise ProviderError(
                    f"Image data is not valid base64: {e}", service=request.service
                ) from e
            parts.append(types.Part.from_bytes(data=data, mime_type=image.mime_type))
        parts.append(request.prompt)
        return parts

    def _text_response(self, response: Any) -> LLMResponse:
        text = getattr(response, "text", None)
        if not text:
            return LLMResponse(
                success=False,
                error="No text content in Gemini response",
                raw_response=response,
            )
        return LLMResponse(success=True, text=text, raw_response=response)

    def _image_response(self, response: Any) -> LLMResponse:
        texts: list[str] = []
        for part in _response_parts(response):
            inline = getattr(part, "inline_data", None)
            if inline is not None and getattr(inline, "data", None):
                data = inline.data
                encoded = (
                    base64.b64encode(data).decode("ascii")
                    if isinstance(data, bytes | bytearray)
                    else str(data)
                )
                return LLMResponse(
                    success=True,
                    text="".join(texts) or None,
                    image_b64=encoded,
                    image_mime_type=getattr(inline, "mime_type", None) or "image/png",
                    raw_response=response,
                )
            if getattr(part, "text", None):
                texts.append(part.text)

        return LLMResponse(
            success=False,
            text="".join(texts) or None,
            error="No image data in Gemini response",
            raw_response=response,
        )


def _response_parts(response: Any) -> list[Any]:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []
    content = getattr(candidates[0], "content", None)
    return list(getattr(content, "parts", None) or [])


def _is_transient_error(err: Exception) -> bool:
    text = str(err).lower()
    return (
        "timeout" in text
        or "timed out" in text
        or "429" in text
        or "rate limit" in text
        or "temporarily" in text
        or "unavailable" in text
    )
