"""Generic service set: the four service kinds plus chained compositions.

Each service resolves the prompt text (looked up by area/key or taken
verbatim), substitutes variables, checks that the adapter supports the
service, and calls the adapter. Every outcome comes back as a `Result`.
"""

from __future__ import annotations

from collections.abc import Sequence
import dataclasses
import logging
from typing import TYPE_CHECKING

from prompt_chain.core.types import (
    Failure,
    ImagePart,
    LLMResponse,
    Result,
    ServiceParams,
    ServiceType,
    Success,
)
from prompt_chain.exceptions import (
    CapabilityError,
    PromptChainError,
    PromptNotFoundError,
    ChainedServiceError,
    ProviderError,
)
from prompt_chain.prompts.substitution import substitute_variables
from prompt_chain.services.base import GenerationRequest
from prompt_chain.telemetry import TelemetryContext, TelemetryContextProtocol

if TYPE_CHECKING:
    from prompt_chain.prompts.store import PromptStore
    from prompt_chain.services.base import GenerationAdapter

log = logging.getLogger(__name__)

type ServiceResult = Result[LLMResponse, PromptChainError]

DOCUMENT_MIME_TYPES = frozenset({"application/pdf"})


class PromptServices:
    """The provider service set consumed by the chain runners."""

    def __init__(
        self,
        store: PromptStore | None,
        adapter: GenerationAdapter,
        telemetry: TelemetryContextProtocol | None = None,
    ) -> None:
        self._store = store
        self._adapter = adapter
        self._telemetry = telemetry or TelemetryContext()

    @property
    def adapter(self) -> GenerationAdapter:
        return self._adapter

    async def text_text(self, params: ServiceParams) -> ServiceResult:
        return await self.call(ServiceType.TEXT_TEXT, params)

    async def image_text(self, params: ServiceParams) -> ServiceResult:
        return await self.call(ServiceType.IMAGE_TEXT, params)

    async def text_image(self, params: ServiceParams) -> ServiceResult:
        return await self.call(ServiceType.TEXT_IMAGE, params)

    async def image_image(self, params: ServiceParams) -> ServiceResult:
        return await self.call(ServiceType.IMAGE_IMAGE, params)

    async def document_text(self, params: ServiceParams) -> ServiceResult:
        """Analyse one PDF document with the image_text service."""
        if len(params.images) != 1:
            return Failure(
                ProviderError(
                    "document_text requires exactly one document",
                    service=ServiceType.IMAGE_TEXT,
                )
            )
        mime_type = params.images[0].mime_type
        if mime_type not in DOCUMENT_MIME_TYPES:
            supported = ", ".join(sorted(DOCUMENT_MIME_TYPES))
            return Failure(
                ProviderError(
                    f"Unsupported document type: {mime_type}. "
                    f"Supported types: {supported}",
                    service=ServiceType.IMAGE_TEXT,
                )
            )
        return await self.call(ServiceType.IMAGE_TEXT, params)

    async def text_image_text(
        self, image_params: ServiceParams, text_params: ServiceParams
    ) -> ServiceResult:
        """Generate an image, then analyse it.

        The response carries the analysis text together with the generated
        image. If only the analysis fails, the `ChainedServiceError` keeps the
        image in ``partial``.
        """
        with self._telemetry("services.chained", service="text_image_text"):
            generated = await self.text_image(image_params)
            if isinstance(generated, Failure):
                return _chain_failure(
                    f"Image generation failed: {generated.error}", generated.error
                )
            image = _image_of(generated.value)
            if image is None:
                return _chain_failure("Image generation did not return an image")

            analysis = await self.image_text(
                dataclasses.replace(text_params, images=(image,))
            )
            if isinstance(analysis, Failure):
                return _chain_failure(
                    f"Image analysis failed: {analysis.error}",
                    analysis.error,
                    partial=generated.value,
                )
        return Success(_with_text(generated.value, analysis.value))

    async def image_image_text(
        self,
        images: Sequence[ImagePart],
        prompts: Sequence[ServiceParams],
        description_params: ServiceParams,
    ) -> ServiceResult:
        """Fold `images` into one image, then describe the result.

        Step 1 combines the first two images with ``prompts[0]``; each later
        step combines the running result with the next image. There must be
        exactly one prompt per step.
        """
        if len(images) < 2:
            return _chain_failure("At least two images are required")
        if len(prompts) != len(images) - 1:
            return _chain_failure(
                f"Expected {len(images) - 1} prompts for {len(images)} images, "
                f"got {len(prompts)}"
            )
        if not (
            description_params.prompt.strip()
            or (description_params.prompt_area and description_params.prompt_key)
        ):
            return _chain_failure("Description prompt is required")

        with self._telemetry("services.chained", service="image_image_text"):
            current: ImagePart = images[0]
            combined: LLMResponse | None = None
            for step, (params, next_image) in enumerate(
                zip(prompts, images[1:], strict=True), start=1
            ):
                log.debug("image_image_text step %d of %d", step, len(prompts))
                outcome = await self.image_image(
                    dataclasses.replace(params, images=(current, next_image))
                )
                if isinstance(outcome, Failure):
                    return _chain_failure(
                        f"Step {step} failed: {outcome.error}", outcome.error
                    )
                image = _image_of(outcome.value)
                if image is None:
                    return _chain_failure(f"Step {step} did not return an image")
                current, combined = image, outcome.value

            description = await self.image_text(
                dataclasses.replace(description_params, images=(current,))
            )
            if isinstance(description, Failure):
                return _chain_failure(
                    f"Description failed: {description.error}",
                    description.error,
                    partial=combined,
                )
        assert combined is not None
        return Success(_with_text(combined, description.value))

    async def call(self, service: ServiceType, params: ServiceParams) -> ServiceResult:
        """Run one service call and normalize the outcome."""
        try:
            prompt_text = self._prompt_text(service, params)
            if service.consumes_images and not params.images:
                raise ProviderError(
                    f"{service.value} requires at least one image", service=service
                )
            if service not in self._adapter.capabilities:
                raise CapabilityError(
                    f'LLM provider "{self._adapter.name}" does not support '
                    f"{service.value} service",
                    service=service,
                )

            request = GenerationRequest(
                service=service,
                prompt=substitute_variables(prompt_text, params.prompt_variables),
                images=params.images,
            )
            log.debug(
                "Calling %s via %s (%d image(s))",
                service.value,
                self._adapter.name,
                len(request.images),
            )
            with self._telemetry("services.call", service=service.value):
                response = await self._adapter.generate(request)

            if not response.success:
                self._telemetry.count("services.error", service=service.value)
                return Failure(
                    ProviderError(
                        response.error or f"{service.value} call failed",
                        service=service,
                    )
                )
            return Success(response)
        except (ProviderError, PromptNotFoundError) as e:
            self._telemetry.count("services.error", service=service.value)
            return Failure(e)
        except Exception as e:  # Defensive normalization
            self._telemetry.count("services.error", service=service.value)
            return Failure(ProviderError(str(e) or type(e).__name__, service=service))

    def _prompt_text(self, service: ServiceType, params: ServiceParams) -> str:
        if not (params.prompt_area and params.prompt_key):
            return params.prompt

        if self._store is None:
            raise ProviderError(
                "Prompt store not configured for dynamic prompt retrieval",
                service=service,
            )
        record = self._store.get_prompt(params.prompt_area, params.prompt_key)
        if record is None:
            raise PromptNotFoundError(params.prompt_area, params.prompt_key)
        return record.prompt_text


def _image_of(response: LLMResponse) -> ImagePart | None:
    if not (response.image_b64 and response.image_mime_type):
        return None
    return ImagePart(response.image_b64, response.image_mime_type)


def _with_text(image_response: LLMResponse, text_response: LLMResponse) -> LLMResponse:
    return dataclasses.replace(
        image_response, text=text_response.text, raw_response=text_response.raw_response
    )


def _chain_failure(
    message: str,
    cause: PromptChainError | None = None,
    *,
    partial: LLMResponse | None = None,
) -> ServiceResult:
    log.error("%s", message)
    return Failure(
        ChainedServiceError(
            message,
            service=getattr(cause, "service", None),
            retryable=getattr(cause, "retryable", False),
            partial=partial,
        )
    )
