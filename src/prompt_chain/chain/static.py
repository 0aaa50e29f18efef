"""Static chain runner.

Every step declares its inputs up front. Inputs are literals or references to
results of earlier steps; the runner resolves them, dispatches the step to
the matching service, and deep-merges the JSON of every successful step.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from prompt_chain.chain.definitions import ChainCallDefinition
from prompt_chain.chain.fields import (
    build_prompt_variables,
    resolve_chain_field,
    resolve_chain_image_definition,
)
from prompt_chain.core.merge import merge_chain_results
from prompt_chain.core.types import (
    ChainCallError,
    ChainCallResult,
    Failure,
    ImagePart,
    PromptChainResponse,
    Result,
    ServiceParams,
    ServiceType,
    Success,
)
from prompt_chain.exceptions import PromptChainError
from prompt_chain.response.parsing import parse_llm_json_response

if TYPE_CHECKING:
    from prompt_chain.chain.context import ChainContext

log = logging.getLogger(__name__)

UNRESOLVED = "unresolved"


def _build_service_params(
    definition: ChainCallDefinition,
    prompt_variables: dict[str, str],
    previous_results: Sequence[ChainCallResult],
) -> Result[ServiceParams, PromptChainError]:
    """Assemble the parameters for the definition's call type."""
    call_type = definition.call_type
    base = ServiceParams(prompt_variables=prompt_variables)

    if call_type in (ServiceType.TEXT_TEXT, ServiceType.TEXT_IMAGE):
        return Success(base)

    if call_type == ServiceType.IMAGE_TEXT:
        if definition.image_b64 is None or definition.image_mime_type is None:
            return Failure(
                PromptChainError(
                    "image_text requires image_b64 and image_mime_type fields"
                )
            )
        data = resolve_chain_field(definition.image_b64, previous_results)
        if not data:
            return Failure(
                PromptChainError("Could not resolve image_b64 for image_text call")
            )
        mime_type = resolve_chain_field(definition.image_mime_type, previous_results)
        if not mime_type:
            return Failure(
                PromptChainError(
                    "Could not resolve image_mime_type for image_text call"
                )
            )
        return Success(
            ServiceParams(
                prompt_variables=prompt_variables,
                images=(ImagePart(data=data, mime_type=mime_type),),
            )
        )

    # image_image: the images list wins over the single image fields
    images: list[ImagePart] = []
    if definition.images:
        for index, image_def in enumerate(definition.images):
            image = resolve_chain_image_definition(image_def, previous_results)
            if image is None:
                log.warning("Skipping unresolved image %d in images list", index)
                continue
            images.append(image)
    elif definition.image_b64 is not None and definition.image_mime_type is not None:
        data = resolve_chain_field(definition.image_b64, previous_results)
        mime_type = resolve_chain_field(definition.image_mime_type, previous_results)
        if data and mime_type:
            images.append(ImagePart(data=data, mime_type=mime_type))

    if not images:
        return Failure(
            PromptChainError(
                "image_image requires at least one image "
                "(via image_b64/image_mime_type or images array)"
            )
        )
    log.debug("Resolved %d image(s) for image_image", len(images))
    return Success(ServiceParams(prompt_variables=prompt_variables, images=tuple(images)))


def _failed(
    call_index: int,
    error: str,
    prompt_area: str | None,
    prompt_key: str | None,
    *,
    retryable: bool = False,
) -> ChainCallResult:
    return ChainCallResult(
        call_index=call_index,
        success=False,
        prompt_area=prompt_area or UNRESOLVED,
        prompt_key=prompt_key or UNRESOLVED,
        error=error,
        retryable=retryable or None,
    )


async def _run_step(
    context: ChainContext,
    call_index: int,
    raw_definition: ChainCallDefinition | Mapping[str, Any],
    previous_results: Sequence[ChainCallResult],
) -> ChainCallResult:
    try:
        definition = ChainCallDefinition.model_validate(raw_definition)
    except ValidationError as e:
        log.error("Invalid chain call definition %d: %s", call_index, e)
        return _failed(call_index, f"Invalid chain call definition: {e}", None, None)

    prompt_area = resolve_chain_field(definition.prompt_area, previous_results)
    prompt_key = resolve_chain_field(definition.prompt_key, previous_results)
    if not prompt_area or not prompt_key:
        error = f"Could not resolve prompt_area or prompt_key for call {call_index}"
        log.error("%s (area=%r, key=%r)", error, prompt_area, prompt_key)
        return _failed(call_index, error, prompt_area, prompt_key)

    call_type = definition.call_type
    prompt_variables = build_prompt_variables(definition.variables, previous_results)

    built = _build_service_params(definition, prompt_variables, previous_results)
    if isinstance(built, Failure):
        log.error("Call %d (%s): %s", call_index, call_type.value, built.error)
        return _failed(call_index, str(built.error), prompt_area, prompt_key)

    log.info(
        "Executing %s call %d (%s/%s, %d variable(s))",
        call_type.value,
        call_index,
        prompt_area,
        prompt_key,
        len(prompt_variables),
    )
    outcome = await context.services.call(
        call_type, built.value.with_prompt_source(prompt_area, prompt_key)
    )
    if isinstance(outcome, Failure):
        log.error("Call %d failed: %s", call_index, outcome.error)
        return _failed(
            call_index,
            str(outcome.error),
            prompt_area,
            prompt_key,
            retryable=getattr(outcome.error, "retryable", False),
        )

    response = outcome.value
    if call_type.produces_text:
        raw_text = response.text or ""
        result = ChainCallResult(
            call_index=call_index,
            success=True,
            prompt_area=prompt_area,
            prompt_key=prompt_key,
            raw_text=raw_text,
            parsed_result=parse_llm_json_response(raw_text),
        )
    else:
        result = ChainCallResult(
            call_index=call_index,
            success=True,
            prompt_area=prompt_area,
            prompt_key=prompt_key,
            image_b64=response.image_b64,
            image_mime_type=response.image_mime_type,
        )

    log.info(
        "Call %d completed (text=%s, json=%s, image=%s)",
        call_index,
        bool(result.raw_text),
        result.parsed_result is not None,
        bool(result.image_b64),
    )
    return result


async def run_static_chain(
    context: ChainContext,
    chain_calls: Sequence[ChainCallDefinition | Mapping[str, Any]],
    *,
    continue_on_error: bool | None = None,
) -> PromptChainResponse:
    """Execute `chain_calls` in order and merge their JSON outputs.

    Args:
        context: Store, services, config and telemetry for the run.
        chain_calls: Step definitions, as models or plain mappings. A mapping
            that fails validation becomes a failed step.
        continue_on_error: Keep going after a failed step. Defaults to the
            configured ``chain_continue_on_error``.

    Returns:
        The merged result of every successful step, the per-step records and
        the errors. This function does not raise for step failures.
    """
    if continue_on_error is None:
        continue_on_error = context.config.chain_continue_on_error

    call_results: list[ChainCallResult] = []
    errors: list[ChainCallError] = []

    log.info(
        "Starting prompt chain (%d call(s), continue_on_error=%s)",
        len(chain_calls),
        continue_on_error,
    )

    for call_index, raw_definition in enumerate(chain_calls):
        log.debug("Chain step %d/%d", call_index + 1, len(chain_calls))
        with context.telemetry("chain.static.step", call_index=call_index):
            result = await _run_step(context, call_index, raw_definition, call_results)
        call_results.append(result)

        if not result.success:
            error = ChainCallError(
                call_index=call_index, error=result.error or "Unknown error"
            )
            if result.retryable:
                error["retryable"] = True
            errors.append(error)
            context.telemetry.count("chain.static.errors")
            if not continue_on_error:
                break

    merged_result = merge_chain_results(call_results)
    successful_calls = sum(1 for r in call_results if r.success)

    log.info(
        "Prompt chain complete: %d/%d call(s) succeeded, %d error(s)",
        successful_calls,
        len(chain_calls),
        len(errors),
    )
    return PromptChainResponse(
        success=successful_calls > 0,
        merged_result=merged_result,
        call_results=tuple(call_results),
        errors=tuple(errors),
        total_calls=len(chain_calls),
        successful_calls=successful_calls,
    )
