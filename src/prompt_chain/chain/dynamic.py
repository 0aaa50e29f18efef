"""Dynamic extract runner.

Starting from an initial prompt, each step runs the template at the current
``(prompt_area, prompt_key)`` cursor, merges the JSON it produced into the
accumulated result, and asks the template's ``next_prompt`` rule where to go
next. The chain ends when no next prompt resolves, a step fails, a template
is missing, or the step budget is spent.
"""

from __future__ import annotations

from collections.abc import Mapping
import json
import logging
from typing import TYPE_CHECKING, Any

from prompt_chain.core.branching import parse_next_prompt_config, resolve_next_prompt
from prompt_chain.core.merge import deep_merge
from prompt_chain.core.types import (
    DynamicDataExtractResponse,
    DynamicExtractStepResult,
    Failure,
    ImagePart,
    JsonObject,
    NextPromptResolution,
    ServiceParams,
    ServiceType,
    StepError,
    StopReason,
)
from prompt_chain.response.parsing import parse_llm_json_response

if TYPE_CHECKING:
    from prompt_chain.chain.context import ChainContext

log = logging.getLogger(__name__)


def flatten_json_object(
    obj: Mapping[str, Any], prefix: str = "", into: dict[str, str] | None = None
) -> dict[str, str]:
    """Flatten nested objects into dot-joined string variables.

    Nulls are skipped, nested objects recurse, arrays are rendered as compact
    JSON and every other value is stringified.

    Example:
        >>> flatten_json_object({"invoice": {"total": 10, "paid": True}})
        {'invoice.total': '10', 'invoice.paid': 'true'}
    """
    variables = {} if into is None else into
    for key, value in obj.items():
        full_key = f"{prefix}.{key}" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, Mapping):
            flatten_json_object(value, full_key, variables)
        elif isinstance(value, str):
            variables[full_key] = value
        elif isinstance(value, bool):
            variables[full_key] = "true" if value else "false"
        elif isinstance(value, list):
            variables[full_key] = json.dumps(
                value, separators=(",", ":"), ensure_ascii=False
            )
        else:
            variables[full_key] = str(value)
    return variables


def build_step_variables(
    merged_result: Mapping[str, Any], context_data: Mapping[str, Any] | None
) -> dict[str, str]:
    """Variables for every step after the first; merged results win."""
    variables: dict[str, str] = {}
    if context_data:
        flatten_json_object(context_data, into=variables)
    flatten_json_object(merged_result, into=variables)
    return variables


def _to_response(
    step_results: list[DynamicExtractStepResult],
    errors: list[StepError],
    merged_result: JsonObject,
    stop_reason: StopReason,
) -> DynamicDataExtractResponse:
    successful_steps = sum(1 for r in step_results if r.success)
    return DynamicDataExtractResponse(
        success=successful_steps > 0,
        merged_result=merged_result,
        step_results=tuple(step_results),
        errors=tuple(errors),
        total_steps=len(step_results),
        successful_steps=successful_steps,
        final_stop_reason=stop_reason,
    )


async def run_dynamic_extract(
    context: ChainContext,
    initial_prompt_area: str,
    initial_prompt_key: str,
    *,
    max_depth: int | None = None,
    continue_on_error: bool | None = None,
    initial_prompt_variables: Mapping[str, str] | None = None,
    context_data: Mapping[str, Any] | None = None,
    image: ImagePart | None = None,
) -> DynamicDataExtractResponse:
    """Run a dynamic chain from ``(initial_prompt_area, initial_prompt_key)``.

    Args:
        context: Store, services, config and telemetry for the run.
        initial_prompt_area: Area of the first template.
        initial_prompt_key: Key of the first template.
        max_depth: Step budget. Defaults to the configured ``max_depth``.
        continue_on_error: Keep going after a failed step. Defaults to the
            configured ``extract_continue_on_error``. A missing template is
            retried at the same cursor, since the cursor only moves after a
            successful step.
        initial_prompt_variables: Variables for the first step only.
        context_data: Extra values made available to later steps; the
            accumulated result wins on key collisions.
        image: A document sent with every step through ``image_text``.
            Without it every step uses ``text_text``.

    Returns:
        The accumulated result, the per-step trace and the stop reason. This
        function does not raise for step failures.

    Example:
        A ``doc/classify`` template returning ``{"document_type": "invoice"}``
        with rule ``{"static_prompt_area": "doc", "dynamic_prompt_key":
        "$.document_type"}`` continues at ``doc/invoice``.
    """
    config = context.config
    if max_depth is None:
        max_depth = config.max_depth
    if continue_on_error is None:
        continue_on_error = config.extract_continue_on_error

    step_results: list[DynamicExtractStepResult] = []
    errors: list[StepError] = []
    merged_result: JsonObject = {}
    stop_reason = StopReason.NO_NEXT_PROMPT

    log.info(
        "Starting dynamic extract at %s/%s (max_depth=%d, continue_on_error=%s, "
        "document=%s)",
        initial_prompt_area,
        initial_prompt_key,
        max_depth,
        continue_on_error,
        f"{image.mime_type}, {len(image.data)} chars" if image else None,
    )

    if context.store is None:
        error = "Prompt store is required for dynamic data extract"
        log.error(error)
        return _to_response(
            [], [StepError(step_index=0, error=error)], {}, StopReason.ERROR
        )

    service = ServiceType.IMAGE_TEXT if image is not None else ServiceType.TEXT_TEXT
    images = (image,) if image is not None else ()
    current_area, current_key = initial_prompt_area, initial_prompt_key
    is_first_step = True

    def record_failure(
        step_index: int, error: str, reason: StopReason, *, retryable: bool = False
    ) -> None:
        nonlocal stop_reason
        step_error = StepError(step_index=step_index, error=error)
        if retryable:
            step_error["retryable"] = True
        errors.append(step_error)
        step_results.append(
            DynamicExtractStepResult(
                step_index=step_index,
                success=False,
                prompt_area=current_area,
                prompt_key=current_key,
                error=error,
            )
        )
        stop_reason = reason
        context.telemetry.count("chain.dynamic.errors", reason=reason.value)

    for step_index in range(max_depth):
        log.debug(
            "Dynamic extract step %d/%d at %s/%s",
            step_index + 1,
            max_depth,
            current_area,
            current_key,
        )
        with context.telemetry(
            "chain.dynamic.step", prompt_area=current_area, prompt_key=current_key
        ):
            try:
                record = context.store.get_prompt(current_area, current_key)
            except Exception as e:
                error = f"Prompt lookup failed for {current_area}/{current_key}: {e}"
                log.error("Step %d: %s", step_index, error, exc_info=True)
                record_failure(step_index, error, StopReason.ERROR)
                if not continue_on_error:
                    break
                continue

            if record is None:
                error = f"Prompt not found: {current_area}/{current_key}"
                log.error("Step %d: %s", step_index, error)
                record_failure(step_index, error, StopReason.NEXT_PROMPT_NOT_FOUND)
                if not continue_on_error:
                    break
                continue

            prompt_variables = (
                dict(initial_prompt_variables or {})
                if is_first_step
                else build_step_variables(merged_result, context_data)
            )
            params = ServiceParams(
                prompt=record.prompt_text,
                prompt_variables=prompt_variables,
                images=images,
            )
            outcome = await context.services.call(service, params)
            if isinstance(outcome, Failure):
                log.error("Step %d failed: %s", step_index, outcome.error)
                record_failure(
                    step_index,
                    str(outcome.error),
                    StopReason.ERROR,
                    retryable=getattr(outcome.error, "retryable", False),
                )
                if not continue_on_error:
                    break
                continue

            raw_text = outcome.value.text or ""
            parsed_result = parse_llm_json_response(raw_text)
            if isinstance(parsed_result, dict):
                merged_result = deep_merge(merged_result, parsed_result)

            next_config = parse_next_prompt_config(record.next_prompt)
            config_dump = (
                next_config.model_dump(exclude_none=True)
                if next_config is not None
                else None
            )
            resolved = (
                resolve_next_prompt(next_config, parsed_result)
                if next_config is not None and parsed_result is not None
                else None
            )

            if resolved is None:
                step_results.append(
                    DynamicExtractStepResult(
                        step_index=step_index,
                        success=True,
                        prompt_area=current_area,
                        prompt_key=current_key,
                        raw_text=raw_text,
                        parsed_result=parsed_result,
                        next_prompt_resolution=NextPromptResolution(config=config_dump),
                    )
                )
                stop_reason = StopReason.NO_NEXT_PROMPT
                log.info(
                    "Chain ended at step %d: %s",
                    step_index,
                    "could not resolve next_prompt"
                    if next_config is not None
                    else "no next_prompt configured",
                )
                break

            step_results.append(
                DynamicExtractStepResult(
                    step_index=step_index,
                    success=True,
                    prompt_area=current_area,
                    prompt_key=current_key,
                    raw_text=raw_text,
                    parsed_result=parsed_result,
                    next_prompt_resolution=NextPromptResolution(
                        config=config_dump,
                        resolved_area=resolved.prompt_area,
                        resolved_key=resolved.prompt_key,
                        matched_branch=resolved.resolution_type,
                        branch_index=resolved.branch_index,
                    ),
                )
            )
            log.info(
                "Step %d resolved next prompt %s/%s (%s)",
                step_index,
                resolved.prompt_area,
                resolved.prompt_key,
                resolved.resolution_type,
            )
            current_area, current_key = resolved.prompt_area, resolved.prompt_key
            is_first_step = False

    # The budget ran out while the chain still had somewhere to go
    if len(step_results) >= max_depth and step_results:
        last = step_results[-1]
        resolution = last.next_prompt_resolution
        if last.success and resolution is not None and resolution.resolved:
            stop_reason = StopReason.MAX_DEPTH
            log.warning("Dynamic extract stopped at max_depth=%d", max_depth)

    response = _to_response(step_results, errors, merged_result, stop_reason)
    log.info(
        "Dynamic extract complete: %d/%d step(s) succeeded, stop reason %s",
        response.successful_steps,
        response.total_steps,
        stop_reason.value,
    )
    return response
