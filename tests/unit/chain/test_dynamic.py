"""Tests for the dynamic extract runner.

Each test wires a small prompt graph into an in-memory store and scripts the
model's replies, then checks the trace, the merged result and the stop
reason.
"""

from __future__ import annotations

import pytest

from prompt_chain.chain import (
    ChainContext,
    build_step_variables,
    flatten_json_object,
    run_dynamic_extract,
)
from prompt_chain.config import FrozenConfig
from prompt_chain.core.types import ImagePart, ServiceType, StopReason
from prompt_chain.exceptions import ProviderError
from prompt_chain.telemetry import InMemoryReporter, TelemetryContext
from tests.unit._builders import (
    ScriptedAdapter,
    failed,
    make_context,
    make_record,
    make_store,
    text,
)

pytestmark = pytest.mark.unit

ROUTE_BY_TYPE = {"static_prompt_area": "doc", "dynamic_prompt_key": "$.document_type"}


def _classify_then_invoice(
    classify_text: str = "", invoice_text: str = ""
) -> list:
    return [
        make_record("doc", "classify", classify_text, next_prompt=ROUTE_BY_TYPE),
        make_record("doc", "invoice", invoice_text),
    ]


@pytest.mark.asyncio
async def test_routes_on_dynamic_key_and_merges_results() -> None:
    adapter = ScriptedAdapter(
        text({"document_type": "invoice"}), text({"total": 100})
    )
    context = make_context(adapter, make_store(*_classify_then_invoice()))

    response = await run_dynamic_extract(context, "doc", "classify")

    assert response.success is True
    assert response.final_stop_reason is StopReason.NO_NEXT_PROMPT
    assert response.total_steps == 2
    assert response.successful_steps == 2
    assert response.merged_result == {"document_type": "invoice", "total": 100}

    first, second = response.step_results
    assert (first.prompt_area, first.prompt_key) == ("doc", "classify")
    assert (second.prompt_area, second.prompt_key) == ("doc", "invoice")
    resolution = first.next_prompt_resolution
    assert resolution is not None
    assert (resolution.resolved_area, resolution.resolved_key) == ("doc", "invoice")
    assert resolution.matched_branch == "simple"
    assert resolution.config == ROUTE_BY_TYPE
    # The last step has no rule to report
    assert second.next_prompt_resolution is not None
    assert second.next_prompt_resolution.config is None
    assert second.next_prompt_resolution.resolved is False


@pytest.mark.asyncio
async def test_self_loop_stops_at_max_depth() -> None:
    loop = make_record(
        "doc", "loop", next_prompt={"static_prompt_area": "doc", "static_prompt_key": "loop"}
    )
    adapter = ScriptedAdapter(text({"n": 1}))
    context = make_context(adapter, make_store(loop))

    response = await run_dynamic_extract(context, "doc", "loop", max_depth=3)

    assert response.total_steps == 3
    assert len(adapter.requests) == 3
    assert response.final_stop_reason is StopReason.MAX_DEPTH
    assert response.to_dict()["final_stop_reason"] == "max_depth"
    assert response.success is True


@pytest.mark.asyncio
async def test_max_depth_defaults_to_configured_value() -> None:
    loop = make_record(
        "doc", "loop", next_prompt={"static_prompt_area": "doc", "static_prompt_key": "loop"}
    )
    adapter = ScriptedAdapter(text({}))
    context = make_context(adapter, make_store(loop), max_depth=4)

    response = await run_dynamic_extract(context, "doc", "loop")

    assert response.total_steps == 4
    assert response.final_stop_reason is StopReason.MAX_DEPTH


@pytest.mark.asyncio
async def test_chain_ending_naturally_at_budget_is_not_max_depth() -> None:
    adapter = ScriptedAdapter(text({"document_type": "invoice"}), text({"total": 1}))
    context = make_context(adapter, make_store(*_classify_then_invoice()))

    response = await run_dynamic_extract(context, "doc", "classify", max_depth=2)

    assert response.total_steps == 2
    assert response.final_stop_reason is StopReason.NO_NEXT_PROMPT


@pytest.mark.asyncio
async def test_missing_prompt_stops_with_not_found() -> None:
    records = [
        make_record(
            "doc",
            "classify",
            next_prompt={"static_prompt_area": "doc", "static_prompt_key": "receipt"},
        )
    ]
    adapter = ScriptedAdapter(text({"document_type": "receipt"}))
    context = make_context(adapter, make_store(*records))

    response = await run_dynamic_extract(context, "doc", "classify")

    assert response.final_stop_reason is StopReason.NEXT_PROMPT_NOT_FOUND
    assert response.total_steps == 2
    assert response.successful_steps == 1
    assert response.success is True
    missing = response.step_results[1]
    assert missing.success is False
    assert (missing.prompt_area, missing.prompt_key) == ("doc", "receipt")
    assert list(response.errors) == [
        {"step_index": 1, "error": "Prompt not found: doc/receipt"}
    ]
    assert len(adapter.requests) == 1


@pytest.mark.asyncio
async def test_missing_initial_prompt_is_not_found() -> None:
    adapter = ScriptedAdapter()
    context = make_context(adapter, make_store())

    response = await run_dynamic_extract(context, "doc", "nowhere")

    assert response.success is False
    assert response.final_stop_reason is StopReason.NEXT_PROMPT_NOT_FOUND
    assert adapter.requests == []


@pytest.mark.asyncio
async def test_provider_failure_stops_with_error() -> None:
    adapter = ScriptedAdapter(failed("quota exhausted"))
    context = make_context(adapter, make_store(*_classify_then_invoice()))

    response = await run_dynamic_extract(context, "doc", "classify")

    assert response.success is False
    assert response.final_stop_reason is StopReason.ERROR
    assert response.total_steps == 1
    assert response.step_results[0].error == "quota exhausted"
    assert list(response.errors) == [{"step_index": 0, "error": "quota exhausted"}]


@pytest.mark.asyncio
async def test_adapter_exception_is_recorded_not_raised() -> None:
    adapter = ScriptedAdapter(RuntimeError("connection reset"))
    context = make_context(adapter, make_store(*_classify_then_invoice()))

    response = await run_dynamic_extract(context, "doc", "classify")

    assert response.final_stop_reason is StopReason.ERROR
    assert response.step_results[0].error == "connection reset"


class FlakyStore:
    """Store whose first `failures` lookups raise, then delegates."""

    def __init__(self, failures: int, *records) -> None:
        self._remaining = failures
        self._inner = make_store(*records)

    def get_prompt(self, prompt_area, prompt_key):
        if self._remaining:
            self._remaining -= 1
            raise RuntimeError("database is locked")
        return self._inner.get_prompt(prompt_area, prompt_key)


@pytest.mark.asyncio
async def test_store_exception_is_recorded_not_raised() -> None:
    adapter = ScriptedAdapter(text({}))
    context = ChainContext.create(adapter, FlakyStore(99), config=FrozenConfig())

    response = await run_dynamic_extract(context, "doc", "classify")

    assert response.success is False
    assert response.final_stop_reason is StopReason.ERROR
    assert list(response.errors) == [
        {
            "step_index": 0,
            "error": "Prompt lookup failed for doc/classify: database is locked",
        }
    ]
    assert adapter.requests == []


@pytest.mark.asyncio
async def test_store_exception_retries_with_continue_on_error() -> None:
    adapter = ScriptedAdapter(text({"ok": True}))
    store = FlakyStore(1, make_record("doc", "classify"))
    context = ChainContext.create(adapter, store, config=FrozenConfig())

    response = await run_dynamic_extract(
        context, "doc", "classify", continue_on_error=True
    )

    assert [r.success for r in response.step_results] == [False, True]
    assert response.final_stop_reason is StopReason.NO_NEXT_PROMPT
    assert response.merged_result == {"ok": True}


@pytest.mark.asyncio
async def test_transient_provider_failure_is_marked_retryable() -> None:
    adapter = ScriptedAdapter(ProviderError("429 Too Many Requests", retryable=True))
    context = make_context(adapter, make_store(*_classify_then_invoice()))

    response = await run_dynamic_extract(context, "doc", "classify")

    assert list(response.errors) == [
        {"step_index": 0, "error": "429 Too Many Requests", "retryable": True}
    ]


@pytest.mark.asyncio
async def test_continue_on_error_retries_same_cursor() -> None:
    adapter = ScriptedAdapter(failed("flaky"), text({"ok": True}))
    store = make_store(make_record("doc", "classify"))
    context = make_context(adapter, store)

    response = await run_dynamic_extract(
        context, "doc", "classify", continue_on_error=True
    )

    assert [r.success for r in response.step_results] == [False, True]
    assert [(r.prompt_area, r.prompt_key) for r in response.step_results] == [
        ("doc", "classify"),
        ("doc", "classify"),
    ]
    assert response.final_stop_reason is StopReason.NO_NEXT_PROMPT
    assert response.merged_result == {"ok": True}
    assert len(response.errors) == 1


@pytest.mark.asyncio
async def test_continue_on_error_from_config() -> None:
    adapter = ScriptedAdapter(failed("flaky"), text({"ok": True}))
    store = make_store(make_record("doc", "classify"))
    context = make_context(adapter, store, extract_continue_on_error=True)

    response = await run_dynamic_extract(context, "doc", "classify")

    assert response.successful_steps == 1
    assert response.total_steps == 2


@pytest.mark.asyncio
async def test_failures_exhausting_budget_keep_error_reason() -> None:
    adapter = ScriptedAdapter(failed("down"))
    store = make_store(make_record("doc", "classify"))
    context = make_context(adapter, store)

    response = await run_dynamic_extract(
        context, "doc", "classify", max_depth=2, continue_on_error=True
    )

    assert response.total_steps == 2
    assert response.final_stop_reason is StopReason.ERROR
    assert response.success is False


@pytest.mark.asyncio
async def test_first_step_uses_initial_variables_later_steps_use_results() -> None:
    records = _classify_then_invoice(
        classify_text="Classify $doc",
        invoice_text="Total for $document_type billed to $customer.name",
    )
    adapter = ScriptedAdapter(
        text({"document_type": "invoice", "customer": {"name": "ACME"}}),
        text({"total": 5}),
    )
    context = make_context(adapter, make_store(*records))

    await run_dynamic_extract(
        context, "doc", "classify", initial_prompt_variables={"doc": "scan-17"}
    )

    assert adapter.prompts == [
        "Classify scan-17",
        "Total for invoice billed to ACME",
    ]


@pytest.mark.asyncio
async def test_context_data_feeds_later_steps_and_results_win() -> None:
    records = _classify_then_invoice(
        classify_text="Start from $source",
        invoice_text="$document_type via $source",
    )
    adapter = ScriptedAdapter(text({"document_type": "invoice"}), text({}))
    context = make_context(adapter, make_store(*records))

    await run_dynamic_extract(
        context,
        "doc",
        "classify",
        context_data={"document_type": "ignored", "source": "email"},
    )

    # context_data is not applied to the first step
    assert adapter.prompts == ["Start from $source", "invoice via email"]


@pytest.mark.asyncio
async def test_document_image_switches_to_image_text() -> None:
    document = ImagePart(data="JVBERi0=", mime_type="application/pdf")
    adapter = ScriptedAdapter(text({"document_type": "invoice"}), text({}))
    context = make_context(adapter, make_store(*_classify_then_invoice()))

    await run_dynamic_extract(context, "doc", "classify", image=document)

    assert [r.service for r in adapter.requests] == [
        ServiceType.IMAGE_TEXT,
        ServiceType.IMAGE_TEXT,
    ]
    assert all(r.images == (document,) for r in adapter.requests)


@pytest.mark.asyncio
async def test_text_only_run_uses_text_text() -> None:
    adapter = ScriptedAdapter(text({}))
    context = make_context(adapter, make_store(make_record("doc", "classify")))

    await run_dynamic_extract(context, "doc", "classify")

    assert adapter.requests[0].service is ServiceType.TEXT_TEXT
    assert adapter.requests[0].images == ()


@pytest.mark.asyncio
async def test_missing_store_is_an_error_response() -> None:
    adapter = ScriptedAdapter()
    context = ChainContext.create(adapter, None, config=FrozenConfig())

    response = await run_dynamic_extract(context, "doc", "classify")

    assert response.success is False
    assert response.final_stop_reason is StopReason.ERROR
    assert response.total_steps == 0
    assert list(response.errors) == [
        {
            "step_index": 0,
            "error": "Prompt store is required for dynamic data extract",
        }
    ]
    assert adapter.requests == []


@pytest.mark.asyncio
async def test_unparseable_output_ends_chain_with_config_recorded() -> None:
    rule = {"static_prompt_area": "doc", "static_prompt_key": "invoice"}
    records = [make_record("doc", "classify", next_prompt=rule)]
    adapter = ScriptedAdapter(text("I could not decide."))
    context = make_context(adapter, make_store(*records))

    response = await run_dynamic_extract(context, "doc", "classify")

    assert response.final_stop_reason is StopReason.NO_NEXT_PROMPT
    step = response.step_results[0]
    assert step.success is True
    assert step.raw_text == "I could not decide."
    assert step.parsed_result is None
    assert step.next_prompt_resolution is not None
    assert step.next_prompt_resolution.config == rule
    assert step.next_prompt_resolution.resolved is False
    assert response.merged_result == {}


@pytest.mark.asyncio
async def test_array_output_still_routes_but_is_not_merged() -> None:
    rule = {"static_prompt_area": "doc", "static_prompt_key": "summary"}
    records = [
        make_record("doc", "items", next_prompt=rule),
        make_record("doc", "summary"),
    ]
    adapter = ScriptedAdapter(text([{"sku": "A1"}]), text({"count": 1}))
    context = make_context(adapter, make_store(*records))

    response = await run_dynamic_extract(context, "doc", "items")

    assert response.total_steps == 2
    assert response.step_results[0].parsed_result == [{"sku": "A1"}]
    assert response.merged_result == {"count": 1}


@pytest.mark.asyncio
async def test_branching_rule_picks_first_matching_branch() -> None:
    rule = {
        "branches": [
            {
                "conditions": [{"field": "$.amount", "operator": ">", "value": 1000}],
                "static_prompt_area": "review",
                "static_prompt_key": "large",
            }
        ],
        "default_branch": {
            "static_prompt_area": "review",
            "static_prompt_key": "small",
        },
    }
    records = [
        make_record("doc", "amount", next_prompt=rule),
        make_record("review", "large"),
        make_record("review", "small"),
    ]

    adapter = ScriptedAdapter(text({"amount": 1500}), text({}))
    response = await run_dynamic_extract(
        make_context(adapter, make_store(*records)), "doc", "amount"
    )
    resolution = response.step_results[0].next_prompt_resolution
    assert resolution is not None
    assert (resolution.resolved_key, resolution.matched_branch) == ("large", "branch")
    assert resolution.branch_index == 0

    adapter = ScriptedAdapter(text({"amount": 20}), text({}))
    response = await run_dynamic_extract(
        make_context(adapter, make_store(*records)), "doc", "amount"
    )
    resolution = response.step_results[0].next_prompt_resolution
    assert resolution is not None
    assert (resolution.resolved_key, resolution.matched_branch) == ("small", "default")
    assert resolution.branch_index is None
    assert response.step_results[1].prompt_key == "small"


@pytest.mark.asyncio
async def test_malformed_rule_ends_chain_quietly() -> None:
    records = [make_record("doc", "classify", next_prompt="{not json")]
    adapter = ScriptedAdapter(text({"document_type": "invoice"}))
    context = make_context(adapter, make_store(*records))

    response = await run_dynamic_extract(context, "doc", "classify")

    assert response.final_stop_reason is StopReason.NO_NEXT_PROMPT
    assert response.errors == ()
    resolution = response.step_results[0].next_prompt_resolution
    assert resolution is not None
    assert resolution.config is None


@pytest.mark.asyncio
async def test_steps_are_timed_and_errors_counted() -> None:
    reporter = InMemoryReporter()
    adapter = ScriptedAdapter(text({"document_type": "invoice"}), failed("boom"))
    context = ChainContext.create(
        adapter,
        make_store(*_classify_then_invoice()),
        config=FrozenConfig(),
        telemetry=TelemetryContext(reporter),
    )

    await run_dynamic_extract(context, "doc", "classify")

    assert len(reporter.timings["chain.dynamic.step"]) == 2
    assert reporter.total("chain.dynamic.step.chain.dynamic.errors") == 1


def test_flatten_json_object_renders_leaves_as_strings() -> None:
    flat = flatten_json_object(
        {
            "invoice": {"total": 12.5, "paid": False, "lines": [1, 2]},
            "vendor": "ACME",
            "note": None,
        }
    )

    assert flat == {
        "invoice.total": "12.5",
        "invoice.paid": "false",
        "invoice.lines": "[1,2]",
        "vendor": "ACME",
    }


def test_build_step_variables_prefers_merged_result() -> None:
    variables = build_step_variables(
        {"customer": {"name": "ACME"}}, {"customer": {"name": "Other", "id": 7}}
    )

    assert variables == {"customer.name": "ACME", "customer.id": "7"}
