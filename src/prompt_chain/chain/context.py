"""Explicit dependencies threaded through the chain runners."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from prompt_chain.config import FrozenConfig, resolve_config
from prompt_chain.services.generic import PromptServices
from prompt_chain.telemetry import TelemetryContext, TelemetryContextProtocol

if TYPE_CHECKING:
    from prompt_chain.prompts.store import PromptStore
    from prompt_chain.services.base import GenerationAdapter


@dataclass(frozen=True, slots=True)
class ChainContext:
    """Everything a chain run needs: prompt store, services, config, telemetry.

    Runners hold no module-level state; two runs with different contexts are
    fully independent.
    """

    services: PromptServices
    store: PromptStore | None
    config: FrozenConfig = field(default_factory=FrozenConfig)
    telemetry: TelemetryContextProtocol = field(default_factory=TelemetryContext)

    @classmethod
    def create(
        cls,
        adapter: GenerationAdapter,
        store: PromptStore | None = None,
        *,
        config: FrozenConfig | None = None,
        telemetry: TelemetryContextProtocol | None = None,
    ) -> ChainContext:
        """Build a context around `adapter`.

        Without an explicit `config`, configuration is resolved from the
        environment and configuration files.
        """
        if config is None:
            config = resolve_config().to_frozen()
        if telemetry is None:
            telemetry = TelemetryContext()
        return cls(
            services=PromptServices(store, adapter, telemetry=telemetry),
            store=store,
            config=config,
            telemetry=telemetry,
        )

    @classmethod
    def for_gemini(
        cls,
        store: PromptStore | None = None,
        *,
        config: FrozenConfig | None = None,
        telemetry: TelemetryContextProtocol | None = None,
        client: Any | None = None,
    ) -> ChainContext:
        """Build a context backed by `GoogleGenAIAdapter`."""
        from prompt_chain.services.gemini import GoogleGenAIAdapter

        if config is None:
            config = resolve_config().to_frozen()
        adapter = GoogleGenAIAdapter.from_config(config, client=client)
        return cls.create(adapter, store, config=config, telemetry=telemetry)
