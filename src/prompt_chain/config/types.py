"""Configuration data types.

Configuration is resolved once into a `ResolvedConfig` (values plus the
origin of each value), then frozen into a `FrozenConfig` that travels with
the `ChainContext`.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Literal, NamedTuple

ConfigOrigin = Literal["programmatic", "env", "file", "default"]
SourceMap = Mapping[str, ConfigOrigin]

ENV_PREFIX = "PROMPT_CHAIN_"
SENSITIVE_FIELDS = frozenset({"api_key"})


class ResolvedConfig(NamedTuple):
    """Merged configuration values, each paired with the source it came from."""

    api_key: str | None
    model: str
    image_model: str
    max_depth: int
    chain_continue_on_error: bool
    extract_continue_on_error: bool
    log_level: str

    origin: SourceMap

    def __str__(self) -> str:
        return f"ResolvedConfig({_render_fields(self)}, origin={dict(self.origin)!r})"

    def __repr__(self) -> str:
        return self.__str__()

    def values(self) -> dict[str, object]:
        data = self._asdict()
        data.pop("origin")
        return data

    def to_frozen(self) -> "FrozenConfig":
        return FrozenConfig(**self.values())

    def with_overrides(self, **overrides: object) -> "ResolvedConfig":
        """Copy with known fields replaced; they are not re-validated."""
        known = {k: v for k, v in overrides.items() if k in FrozenConfig.__dataclass_fields__}
        origin = {**self.origin, **dict.fromkeys(known, "programmatic")}
        return self._replace(**known, origin=origin)

    def audit(self) -> str:
        """Redacted report showing the origin of each field, one per line."""
        lines = []
        for field, value in self.values().items():
            origin = self.origin.get(field)
            if origin is None:
                continue
            if field in SENSITIVE_FIELDS:
                display = f"{origin}:None" if value is None else f"{origin}:<redacted>"
            elif origin == "env":
                display = f"env:{ENV_PREFIX}{field.upper()}={value}"
            else:
                display = f"{origin}:{value}"
            lines.append(f"{field}: {display}")
        return "\n".join(lines)


@dataclass(frozen=True)
class FrozenConfig:
    """Immutable configuration carried by a chain context."""

    api_key: str | None = None
    model: str = "gemini-2.0-flash"
    image_model: str = "gemini-2.0-flash-preview-image-generation"
    max_depth: int = 10
    chain_continue_on_error: bool = True
    extract_continue_on_error: bool = False
    log_level: str = "WARNING"

    def __str__(self) -> str:
        return f"FrozenConfig({_render_fields(self)})"

    def __repr__(self) -> str:
        return self.__str__()


def _render_fields(config: "ResolvedConfig | FrozenConfig") -> str:
    parts = []
    for field in FrozenConfig.__dataclass_fields__:
        value = getattr(config, field)
        if field in SENSITIVE_FIELDS and value:
            value = "[REDACTED]"
        parts.append(f"{field}={value!r}")
    return ", ".join(parts)
