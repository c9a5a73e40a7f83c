from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass
class MetricsError(Exception):
    code: str
    message: str
    context: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.code)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "context": dict(self.context or {})}


class ConfigError(MetricsError):
    """Raised once, at construction, for an unusable SYSTEM_METRICS_* setting."""

    def __init__(self, message: str = "Invalid system metrics configuration.", **ctx: Any):
        super().__init__("config_error", message, context=ctx)


class ProbeError(MetricsError):
    """A metric group could not be read this tick. Never escapes a collection."""

    def __init__(self, group: str, message: str = "Counter source unreadable.", **ctx: Any):
        super().__init__("probe_error", message, context={"group": group, **ctx})

    @property
    def group(self) -> str:
        return str(self.context.get("group", ""))
