"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

RULE_EFFECT_SUPPRESS = "suppress"
RULE_EFFECT_EXEMPT = "exempt"
RULE_EFFECTS = (RULE_EFFECT_SUPPRESS, RULE_EFFECT_EXEMPT)


@dataclass(frozen=True)
class SuppressionConfig:
    """Per-call suppression settings handed to the orchestrator.

    - global_enabled: host-wide switch for the whole pipeline
    - log_capacity: maximum number of notices kept in the log
    - default_user_state: visibility state for users who never toggled
    - rule_effect: "suppress" hides matching notices, "exempt" shows only
      matching notices and hides the rest
    """

    global_enabled: bool = True
    log_capacity: int = 500
    default_user_state: bool = True
    rule_effect: str = RULE_EFFECT_SUPPRESS


def build_suppression_config(raw: dict[str, Any]) -> SuppressionConfig:
    """Validate a raw config section and return a SuppressionConfig."""

    capacity = int(raw.get("log_capacity", 500))
    if capacity < 1:
        raise ValueError(f"log_capacity must be at least 1, got {capacity}")

    rule_effect = str(raw.get("rule_effect", RULE_EFFECT_SUPPRESS))
    if rule_effect not in RULE_EFFECTS:
        raise ValueError(f"Unsupported rule_effect: {rule_effect}")

    return SuppressionConfig(
        global_enabled=bool(raw.get("enabled", True)),
        log_capacity=capacity,
        default_user_state=bool(raw.get("default_user_state", True)),
        rule_effect=rule_effect,
    )
