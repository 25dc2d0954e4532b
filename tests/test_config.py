from __future__ import annotations

import pytest

from core.config import RULE_EFFECT_EXEMPT, SuppressionConfig, build_suppression_config


def test_build_suppression_config_defaults() -> None:
    assert build_suppression_config({}) == SuppressionConfig()


def test_build_suppression_config_reads_values() -> None:
    config = build_suppression_config(
        {"enabled": False, "log_capacity": "25", "default_user_state": False, "rule_effect": "exempt"}
    )

    assert config.global_enabled is False
    assert config.log_capacity == 25
    assert config.default_user_state is False
    assert config.rule_effect == RULE_EFFECT_EXEMPT


@pytest.mark.parametrize(
    "raw",
    [{"log_capacity": 0}, {"rule_effect": "hide"}],
)
def test_build_suppression_config_rejects_bad_values(raw: dict) -> None:
    with pytest.raises(ValueError):
        build_suppression_config(raw)
