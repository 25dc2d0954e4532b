from __future__ import annotations

import settings
from core.config import SuppressionConfig


def test_settings_expose_config_values() -> None:
    assert settings.LOG_RETENTION_DAYS == 30
    assert isinstance(settings.SUPPRESSION, SuppressionConfig)
    assert settings.LOG_CAPACITY == settings.SUPPRESSION.log_capacity
    assert settings.DB_PATH.endswith("noticeguard.db")
