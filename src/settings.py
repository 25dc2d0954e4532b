"""Static configuration for noticeguard.

All operator-editable settings (suppression switches, log capacity, seeded
allowlist, administrators, logging) live in a single JSON file so they can be
changed without touching Python.
"""

import json
import os

from core.config import build_suppression_config

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# config.json sits next to the project root; NOTICEGUARD_CONFIG overrides it.
CONFIG_PATH = os.getenv("NOTICEGUARD_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))


def _load_json_config() -> dict:
    """Load config.json with a flat, operator-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _resolve_path(path: str) -> str:
    if path == ":memory:" or os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


_CONFIG = _load_json_config()

# Where to store the SQLite database, and how long to wait on a locked file
# before reporting the store as unavailable.
_storage = _CONFIG.get("storage", {})
DB_PATH = _resolve_path(_storage.get("db_path", "noticeguard.db"))
DB_TIMEOUT_SECONDS = float(_storage.get("timeout_seconds", 5.0))

# Suppression switches handed to the orchestrator on every call.
# - enabled: global switch for the whole pipeline
# - default_user_state: used for users who never toggled their visibility
# - rule_effect: "suppress" hides matches, "exempt" shows only matches
# - log_capacity: maximum number of distinct notices kept in the log
_suppression = _CONFIG.get("suppression", {})
SUPPRESSION = build_suppression_config(_suppression)
SUPPRESSION_ENABLED = SUPPRESSION.global_enabled
DEFAULT_USER_STATE = SUPPRESSION.default_user_state
RULE_EFFECT = SUPPRESSION.rule_effect
LOG_CAPACITY = SUPPRESSION.log_capacity

# Retention horizon for `log cleanup`.
LOG_RETENTION_DAYS = int(_CONFIG.get("retention", {}).get("ttl_days", 30))

# Administrators allowed to change rules and visibility. An empty list
# disables the check.
ADMIN_IDS = [str(admin_id) for admin_id in _CONFIG.get("admins", [])]

# Rules seeded into the allowlist on startup.
ALLOWLIST_CONFIG = _CONFIG.get("allowlist", [])

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
