"""Authorization-gated administration of the allowlist and user visibility."""

from __future__ import annotations

import logging
from typing import Optional

from core.errors import InvalidPattern, Unauthorized
from core.fingerprint import normalize_content
from core.models import AllowRule, PatternType, UserId
from core.ports import AllowlistPort, AuthorizationPort, NoticeLogPort, VisibilityPort
from core.rules_engine import parse_pattern_type

LOGGER = logging.getLogger(__name__)


class AllowlistAdmin:
    """Mutating operations offered to the administrative surface.

    The authorization check runs before any store is touched, so a denied
    call never leaves partial changes behind.
    """

    def __init__(
        self,
        allowlist: AllowlistPort,
        visibility: VisibilityPort,
        authorizer: AuthorizationPort,
        log_store: NoticeLogPort,
    ) -> None:
        self._allowlist = allowlist
        self._visibility = visibility
        self._authorizer = authorizer
        self._log = log_store

    def _require_admin(self, actor_id: Optional[UserId], action: str) -> None:
        if not self._authorizer.may_administer(actor_id):
            LOGGER.warning("Denied %s for actor %s", action, actor_id)
            raise Unauthorized(f"{actor_id!r} may not {action}")

    def add_rule(
        self,
        actor_id: UserId,
        pattern_type: PatternType | str,
        value: str,
        source_fingerprint: Optional[str] = None,
    ) -> AllowRule:
        self._require_admin(actor_id, "add rules")
        rule = self._allowlist.add_rule(
            parse_pattern_type(pattern_type),
            value,
            created_by=str(actor_id),
            source_fingerprint=source_fingerprint,
        )
        LOGGER.info("Rule %s added by %s: %s %r", rule.id, actor_id, rule.pattern_type.value, rule.value)
        return rule

    def remove_rule(self, actor_id: UserId, rule_id: int) -> bool:
        self._require_admin(actor_id, "remove rules")
        removed = self._allowlist.remove_rule(rule_id)
        if removed:
            LOGGER.info("Rule %s removed by %s", rule_id, actor_id)
        return removed

    def remove_rule_by_value(self, actor_id: UserId, pattern_type: PatternType | str, value: str) -> bool:
        self._require_admin(actor_id, "remove rules")
        pattern = parse_pattern_type(pattern_type)
        removed = self._allowlist.remove_rule_by_value(pattern, value)
        if removed:
            LOGGER.info("Rule %s %r removed by %s", pattern.value, value, actor_id)
        return removed

    def set_rule_active(self, actor_id: UserId, rule_id: int, active: bool) -> bool:
        self._require_admin(actor_id, "change rules")
        return self._allowlist.set_rule_active(rule_id, active)

    def allow_notice(
        self,
        actor_id: UserId,
        fingerprint: str,
        pattern_type: PatternType | str = PatternType.EXACT,
    ) -> AllowRule:
        """Create a rule from a logged notice, keeping a back-reference to it."""

        self._require_admin(actor_id, "add rules")
        notice = self._log.get(fingerprint)
        if notice is None:
            raise InvalidPattern(f"Notice {fingerprint} is no longer in the log")
        return self.add_rule(
            actor_id,
            pattern_type,
            normalize_content(notice.raw_content),
            source_fingerprint=notice.fingerprint,
        )

    def set_visibility(self, actor_id: UserId, user_id: UserId, enabled: bool) -> bool:
        self._require_admin(actor_id, "change visibility")
        return self._visibility.set_state(user_id, enabled)
