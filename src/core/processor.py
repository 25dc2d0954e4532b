"""Core notice suppression pipeline.

This module is storage-agnostic. It only relies on ports for the notice log,
the allowlist and per-user visibility, so different backends can be plugged
in without changes here.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable

from core.config import RULE_EFFECT_EXEMPT, SuppressionConfig
from core.errors import InvalidNotice
from core.fingerprint import fingerprint
from core.models import CapturedNotice, Decision, Notice, SuppressionOutcome
from core.ports import AllowlistPort, NoticeLogPort, VisibilityPort
from core.rules_engine import matching_rules
from core.source_hints import describe_source

LOGGER = logging.getLogger(__name__)

REASON_INVALID_NOTICE = "invalid_notice"
REASON_GLOBAL_DISABLED = "global_disabled"
REASON_USER_OPTED_OUT = "user_opted_out"
REASON_MATCHES_RULE = "matches_rule"
REASON_NO_MATCHING_RULE = "no_matching_rule"


class SuppressionOrchestrator:
    """Orchestrates fingerprinting, logging, matching and the final decision."""

    def __init__(
        self,
        log_store: NoticeLogPort,
        allowlist: AllowlistPort,
        visibility: VisibilityPort,
    ) -> None:
        self._log = log_store
        self._allowlist = allowlist
        self._visibility = visibility

    def evaluate(self, captured: CapturedNotice, config: SuppressionConfig) -> SuppressionOutcome:
        """Run one captured notice through Captured -> Logged -> Evaluated -> Decided."""

        source = describe_source(captured.source_hint)

        # Unidentifiable notices are never logged and never hidden.
        try:
            fingerprint(captured.raw_content)
        except InvalidNotice:
            LOGGER.warning("Keeping notice from %s: empty after normalization", source)
            return SuppressionOutcome(decision=Decision.KEEP, reason=REASON_INVALID_NOTICE)

        # Every notice is logged, whatever the decision, so operators can audit
        # what was hidden.
        notice = self._log.record(captured.raw_content, source)

        if not config.global_enabled:
            return self._decide(notice, Decision.KEEP, REASON_GLOBAL_DISABLED)

        user_enabled = self._visibility.get_state(
            captured.requesting_user_id, default=config.default_user_state
        )
        if not user_enabled:
            return self._decide(notice, Decision.KEEP, REASON_USER_OPTED_OUT)

        # One snapshot per decision so a concurrent rule change cannot be seen
        # half way through.
        snapshot = self._allowlist.rules_snapshot()
        hits = matching_rules(captured.raw_content, snapshot)
        matched = bool(hits)
        if config.rule_effect == RULE_EFFECT_EXEMPT:
            decision = Decision.KEEP if matched else Decision.SUPPRESS
        else:
            decision = Decision.SUPPRESS if matched else Decision.KEEP
        reason = REASON_MATCHES_RULE if matched else REASON_NO_MATCHING_RULE
        return self._decide(notice, decision, reason, tuple(rule.id for rule in hits))

    def evaluate_many(
        self, captures: Iterable[CapturedNotice], config: SuppressionConfig
    ) -> list[SuppressionOutcome]:
        """Evaluate every notice captured during one request, in order."""

        return [self.evaluate(captured, config) for captured in captures]

    def _decide(
        self,
        notice: Notice,
        decision: Decision,
        reason: str,
        matched_rule_ids: tuple[int, ...] = (),
    ) -> SuppressionOutcome:
        suppressed = decision is Decision.SUPPRESS
        self._log.set_decision(notice.fingerprint, suppressed)
        LOGGER.debug(
            "Notice %s from %s: %s (%s)",
            notice.fingerprint[:12],
            notice.source_hint,
            decision.value,
            reason,
        )
        return SuppressionOutcome(
            decision=decision,
            reason=reason,
            fingerprint=notice.fingerprint,
            notice=replace(notice, suppressed=suppressed),
            matched_rule_ids=matched_rule_ids,
        )
