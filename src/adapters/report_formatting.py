"""Plain-text renderings of notices, rules and decisions.

The CLI prints these lines directly and the admin panel shows the same
text, so both surfaces report a notice identically.
"""

from __future__ import annotations

from datetime import datetime

from core.fingerprint import normalize_content
from core.models import AllowRule, LogStatistics, Notice, SuppressionOutcome

FINGERPRINT_CHARS = 12


def format_timestamp(value: datetime) -> str:
    return value.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def clip_text(value: str, limit: int = 64) -> str:
    if len(value) <= limit:
        return value
    return value[: limit - 3] + "..."


def short_fingerprint(value: str) -> str:
    return value[:FINGERPRINT_CHARS]


def format_outcome(outcome: SuppressionOutcome) -> str:
    """Return a one-line summary of a suppression decision."""

    decision = outcome.decision.value.upper()
    if outcome.fingerprint is None:
        return f"{decision} ({outcome.reason})"
    line = f"{decision} {short_fingerprint(outcome.fingerprint)} ({outcome.reason})"
    if outcome.matched_rule_ids:
        rules = ", ".join(f"#{rule_id}" for rule_id in outcome.matched_rule_ids)
        line = f"{line} rules: {rules}"
    return line


def format_notice_line(notice: Notice, width: int = 64) -> str:
    state = "suppressed" if notice.suppressed else "shown"
    return " | ".join(
        [
            short_fingerprint(notice.fingerprint),
            format_timestamp(notice.last_seen),
            f"x{notice.occurrence_count}",
            state,
            notice.source_hint,
            clip_text(normalize_content(notice.raw_content), width),
        ]
    )


def format_notice_details(notice: Notice) -> str:
    lines = [
        f"fingerprint: {notice.fingerprint}",
        f"source:      {notice.source_hint}",
        f"first seen:  {format_timestamp(notice.first_seen)}",
        f"last seen:   {format_timestamp(notice.last_seen)}",
        f"occurrences: {notice.occurrence_count}",
        f"suppressed:  {'yes' if notice.suppressed else 'no'}",
        "",
        normalize_content(notice.raw_content),
    ]
    return "\n".join(lines)


def format_rule_line(rule: AllowRule) -> str:
    state = "active" if rule.active else "inactive"
    parts = [
        f"#{rule.id}",
        rule.pattern_type.value,
        state,
        rule.value,
        f"by {rule.created_by} at {format_timestamp(rule.created_at)}",
    ]
    if rule.source_fingerprint:
        parts.append(f"from {short_fingerprint(rule.source_fingerprint)}")
    return " | ".join(parts)


def format_statistics(stats: LogStatistics) -> str:
    lines = [
        f"notices:     {stats.total_notices}",
        f"occurrences: {stats.total_occurrences}",
        f"suppressed:  {stats.suppressed_notices}",
    ]
    if stats.top_sources:
        lines.append("")
        lines.append("top sources:")
        for source, total in stats.top_sources:
            lines.append(f"  {total:>6}  {source}")
    return "\n".join(lines)
