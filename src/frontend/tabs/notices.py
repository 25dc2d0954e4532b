"""Notices tab for browsing the notice log."""

from __future__ import annotations

from typing import Any, Optional

from rich.text import Text
from textual import on
from textual.containers import Container, Horizontal, Vertical
from textual.widgets import Button, DataTable, Static

from adapters.report_formatting import clip_text, format_notice_details, format_timestamp
from core.errors import SuppressionError
from core.fingerprint import normalize_content
from core.models import PatternType
from core.source_hints import split_source_hint
from ..constants import NOTICE_PAGE_SIZE
from ..modals import AddRuleScreen


class NoticesTab(Container):
    """Notice log, most recently seen first, with allowlist shortcuts."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._current_fingerprint: Optional[str] = None
        self._table_ready = False

    def compose(self):
        with Vertical(id="notices-panel"):
            with Horizontal(id="notices-body"):
                with Container(id="notices-left"):
                    yield DataTable(id="notices-table", cursor_type="row")
                with Container(id="notices-right"):
                    yield Static("Notice", id="notices-title")
                    yield Static("Select a notice to see details.", id="notice-details")
            with Horizontal(id="notices-actions"):
                yield Button("Refresh", id="notices-refresh")
                yield Button("Allow exact", id="notice-allow-exact", variant="success")
                yield Button("Allow as wildcard...", id="notice-allow-wildcard")
            yield Static("", id="notices-output")

    def on_mount(self) -> None:
        table = self.query_one("#notices-table", DataTable)
        table.add_column("last seen", key="last_seen", width=19)
        table.add_column("count", key="count", width=6)
        table.add_column("state", key="state", width=10)
        table.add_column("component", key="component", width=22)
        table.add_column("notice", key="notice", width=48)
        table.zebra_stripes = True
        self.query_one("#notices-actions").styles.height = 3
        self._table_ready = True
        self.reload()

    def reload(self) -> None:
        if not self._table_ready:
            return
        table = self.query_one("#notices-table", DataTable)
        table.clear()
        try:
            notices = self.app.storage.notices.list_notices(limit=NOTICE_PAGE_SIZE)
        except SuppressionError as exc:
            self._set_output(f"{exc.kind.value}: {exc}")
            return
        for notice in notices:
            component, _ = split_source_hint(notice.source_hint)
            table.add_row(
                format_timestamp(notice.last_seen),
                str(notice.occurrence_count),
                "suppressed" if notice.suppressed else "shown",
                component,
                clip_text(normalize_content(notice.raw_content), 48),
                key=notice.fingerprint,
            )
        self._update_action_state()
        self._set_output(f"loaded {len(notices)} notices")

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        if event.data_table.id != "notices-table":
            return
        row_key = event.row_key
        self._current_fingerprint = str(row_key.value if hasattr(row_key, "value") else row_key)
        notice = self.app.storage.notices.get(self._current_fingerprint)
        details = self.query_one("#notice-details", Static)
        if notice is None:
            details.update("Notice is no longer in the log.")
        else:
            details.update(Text(format_notice_details(notice)))
        self._update_action_state()

    @on(Button.Pressed, "#notices-refresh")
    def _on_refresh(self) -> None:
        self.reload()

    @on(Button.Pressed, "#notice-allow-exact")
    def _on_allow_exact(self) -> None:
        if self._current_fingerprint is None:
            return
        try:
            rule = self.app.admin.allow_notice(self.app.actor, self._current_fingerprint, PatternType.EXACT)
        except SuppressionError as exc:
            self._set_output(f"{exc.kind.value}: {exc}")
            return
        self._set_output(f"added rule #{rule.id}")
        self.app.refresh_rules()

    @on(Button.Pressed, "#notice-allow-wildcard")
    def _on_allow_wildcard(self) -> None:
        if self._current_fingerprint is None:
            return
        notice = self.app.storage.notices.get(self._current_fingerprint)
        if notice is None:
            self._set_output("Notice is no longer in the log.")
            return
        screen = AddRuleScreen(normalize_content(notice.raw_content), PatternType.WILDCARD)
        self.app.push_screen(screen, self._handle_wildcard)

    def _handle_wildcard(self, payload: dict[str, Any] | None) -> None:
        if not payload or self._current_fingerprint is None:
            return
        try:
            rule = self.app.admin.add_rule(
                self.app.actor,
                payload["pattern_type"],
                payload["value"],
                source_fingerprint=self._current_fingerprint,
            )
        except SuppressionError as exc:
            self._set_output(f"{exc.kind.value}: {exc}")
            return
        self._set_output(f"added rule #{rule.id}")
        self.app.refresh_rules()

    def _update_action_state(self) -> None:
        has_selection = self._current_fingerprint is not None
        self.query_one("#notice-allow-exact", Button).disabled = not has_selection
        self.query_one("#notice-allow-wildcard", Button).disabled = not has_selection

    def _set_output(self, message: str) -> None:
        self.query_one("#notices-output", Static).update(Text(message))
