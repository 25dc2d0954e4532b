"""Allowlist tab implementation."""

from __future__ import annotations

from typing import Any, Optional

from rich.text import Text
from textual import on
from textual.containers import Container, Horizontal, Vertical
from textual.widgets import Button, DataTable, Static, TextArea

from adapters.report_formatting import format_timestamp, short_fingerprint
from core.errors import InvalidNotice, SuppressionError
from core.fingerprint import fingerprint, normalize_content
from core.rules_engine import matching_rules
from ..modals import AddRuleScreen, DeleteRuleScreen


class RulesTab(Container):
    """Allowlist rules table plus a tester for arbitrary notice text."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._current_rule_id: Optional[int] = None
        self._table_ready = False

    def compose(self):
        with Vertical(id="rules-panel"):
            with Horizontal(id="rules-body"):
                with Container(id="rules-left"):
                    yield DataTable(id="rules-table", cursor_type="row")
                with Container(id="rules-right"):
                    yield Static("Rule tester", id="rules-test-title")
                    yield TextArea(id="rule-test-text")
                    with Horizontal(id="rules-test-actions"):
                        yield Button("Test", id="rule-test", variant="primary")
                    yield Static("", id="rule-test-result")
            with Horizontal(id="rules-actions"):
                yield Button("Add rule", id="add-rule", variant="success")
                yield Button("Enable/disable", id="toggle-rule")
                yield Button("Delete rule", id="delete-rule", variant="error")
            yield Static("", id="rules-output")

    def on_mount(self) -> None:
        table = self.query_one("#rules-table", DataTable)
        table.add_column("id", key="id", width=5)
        table.add_column("type", key="type", width=9)
        table.add_column("active", key="active", width=7)
        table.add_column("value", key="value", width=38)
        table.add_column("created", key="created", width=28)
        table.zebra_stripes = True
        self.query_one("#rules-test-actions").styles.height = 3
        self._table_ready = True
        self.reload()

    def reload(self) -> None:
        if not self._table_ready:
            return
        table = self.query_one("#rules-table", DataTable)
        table.clear()
        try:
            rules = self.app.storage.allowlist.list_rules()
        except SuppressionError as exc:
            self._set_output(f"{exc.kind.value}: {exc}")
            return
        for rule in rules:
            created = f"{rule.created_by} {format_timestamp(rule.created_at)}"
            table.add_row(
                str(rule.id),
                rule.pattern_type.value,
                "yes" if rule.active else "no",
                rule.value,
                created,
                key=str(rule.id),
            )
        if self._current_rule_id is not None and all(rule.id != self._current_rule_id for rule in rules):
            self._current_rule_id = None
        self._update_action_state()

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        if event.data_table.id != "rules-table":
            return
        row_key = event.row_key
        try:
            self._current_rule_id = int(row_key.value if hasattr(row_key, "value") else row_key)
        except (TypeError, ValueError):
            self._current_rule_id = None
        self._update_action_state()

    @on(Button.Pressed, "#add-rule")
    def _on_add_rule(self) -> None:
        self.app.push_screen(AddRuleScreen(), self._handle_add_rule)

    def _handle_add_rule(self, payload: dict[str, Any] | None) -> None:
        if not payload:
            return
        try:
            rule = self.app.admin.add_rule(self.app.actor, payload["pattern_type"], payload["value"])
        except SuppressionError as exc:
            self._set_output(f"{exc.kind.value}: {exc}")
            return
        self._set_output(f"added rule #{rule.id}")
        self.reload()

    @on(Button.Pressed, "#toggle-rule")
    def _on_toggle_rule(self) -> None:
        if self._current_rule_id is None:
            return
        rule = self.app.storage.allowlist.get_rule(self._current_rule_id)
        if rule is None:
            self.reload()
            return
        try:
            self.app.admin.set_rule_active(self.app.actor, rule.id, not rule.active)
        except SuppressionError as exc:
            self._set_output(f"{exc.kind.value}: {exc}")
            return
        self._set_output(f"rule #{rule.id} {'disabled' if rule.active else 'enabled'}")
        self.reload()

    @on(Button.Pressed, "#delete-rule")
    def _on_delete_rule(self) -> None:
        if self._current_rule_id is None:
            return
        rule = self.app.storage.allowlist.get_rule(self._current_rule_id)
        if rule is None:
            self.reload()
            return
        label = f"#{rule.id} {rule.pattern_type.value}: {rule.value}"
        self.app.push_screen(DeleteRuleScreen(label), self._handle_delete_rule)

    def _handle_delete_rule(self, confirmed: bool | None) -> None:
        if not confirmed or self._current_rule_id is None:
            return
        try:
            self.app.admin.remove_rule(self.app.actor, self._current_rule_id)
        except SuppressionError as exc:
            self._set_output(f"{exc.kind.value}: {exc}")
            return
        self._current_rule_id = None
        self.reload()

    @on(Button.Pressed, "#rule-test")
    def _on_test_rule(self) -> None:
        test_text = self.query_one("#rule-test-text", TextArea).text
        result = self.query_one("#rule-test-result", Static)
        if not test_text.strip():
            result.update("Add test text to run.")
            return
        try:
            notice_fingerprint = short_fingerprint(fingerprint(test_text))
        except InvalidNotice:
            result.update("Empty after normalization; this notice would always be shown.")
            return
        lines = [f"normalized: {normalize_content(test_text)}", f"fingerprint: {notice_fingerprint}"]
        hits = matching_rules(test_text, self.app.storage.allowlist.rules_snapshot())
        if not hits:
            lines.append("Not matched")
        else:
            lines.append(f"Matched {len(hits)} rule(s):")
            lines.extend(f"- #{rule.id} {rule.pattern_type.value}: {rule.value}" for rule in hits)
        result.update(Text("\n".join(lines)))

    def _update_action_state(self) -> None:
        has_selection = self._current_rule_id is not None
        self.query_one("#toggle-rule", Button).disabled = not has_selection
        self.query_one("#delete-rule", Button).disabled = not has_selection

    def _set_output(self, message: str) -> None:
        self.query_one("#rules-output", Static).update(Text(message))
