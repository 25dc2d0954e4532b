"""Modal dialogs for the Textual admin panel."""

from __future__ import annotations

from typing import Any

from textual.app import ComposeResult
from textual.containers import Container, Horizontal
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Select, Static

from core.errors import InvalidPattern
from core.models import PatternType
from core.rules_engine import normalize_rule_value


class AddRuleScreen(ModalScreen[dict[str, Any] | None]):
    """Modal form for adding an allowlist rule."""

    def __init__(self, value: str = "", pattern_type: PatternType = PatternType.EXACT) -> None:
        super().__init__()
        self._initial_value = value
        self._initial_type = pattern_type

    def compose(self) -> ComposeResult:
        yield Container(
            Static("Add rule", classes="modal-title"),
            Static("", id="add-error", classes="modal-error"),
            Static("type", classes="form-label"),
            Select(
                [(pattern.value, pattern.value) for pattern in PatternType],
                value=self._initial_type.value,
                id="add-rule-type",
                allow_blank=False,
            ),
            Static("value (* matches any run of characters)", classes="form-label"),
            Input(value=self._initial_value, placeholder="*Category added*", id="add-rule-value"),
            Horizontal(
                Button("Add", id="add-confirm", variant="success"),
                Button("Cancel", id="add-cancel"),
                classes="modal-actions",
            ),
            classes="modal-dialog modal-dialog--form",
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "add-cancel":
            self.dismiss(None)
            return
        if event.button.id != "add-confirm":
            return
        value = self.query_one("#add-rule-value", Input).value
        pattern_type = self.query_one("#add-rule-type", Select).value
        try:
            normalized = normalize_rule_value(value)
        except InvalidPattern as exc:
            self.query_one("#add-error", Static).update(str(exc))
            return
        self.dismiss({"pattern_type": str(pattern_type), "value": normalized})


class DeleteRuleScreen(ModalScreen[bool]):
    """Confirm deletion of a rule."""

    def __init__(self, rule_label: str) -> None:
        super().__init__()
        self._rule_label = rule_label or "(empty rule)"

    def compose(self) -> ComposeResult:
        yield Container(
            Static("Delete rule?", classes="modal-title"),
            Static(self._rule_label, classes="modal-body"),
            Horizontal(
                Button("Delete", id="delete-rule-confirm", variant="error"),
                Button("Cancel", id="delete-rule-cancel"),
                classes="modal-actions",
            ),
            classes="modal-dialog modal-dialog--confirm",
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "delete-rule-confirm":
            self.dismiss(True)
        else:
            self.dismiss(False)
