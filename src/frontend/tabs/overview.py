"""Overview tab: log statistics and per-user visibility."""

from __future__ import annotations

from rich.text import Text
from textual import on
from textual.containers import Container, Horizontal, Vertical
from textual.widgets import Button, Input, Static, Switch

import settings
from adapters.report_formatting import format_statistics
from core.errors import SuppressionError


class OverviewTab(Container):
    def compose(self):
        with Vertical(id="overview-panel"):
            yield Static("Notice log", classes="section-title")
            yield Static("", id="overview-stats")
            yield Button("Refresh", id="overview-refresh")
            yield Static("Per-user visibility", classes="section-title")
            yield Static("user id", classes="form-label")
            yield Input(placeholder="user id", id="visibility-user")
            yield Static("suppression active for this user", classes="form-label")
            with Horizontal(id="visibility-row"):
                yield Switch(value=settings.DEFAULT_USER_STATE, id="visibility-enabled")
                yield Button("Load", id="visibility-load")
                yield Button("Save", id="visibility-save", variant="success")
            yield Static("", id="visibility-output")

    def on_mount(self) -> None:
        self.query_one("#visibility-row").styles.height = 3
        self.reload()

    def reload(self) -> None:
        stats_view = self.query_one("#overview-stats", Static)
        try:
            stats_view.update(Text(format_statistics(self.app.storage.notices.statistics())))
        except SuppressionError as exc:
            stats_view.update(Text(f"{exc.kind.value}: {exc}"))

    @on(Button.Pressed, "#overview-refresh")
    def _on_refresh(self) -> None:
        self.reload()

    def _user_id(self) -> str:
        return self.query_one("#visibility-user", Input).value.strip()

    @on(Button.Pressed, "#visibility-load")
    def _on_load(self) -> None:
        user_id = self._user_id()
        if not user_id:
            self._set_output("Enter a user id.")
            return
        enabled = self.app.storage.visibility.get_state(user_id, default=settings.DEFAULT_USER_STATE)
        self.query_one("#visibility-enabled", Switch).value = enabled
        self._set_output(f"{user_id}: suppression {'on' if enabled else 'off'}")

    @on(Button.Pressed, "#visibility-save")
    def _on_save(self) -> None:
        user_id = self._user_id()
        if not user_id:
            self._set_output("Enter a user id.")
            return
        enabled = self.query_one("#visibility-enabled", Switch).value
        try:
            self.app.admin.set_visibility(self.app.actor, user_id, enabled)
        except SuppressionError as exc:
            self._set_output(f"{exc.kind.value}: {exc}")
            return
        self._set_output(f"{user_id}: suppression {'on' if enabled else 'off'}")

    def _set_output(self, message: str) -> None:
        self.query_one("#visibility-output", Static).update(Text(message))
