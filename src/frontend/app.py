"""Main Textual app for the noticeguard admin panel."""

from __future__ import annotations

import os
from typing import Any

from rich.text import Text
from textual.app import App, ComposeResult
from textual.containers import Center, Container, Horizontal, Vertical
from textual.widgets import ContentSwitcher, Footer, Static, Tab, Tabs

import settings
from adapters.sqlite_storage import SQLiteStorage
from core.admin import AllowlistAdmin
from .constants import BRAND_AMBER
from .tabs.notices import NoticesTab
from .tabs.overview import OverviewTab
from .tabs.rules import RulesTab


class AdminPanelApp(App):
    """Admin panel over the notice log, allowlist and user visibility."""

    BINDINGS = [
        ("ctrl+r", "reload", "Reload"),
        ("q", "quit", "Quit"),
    ]

    CSS = """
    Screen {
        background: #1b1712;
        color: #f1ece4;
    }

    #header {
        height: 6;
        padding: 1 4;
        border-bottom: solid #4a3f30;
    }

    #header-left, #header-right {
        width: 1fr;
    }

    #header-right {
        content-align: right top;
        text-align: right;
    }

    .subtle {
        color: #cbbfae;
    }

    #tabs-bar {
        height: 5;
        padding: 0 4;
        border-bottom: solid #4a3f30;
    }

    #tabs-center {
        width: 100%;
        height: 4;
        align: center middle;
    }

    #tabs {
        width: auto;
    }

    #notices-body, #rules-body {
        height: 1fr;
    }

    #notices-left, #rules-left {
        width: 3fr;
    }

    #notices-right, #rules-right {
        width: 2fr;
        padding: 0 1;
    }

    #notices-actions, #rules-actions {
        height: 3;
    }

    .section-title {
        text-style: bold;
        margin-top: 1;
    }

    .modal-dialog {
        width: 64;
        height: auto;
        padding: 1 2;
        border: thick #4a3f30;
        background: #241f18;
    }

    .modal-title {
        text-style: bold;
    }

    .modal-error {
        color: #e0665a;
    }

    .modal-actions {
        height: 3;
        margin-top: 1;
    }

    ModalScreen {
        align: center middle;
    }
    """

    def __init__(self, storage: SQLiteStorage, admin: AllowlistAdmin, actor: str, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.storage = storage
        self.admin = admin
        self.actor = actor

    def compose(self) -> ComposeResult:
        with Container(id="header"):
            with Horizontal(id="header-row"):
                with Vertical(id="header-left"):
                    yield Static(self._title_text(), id="title")
                    yield Static(f"acting as: {self.actor}", classes="subtle")
                with Vertical(id="header-right"):
                    yield Static(f"db: {os.path.basename(self.storage.db_path)}", classes="subtle")
                    yield Static(self._suppression_label(), classes="subtle")

        with Container(id="tabs-bar"):
            with Center(id="tabs-center"):
                yield Tabs(
                    Tab("Notices", id="notices"),
                    Tab("Allowlist", id="rules"),
                    Tab("Overview", id="overview"),
                    id="tabs",
                )

        with ContentSwitcher(id="content", initial="notices"):
            yield NoticesTab(id="notices")
            yield RulesTab(id="rules")
            yield OverviewTab(id="overview")
        yield Footer()

    def on_tabs_tab_activated(self, event: Tabs.TabActivated) -> None:
        tab_id = event.tab.id or ""
        if tab_id:
            self.query_one("#content", ContentSwitcher).current = tab_id

    def action_reload(self) -> None:
        self.query_one(NoticesTab).reload()
        self.query_one(RulesTab).reload()
        self.query_one(OverviewTab).reload()

    def refresh_rules(self) -> None:
        self.query_one(RulesTab).reload()

    @staticmethod
    def _suppression_label() -> str:
        if not settings.SUPPRESSION_ENABLED:
            return "suppression: off (global)"
        return f"suppression: on, rules {settings.RULE_EFFECT}"

    @staticmethod
    def _title_text() -> Text:
        return Text.assemble(
            ("NOTICE", BRAND_AMBER),
            ("GUARD > Admin Panel", "bold"),
        )
