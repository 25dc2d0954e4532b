"""Shared constants for the Textual admin panel."""

from __future__ import annotations

BRAND_AMBER = "#F5A623"
NOTICE_PAGE_SIZE = 200
