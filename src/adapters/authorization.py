"""Authorization adapters for administrative calls."""

from __future__ import annotations

from typing import Iterable, Optional

from core.models import UserId


class StaticAuthorizer:
    """Allow only the administrator ids listed in config.json."""

    def __init__(self, admin_ids: Iterable[UserId]) -> None:
        self._admin_ids = {str(admin_id) for admin_id in admin_ids}

    def may_administer(self, actor_id: Optional[UserId]) -> bool:
        if actor_id is None:
            return False
        return str(actor_id) in self._admin_ids


class AllowAllAuthorizer:
    """Grant every call; used when no administrators are configured."""

    def may_administer(self, actor_id: Optional[UserId]) -> bool:
        return True
