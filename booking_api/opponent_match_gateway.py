from typing import Any

from shared.events import OpponentMatchEvent
from .realtime import TenantBroadcaster


class OpponentMatchGateway:
    """
    Real-time opponent match notifications.

    Every method broadcasts to the tenant's room only. The gateway mirrors
    whatever the caller reports and does not check the match lifecycle, so
    callers are responsible for issuing transitions in order.
    """

    def __init__(self, broadcaster: TenantBroadcaster):
        self.broadcaster = broadcaster

    def _emit(self, tenant_id: str, event: OpponentMatchEvent, match: Any) -> None:
        payload = match.to_dict() if hasattr(match, 'to_dict') else match
        self.broadcaster.broadcast_to_tenant(tenant_id, event.value, payload)

    def emit_match_created(self, tenant_id: str, match: Any) -> None:
        self._emit(tenant_id, OpponentMatchEvent.CREATED, match)

    def emit_player_joined(self, tenant_id: str, match: Any) -> None:
        self._emit(tenant_id, OpponentMatchEvent.PLAYER_JOINED, match)

    def emit_player_left(self, tenant_id: str, match: Any) -> None:
        self._emit(tenant_id, OpponentMatchEvent.PLAYER_LEFT, match)

    def emit_match_cancelled(self, tenant_id: str, match: Any) -> None:
        self._emit(tenant_id, OpponentMatchEvent.CANCELLED, match)

    def emit_match_completed(self, tenant_id: str, match: Any) -> None:
        """Emitted when a match has all the players it needs."""
        self._emit(tenant_id, OpponentMatchEvent.COMPLETED, match)
