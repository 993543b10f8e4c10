from enum import Enum


class OpponentMatchEvent(str, Enum):
    CREATED = "opponent-match:created"
    PLAYER_JOINED = "opponent-match:player-joined"
    PLAYER_LEFT = "opponent-match:player-left"
    CANCELLED = "opponent-match:cancelled"
    COMPLETED = "opponent-match:completed"


class SocketEvent(str, Enum):
    # Client -> server
    JOIN_ROOM = "join-room"
    LEAVE_ROOM = "leave-room"

    # Server -> client
    ERROR = "error"


def tenant_room(tenant_id: str) -> str:
    return f"tenant:{tenant_id}"
