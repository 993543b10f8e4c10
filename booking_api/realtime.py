"""
Tenant-scoped websocket server.

Clients authenticate on connect with an access token and are placed in
their tenant's room (``tenant:<tenant_id>``). Services broadcast through
TenantBroadcaster, which only ever addresses a single room.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Set

from flask import request
from flask_socketio import ConnectionRefusedError, SocketIO, emit, join_room, leave_room

from shared.events import SocketEvent, tenant_room
from shared.roles import UserRole
from .auth import bearer_token, user_from_token
from .models import utcnow

logger = logging.getLogger(__name__)

socketio = SocketIO()


@dataclass
class ConnectedClient:
    sid: str
    user_id: str
    email: str
    role: str
    tenant_id: Optional[str]
    connected_at: datetime = field(default_factory=utcnow)


class ConnectionRegistry:
    """Tracks connected clients by socket id and by tenant."""

    def __init__(self):
        self._clients: Dict[str, ConnectedClient] = {}
        self._tenants: Dict[str, Set[str]] = {}

    def add(self, client: ConnectedClient):
        self._clients[client.sid] = client

    def remove(self, sid: str) -> Optional[ConnectedClient]:
        client = self._clients.pop(sid, None)
        for tenant_id in [t for t, sids in self._tenants.items() if sid in sids]:
            self.untrack_tenant(tenant_id, sid)
        return client

    def get(self, sid: str) -> Optional[ConnectedClient]:
        return self._clients.get(sid)

    def track_tenant(self, tenant_id: str, sid: str):
        self._tenants.setdefault(tenant_id, set()).add(sid)

    def untrack_tenant(self, tenant_id: str, sid: str):
        sids = self._tenants.get(tenant_id)
        if sids is not None:
            sids.discard(sid)
            if not sids:
                del self._tenants[tenant_id]

    def tenant_client_count(self, tenant_id: str) -> int:
        return len(self._tenants.get(tenant_id, ()))

    def total_client_count(self) -> int:
        return len(self._clients)


connections = ConnectionRegistry()


class TenantBroadcaster:
    """
    Fire-and-forget emission to one channel.

    Delivery is at-most-once with no acknowledgement; transport errors are
    logged and never reach the caller.
    """

    def __init__(self, transport):
        self.transport = transport

    @staticmethod
    def tenant_channel(tenant_id: str) -> str:
        return tenant_room(tenant_id)

    def broadcast(self, channel: str, event_name: str, payload: Any) -> None:
        try:
            self.transport.emit(event_name, payload, to=channel)
            logger.debug(f"Emitted {event_name} to {channel}")
        except Exception as e:
            logger.error(f"Failed to emit {event_name} to {channel}: {e}")

    def broadcast_to_tenant(self, tenant_id: str, event_name: str, payload: Any) -> None:
        self.broadcast(self.tenant_channel(tenant_id), event_name, payload)


def _extract_token(auth) -> Optional[str]:
    if isinstance(auth, dict) and isinstance(auth.get('token'), str):
        return auth['token']
    token = request.args.get('token')
    if token:
        return token
    return bearer_token(request.headers.get('Authorization'))


def _join_tenant(sid: str, tenant_id: str):
    join_room(tenant_room(tenant_id))
    connections.track_tenant(tenant_id, sid)
    logger.debug(f"Client {sid} joined {tenant_room(tenant_id)}")


def _leave_tenant(sid: str, tenant_id: str):
    leave_room(tenant_room(tenant_id))
    connections.untrack_tenant(tenant_id, sid)
    logger.debug(f"Client {sid} left {tenant_room(tenant_id)}")


@socketio.on('connect')
def handle_connect(auth=None):
    sid = request.sid
    token = _extract_token(auth)
    if not token:
        logger.warning(f"Client {sid} attempted connection without token")
        raise ConnectionRefusedError('Authentication required')

    user = user_from_token(token)
    if user is None:
        logger.warning(f"Client {sid} provided an invalid token or inactive user")
        raise ConnectionRefusedError('Invalid or expired token')

    connections.add(ConnectedClient(
        sid=sid,
        user_id=user.id,
        email=user.email,
        role=user.role,
        tenant_id=user.tenant_id
    ))
    if user.tenant_id:
        _join_tenant(sid, user.tenant_id)

    logger.info(f"Client connected: {sid} (User: {user.email}, Tenant: {user.tenant_id or 'N/A'})")


@socketio.on('disconnect')
def handle_disconnect(reason=None):
    client = connections.remove(request.sid)
    if client:
        logger.info(f"Client disconnected: {request.sid} (User: {client.email})")
    else:
        logger.info(f"Client disconnected: {request.sid} (unregistered)")


@socketio.on(SocketEvent.JOIN_ROOM.value)
def handle_join_room(payload):
    client = connections.get(request.sid)
    tenant_id = (payload or {}).get('tenantId')
    if client is None or not tenant_id:
        return {'success': False, 'message': 'Invalid request'}

    if client.tenant_id != tenant_id and client.role != UserRole.SUPER_ADMIN.value:
        logger.warning(f"Client {request.sid} denied access to tenant room {tenant_id}")
        emit(SocketEvent.ERROR.value, {'message': 'Access denied to this tenant room'})
        return {'success': False, 'message': 'Access denied to this tenant room'}

    _join_tenant(request.sid, tenant_id)
    return {'success': True, 'message': f"Joined tenant room: {tenant_id}"}


@socketio.on(SocketEvent.LEAVE_ROOM.value)
def handle_leave_room(payload):
    tenant_id = (payload or {}).get('tenantId')
    if not tenant_id:
        return {'success': False, 'message': 'Invalid request'}
    _leave_tenant(request.sid, tenant_id)
    return {'success': True, 'message': f"Left tenant room: {tenant_id}"}
