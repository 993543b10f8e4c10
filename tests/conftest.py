"""
Pytest configuration and fixtures for booking platform tests.
"""
import os
import sys
from types import SimpleNamespace

import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

# Set testing environment before importing app
os.environ['FLASK_ENV'] = 'testing'

from booking_api.app import create_app
from booking_api.auth import issue_access_token
from booking_api.models import db, Tenant, User, Facility
from booking_api.realtime import socketio
from shared.roles import UserRole

PASSWORD = 'secret123'


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app('testing')
    yield app
    with app.app_context():
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Clear all tables before each test."""
    # No app context is left pushed, so every request gets a fresh g
    with app.app_context():
        db.session.remove()
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
    yield


@pytest.fixture
def seed(app, db_session):
    """
    Two tenants with one facility each.

    t1 has an owner, a staff member and a player; t2 has an owner. The super
    admin belongs to no tenant. Returns ids, emails and access tokens.
    """
    with app.app_context():
        db.session.add_all([
            Tenant(id='t1', name='Club Norte'),
            Tenant(id='t2', name='Club Sur'),
        ])

        users = {
            'admin': User.create_user('admin@example.com', 'Platform Admin', PASSWORD,
                                      role=UserRole.SUPER_ADMIN),
            'owner1': User.create_user('owner1@example.com', 'Ana Norte', PASSWORD,
                                       role=UserRole.OWNER, tenant_id='t1'),
            'staff1': User.create_user('staff1@example.com', 'Bruno Norte', PASSWORD,
                                       role=UserRole.STAFF, tenant_id='t1'),
            'player1': User.create_user('player1@example.com', 'Carla Norte', PASSWORD,
                                        role=UserRole.STAFF, tenant_id='t1'),
            'owner2': User.create_user('owner2@example.com', 'Diego Sur', PASSWORD,
                                       role=UserRole.OWNER, tenant_id='t2'),
        }
        db.session.add_all(users.values())

        f1 = Facility(id='fac_norte', tenant_id='t1', name='Complejo Norte', city='Rosario')
        f2 = Facility(id='fac_sur', tenant_id='t2', name='Complejo Sur', city='Mendoza')
        db.session.add_all([f1, f2])
        db.session.commit()

        data = SimpleNamespace(
            tenant1='t1',
            tenant2='t2',
            facility1=f1.id,
            facility2=f2.id,
            users={key: SimpleNamespace(id=u.id, email=u.email, tenant_id=u.tenant_id)
                   for key, u in users.items()},
            tokens={key: issue_access_token(u) for key, u in users.items()},
        )
    return data


@pytest.fixture
def auth_headers(seed):
    """Build bearer headers for a seeded user key."""
    def build(user_key: str, tenant_id: str = None):
        headers = {'Authorization': f"Bearer {seed.tokens[user_key]}"}
        if tenant_id:
            headers['X-Tenant-Id'] = tenant_id
        return headers
    return build


@pytest.fixture
def socket_client(app):
    """Factory for websocket test clients; disconnects them afterwards."""
    clients = []

    def connect(token=None, **kwargs):
        auth = {'token': token} if token is not None else None
        test_client = socketio.test_client(app, auth=auth, **kwargs)
        clients.append(test_client)
        return test_client

    yield connect

    for test_client in clients:
        if test_client.is_connected():
            test_client.disconnect()


@pytest.fixture
def match_payload(seed):
    """Valid opponent match request body for tenant t1."""
    return {
        'facility_id': seed.facility1,
        'requested_date': '2099-06-15',
        'requested_time': '20:00',
        'sport_type': 'PADEL',
        'players_needed': 2,
        'skill_level': 'INTERMEDIATE',
        'notes': 'Buscamos pareja'
    }


@pytest.fixture
def mock_gateway(mocker):
    """Mock opponent match gateway."""
    from booking_api.opponent_match_gateway import OpponentMatchGateway
    return mocker.MagicMock(spec=OpponentMatchGateway)
