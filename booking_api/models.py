from datetime import datetime, timezone
from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from cryptography.fernet import Fernet
from werkzeug.security import generate_password_hash, check_password_hash
import os
import uuid
import base64
import hashlib

from shared.roles import ROLE_LABELS, UserRole

db = SQLAlchemy()


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what the DATETIME columns store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id(prefix: str):
    def generate():
        return f"{prefix}_{uuid.uuid4().hex[:16]}"
    return generate


def get_encryption_key():
    """Get or generate encryption key from SECRET_KEY."""
    secret = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-prod')
    key = hashlib.sha256(secret.encode()).digest()
    return base64.urlsafe_b64encode(key)


def encrypt_secret(value: str) -> str:
    """Encrypt a credential for storage."""
    f = Fernet(get_encryption_key())
    return f.encrypt(value.encode()).decode()


def decrypt_secret(encrypted: str) -> str:
    f = Fernet(get_encryption_key())
    return f.decrypt(encrypted.encode()).decode()


def _iso(value):
    return value.isoformat() if value else None


class Tenant(db.Model):
    __tablename__ = 'tenants'

    id = db.Column(db.String(50), primary_key=True, default=new_id('ten'))
    name = db.Column(db.String(200), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    facilities = db.relationship('Facility', back_populates='tenant', cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'created_at': _iso(self.created_at),
        }


class User(UserMixin, db.Model):
    __tablename__ = 'users'

    id = db.Column(db.String(50), primary_key=True, default=new_id('usr'))
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    full_name = db.Column(db.String(200), nullable=False)
    phone = db.Column(db.String(50), nullable=True)
    role = db.Column(db.String(20), nullable=False, default=UserRole.STAFF.value)
    tenant_id = db.Column(db.String(50), db.ForeignKey('tenants.id'), nullable=True, index=True)
    password_hash = db.Column(db.String(256), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    tenant = db.relationship('Tenant')

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    @staticmethod
    def create_user(email: str, full_name: str, password: str, role: UserRole = UserRole.STAFF,
                    tenant_id: str = None) -> 'User':
        user = User(
            email=email.strip().lower(),
            full_name=full_name,
            role=UserRole(role).value,
            tenant_id=tenant_id
        )
        user.set_password(password)
        return user

    @property
    def is_super_admin(self) -> bool:
        return self.role == UserRole.SUPER_ADMIN.value

    @property
    def role_label(self) -> str:
        return ROLE_LABELS.get(self.role, self.role)

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'full_name': self.full_name,
            'phone': self.phone,
            'role': self.role,
            'tenant_id': self.tenant_id,
            'is_active': self.is_active,
        }


class Facility(db.Model):
    __tablename__ = 'facilities'

    id = db.Column(db.String(50), primary_key=True, default=new_id('fac'))
    tenant_id = db.Column(db.String(50), db.ForeignKey('tenants.id'), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    city = db.Column(db.String(100), nullable=True)
    status = db.Column(db.String(20), nullable=False, default='ACTIVE')

    # Mercado Pago credentials, Fernet-encrypted
    mercadopago_public_key_encrypted = db.Column(db.String(500), nullable=True)
    mercadopago_access_token_encrypted = db.Column(db.String(500), nullable=True)
    credentials_updated_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    tenant = db.relationship('Tenant', back_populates='facilities')

    def set_mercadopago_credentials(self, public_key: str, access_token: str):
        self.mercadopago_public_key_encrypted = encrypt_secret(public_key)
        self.mercadopago_access_token_encrypted = encrypt_secret(access_token)
        self.credentials_updated_at = utcnow()

    @property
    def mercadopago_access_token(self):
        if not self.mercadopago_access_token_encrypted:
            return None
        return decrypt_secret(self.mercadopago_access_token_encrypted)

    @property
    def has_mercadopago_credentials(self) -> bool:
        return bool(self.mercadopago_public_key_encrypted and self.mercadopago_access_token_encrypted)

    def to_dict(self):
        return {
            'id': self.id,
            'tenant_id': self.tenant_id,
            'name': self.name,
            'city': self.city,
            'status': self.status,
            'has_mercadopago_credentials': self.has_mercadopago_credentials,
            'credentials_updated_at': _iso(self.credentials_updated_at),
            'created_at': _iso(self.created_at),
        }


class OpponentMatch(db.Model):
    __tablename__ = 'opponent_matches'

    id = db.Column(db.String(50), primary_key=True, default=new_id('om'))
    tenant_id = db.Column(db.String(50), db.ForeignKey('tenants.id'), nullable=False, index=True)
    facility_id = db.Column(db.String(50), db.ForeignKey('facilities.id'), nullable=False, index=True)
    customer_id = db.Column(db.String(50), db.ForeignKey('users.id'), nullable=False, index=True)
    requested_date = db.Column(db.Date, nullable=False)
    requested_time = db.Column(db.String(5), nullable=False)  # HH:MM
    court_id = db.Column(db.String(50), nullable=True)
    sport_type = db.Column(db.String(20), nullable=False, default='SOCCER')
    players_needed = db.Column(db.Integer, nullable=False)
    current_players = db.Column(db.Integer, nullable=False, default=1)  # Creator counts
    skill_level = db.Column(db.String(20), nullable=False, default='ANY')
    status = db.Column(db.String(20), nullable=False, default='OPEN', index=True)
    notes = db.Column(db.Text, nullable=True)
    expires_at = db.Column(db.DateTime, nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    facility = db.relationship('Facility')
    customer = db.relationship('User')
    players = db.relationship('OpponentMatchPlayer', back_populates='match',
                              cascade='all, delete-orphan', order_by='OpponentMatchPlayer.joined_at')

    @property
    def spots_remaining(self) -> int:
        return self.players_needed - self.current_players

    @property
    def joined_players(self):
        return [p for p in self.players if p.status == 'JOINED']

    def to_dict(self):
        return {
            'id': self.id,
            'tenant_id': self.tenant_id,
            'facility_id': self.facility_id,
            'facility_name': self.facility.name if self.facility else None,
            'customer_id': self.customer_id,
            'customer_name': self.customer.full_name if self.customer else None,
            'customer_phone': self.customer.phone if self.customer else None,
            'requested_date': self.requested_date.isoformat(),
            'requested_time': self.requested_time,
            'court_id': self.court_id,
            'sport_type': self.sport_type,
            'players_needed': self.players_needed,
            'current_players': self.current_players,
            'spots_remaining': self.spots_remaining,
            'skill_level': self.skill_level,
            'status': self.status,
            'notes': self.notes,
            'expires_at': _iso(self.expires_at),
            'joined_players': [p.to_dict() for p in self.joined_players],
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }


class OpponentMatchPlayer(db.Model):
    __tablename__ = 'opponent_match_players'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(50), nullable=False, index=True)
    opponent_match_id = db.Column(db.String(50), db.ForeignKey('opponent_matches.id'), nullable=False)
    customer_id = db.Column(db.String(50), db.ForeignKey('users.id'), nullable=False)
    status = db.Column(db.String(10), nullable=False, default='JOINED')  # JOINED, LEFT
    notes = db.Column(db.Text, nullable=True)
    joined_at = db.Column(db.DateTime, default=utcnow)
    left_at = db.Column(db.DateTime, nullable=True)

    match = db.relationship('OpponentMatch', back_populates='players')
    customer = db.relationship('User')

    __table_args__ = (
        db.UniqueConstraint('opponent_match_id', 'customer_id', name='unique_player_per_match'),
    )

    def to_dict(self):
        return {
            'id': self.customer_id,
            'name': self.customer.full_name if self.customer else None,
            'phone': self.customer.phone if self.customer else None,
            'notes': self.notes,
            'joined_at': _iso(self.joined_at),
        }
