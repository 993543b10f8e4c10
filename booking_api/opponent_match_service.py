import logging
from datetime import datetime, timedelta
from typing import Dict, Optional

from shared.state_machine import OpponentMatchStateMachine, OpponentMatchState, TransitionError
from .models import db, Facility, OpponentMatch, OpponentMatchPlayer, utcnow
from .opponent_match_gateway import OpponentMatchGateway

logger = logging.getLogger(__name__)

SPORT_TYPES = ('SOCCER', 'PADEL', 'TENNIS', 'MULTI')
SKILL_LEVELS = ('BEGINNER', 'INTERMEDIATE', 'ADVANCED', 'ANY')
MATCH_STATUSES = tuple(s.value for s in OpponentMatchState)
MIN_PLAYERS = 2  # Creator plus at least one opponent
MAX_PLAYERS = 10
MAX_OPEN_HOURS = 24


class OpponentMatchError(Exception):
    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(OpponentMatchError):
    status_code = 400


class NotFoundError(OpponentMatchError):
    status_code = 404


class ConflictError(OpponentMatchError):
    status_code = 409


def _parse_date(value: str, field: str):
    try:
        return datetime.strptime(value, '%Y-%m-%d').date()
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a date in YYYY-MM-DD format")


def _parse_time(value: str) -> str:
    try:
        return datetime.strptime(value, '%H:%M').strftime('%H:%M')
    except (TypeError, ValueError):
        raise ValidationError("requested_time must be a time in HH:MM format")


class OpponentMatchService:
    """
    Find-a-rival requests: players post a match at a facility and others
    join until it is full.

    Every state change is followed by a broadcast to the tenant room.
    """

    def __init__(self, gateway: OpponentMatchGateway):
        self.gateway = gateway

    def create(self, tenant_id: str, customer_id: str, data: Dict, now: datetime = None) -> Dict:
        now = now or utcnow()
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")

        facility_id = data.get('facility_id')
        if not facility_id or not isinstance(facility_id, str):
            raise ValidationError("facility_id is required")
        facility = Facility.query.filter_by(id=facility_id, tenant_id=tenant_id).first()
        if not facility:
            raise NotFoundError("Facility not found")

        requested_date = _parse_date(data.get('requested_date'), 'requested_date')
        requested_time = _parse_time(data.get('requested_time'))
        requested_at = datetime.combine(
            requested_date, datetime.strptime(requested_time, '%H:%M').time()
        )
        if requested_at <= now:
            raise ValidationError("Requested date and time must be in the future")

        sport_type = data.get('sport_type')
        if sport_type not in SPORT_TYPES:
            raise ValidationError(f"sport_type must be one of {', '.join(SPORT_TYPES)}")

        skill_level = data.get('skill_level') or 'ANY'
        if skill_level not in SKILL_LEVELS:
            raise ValidationError(f"skill_level must be one of {', '.join(SKILL_LEVELS)}")

        players_needed = data.get('players_needed')
        if isinstance(players_needed, bool) or not isinstance(players_needed, int) \
                or not MIN_PLAYERS <= players_needed <= MAX_PLAYERS:
            raise ValidationError(
                f"players_needed must be an integer between {MIN_PLAYERS} and {MAX_PLAYERS}"
            )

        # Open for a day at most, and never past the match itself
        expires_at = min(requested_at, now + timedelta(hours=MAX_OPEN_HOURS))

        match = OpponentMatch(
            tenant_id=tenant_id,
            facility_id=facility.id,
            customer_id=customer_id,
            requested_date=requested_date,
            requested_time=requested_time,
            court_id=data.get('court_id'),
            sport_type=sport_type,
            players_needed=players_needed,
            current_players=1,
            skill_level=skill_level,
            status=OpponentMatchState.OPEN.value,
            notes=data.get('notes'),
            expires_at=expires_at
        )
        db.session.add(match)
        db.session.commit()
        logger.info(f"Opponent match {match.id} created in tenant {tenant_id}")

        response = match.to_dict()
        self.gateway.emit_match_created(tenant_id, response)
        return response

    def list(self, tenant_id: str, filters: Optional[Dict] = None, now: datetime = None) -> Dict:
        filters = filters or {}
        now = now or utcnow()

        query = OpponentMatch.query.filter(OpponentMatch.tenant_id == tenant_id)

        if filters.get('facility_id'):
            query = query.filter(OpponentMatch.facility_id == filters['facility_id'])
        if filters.get('date'):
            query = query.filter(OpponentMatch.requested_date == _parse_date(filters['date'], 'date'))
        if filters.get('sport_type'):
            query = query.filter(OpponentMatch.sport_type == filters['sport_type'])
        if filters.get('skill_level'):
            query = query.filter(OpponentMatch.skill_level == filters['skill_level'])

        status = filters.get('status') or OpponentMatchState.OPEN.value
        if status not in MATCH_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(MATCH_STATUSES)}")
        query = query.filter(OpponentMatch.status == status)

        # Open listings hide matches whose window has passed
        if status == OpponentMatchState.OPEN.value:
            query = query.filter(OpponentMatch.expires_at > now)

        matches = query.order_by(
            OpponentMatch.requested_date.asc(),
            OpponentMatch.requested_time.asc()
        ).all()

        return {
            'matches': [m.to_dict() for m in matches],
            'total': len(matches)
        }

    def _get_match(self, tenant_id: str, match_id: str) -> OpponentMatch:
        match = OpponentMatch.query.filter_by(id=match_id, tenant_id=tenant_id).first()
        if not match:
            raise NotFoundError("Opponent match not found")
        return match

    def get(self, tenant_id: str, match_id: str) -> Dict:
        return self._get_match(tenant_id, match_id).to_dict()

    def join(self, tenant_id: str, customer_id: str, match_id: str,
             notes: str = None, now: datetime = None) -> Dict:
        now = now or utcnow()
        match = self._get_match(tenant_id, match_id)

        if match.status != OpponentMatchState.OPEN.value:
            raise ValidationError("Match is not open for joining")
        if match.expires_at <= now:
            raise ValidationError("Match has expired")
        if match.customer_id == customer_id:
            raise ValidationError("Cannot join your own match")

        player = OpponentMatchPlayer.query.filter_by(
            opponent_match_id=match.id,
            customer_id=customer_id
        ).first()
        if player and player.status == 'JOINED':
            raise ConflictError("Already joined this match")

        sm = OpponentMatchStateMachine.from_state_string(match.status)
        try:
            sm.transition('join', {
                'current_players': match.current_players,
                'players_needed': match.players_needed
            })
        except TransitionError:
            raise ValidationError("Match is already full")

        if player:
            # Rejoining after leaving reuses the same row
            player.status = 'JOINED'
            player.notes = notes
            player.joined_at = now
            player.left_at = None
        else:
            player = OpponentMatchPlayer(
                tenant_id=tenant_id,
                opponent_match_id=match.id,
                customer_id=customer_id,
                notes=notes,
                status='JOINED',
                joined_at=now
            )
            db.session.add(player)

        match.current_players += 1
        if match.current_players >= match.players_needed:
            sm.transition('fill')
        match.status = sm.state.value
        db.session.commit()
        logger.info(f"Customer {customer_id} joined opponent match {match.id} "
                    f"({match.current_players}/{match.players_needed})")

        response = match.to_dict()
        self.gateway.emit_player_joined(tenant_id, response)
        if sm.state == OpponentMatchState.MATCHED:
            self.gateway.emit_match_completed(tenant_id, response)
        return response

    def leave(self, tenant_id: str, customer_id: str, match_id: str, now: datetime = None) -> Dict:
        now = now or utcnow()
        player = OpponentMatchPlayer.query.filter_by(
            tenant_id=tenant_id,
            opponent_match_id=match_id,
            customer_id=customer_id,
            status='JOINED'
        ).first()
        if not player:
            raise NotFoundError("Not a member of this match")

        match = player.match
        sm = OpponentMatchStateMachine.from_state_string(match.status)
        if sm.state == OpponentMatchState.MATCHED:
            raise ValidationError("Cannot leave a completed match")
        try:
            sm.transition('leave')
        except TransitionError as e:
            raise ValidationError(str(e))

        player.status = 'LEFT'
        player.left_at = now
        match.current_players -= 1
        match.status = sm.state.value
        db.session.commit()
        logger.info(f"Customer {customer_id} left opponent match {match.id}")

        response = match.to_dict()
        self.gateway.emit_player_left(tenant_id, response)
        return response

    def cancel(self, tenant_id: str, customer_id: str, match_id: str) -> Dict:
        match = OpponentMatch.query.filter_by(
            id=match_id,
            tenant_id=tenant_id,
            customer_id=customer_id
        ).first()
        if not match:
            raise NotFoundError("Opponent match not found or you are not the creator")

        sm = OpponentMatchStateMachine.from_state_string(match.status)
        try:
            sm.transition('cancel')
        except TransitionError as e:
            raise ValidationError(str(e))

        match.status = sm.state.value
        db.session.commit()
        logger.info(f"Opponent match {match.id} cancelled by {customer_id}")

        response = match.to_dict()
        self.gateway.emit_match_cancelled(tenant_id, response)
        return response

