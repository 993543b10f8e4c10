"""
Unit tests for OpponentMatchService.
Uses the in-memory database and a mocked gateway.
"""
from datetime import datetime, timedelta

import pytest

from booking_api.models import db, OpponentMatch, OpponentMatchPlayer
from booking_api.opponent_match_service import (
    ConflictError,
    NotFoundError,
    OpponentMatchService,
    ValidationError,
)

NOW = datetime(2099, 6, 14, 10, 0, 0)


@pytest.fixture
def service(mock_gateway):
    return OpponentMatchService(mock_gateway)


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield


@pytest.fixture
def open_match(service, seed, match_payload, ctx):
    return service.create('t1', seed.users['owner1'].id, match_payload, now=NOW)


class TestCreate:
    """Tests for creating opponent matches."""

    def test_create(self, service, seed, match_payload, mock_gateway, ctx):
        match = service.create('t1', seed.users['owner1'].id, match_payload, now=NOW)

        assert match['id'].startswith('om_')
        assert match['status'] == 'OPEN'
        assert match['current_players'] == 1
        assert match['spots_remaining'] == 1
        assert match['facility_name'] == 'Complejo Norte'
        assert match['customer_name'] == 'Ana Norte'
        assert match['requested_date'] == '2099-06-15'
        assert match['requested_time'] == '20:00'
        mock_gateway.emit_match_created.assert_called_once_with('t1', match)

    def test_expires_within_a_day(self, service, seed, match_payload, ctx):
        match = service.create('t1', seed.users['owner1'].id, match_payload, now=NOW)
        assert match['expires_at'] == (NOW + timedelta(hours=24)).isoformat()

    def test_expires_at_match_time_when_sooner(self, service, seed, match_payload, ctx):
        match_payload['requested_date'] = '2099-06-14'
        match_payload['requested_time'] = '18:30'
        match = service.create('t1', seed.users['owner1'].id, match_payload, now=NOW)
        assert match['expires_at'] == '2099-06-14T18:30:00'

    def test_facility_from_other_tenant(self, service, seed, match_payload, mock_gateway, ctx):
        match_payload['facility_id'] = seed.facility2
        with pytest.raises(NotFoundError):
            service.create('t1', seed.users['owner1'].id, match_payload, now=NOW)
        mock_gateway.emit_match_created.assert_not_called()

    @pytest.mark.parametrize('field, value', [
        ('requested_date', '15/06/2099'),
        ('requested_time', '8pm'),
        ('sport_type', 'CURLING'),
        ('skill_level', 'PRO'),
        ('players_needed', 0),
        ('players_needed', 1),
        ('players_needed', 11),
        ('players_needed', '2'),
        ('players_needed', True),
        ('facility_id', None),
    ])
    def test_invalid_fields(self, service, seed, match_payload, ctx, field, value):
        match_payload[field] = value
        with pytest.raises(ValidationError):
            service.create('t1', seed.users['owner1'].id, match_payload, now=NOW)

    def test_past_date_rejected(self, service, seed, match_payload, ctx):
        match_payload['requested_date'] = '2099-06-13'
        with pytest.raises(ValidationError) as exc:
            service.create('t1', seed.users['owner1'].id, match_payload, now=NOW)
        assert 'future' in exc.value.message

    @pytest.mark.parametrize('data', [[1], 'facility', None])
    def test_body_must_be_an_object(self, service, seed, ctx, data):
        with pytest.raises(ValidationError) as exc:
            service.create('t1', seed.users['owner1'].id, data, now=NOW)
        assert exc.value.message == 'Request body must be a JSON object'

    def test_facility_id_must_be_a_string(self, service, seed, match_payload, ctx):
        match_payload['facility_id'] = [seed.facility1]
        with pytest.raises(ValidationError):
            service.create('t1', seed.users['owner1'].id, match_payload, now=NOW)

    def test_skill_level_defaults_to_any(self, service, seed, match_payload, ctx):
        del match_payload['skill_level']
        match = service.create('t1', seed.users['owner1'].id, match_payload, now=NOW)
        assert match['skill_level'] == 'ANY'


class TestList:
    """Tests for listing opponent matches."""

    def test_lists_open_matches_for_tenant(self, service, seed, open_match):
        result = service.list('t1', now=NOW)
        assert result['total'] == 1
        assert result['matches'][0]['id'] == open_match['id']

    def test_other_tenant_sees_nothing(self, service, seed, open_match):
        assert service.list('t2', now=NOW)['total'] == 0

    def test_expired_matches_hidden(self, service, seed, open_match):
        assert service.list('t1', now=NOW + timedelta(hours=25))['total'] == 0

    def test_filters(self, service, seed, open_match):
        assert service.list('t1', {'sport_type': 'PADEL'}, now=NOW)['total'] == 1
        assert service.list('t1', {'sport_type': 'TENNIS'}, now=NOW)['total'] == 0
        assert service.list('t1', {'date': '2099-06-15'}, now=NOW)['total'] == 1
        assert service.list('t1', {'facility_id': 'fac_other'}, now=NOW)['total'] == 0

    def test_invalid_status_filter(self, service, seed, ctx):
        with pytest.raises(ValidationError):
            service.list('t1', {'status': 'WHATEVER'}, now=NOW)


class TestGet:
    """Tests for fetching one opponent match."""

    def test_get(self, service, seed, open_match):
        assert service.get('t1', open_match['id'])['id'] == open_match['id']

    def test_get_is_tenant_scoped(self, service, seed, open_match):
        with pytest.raises(NotFoundError):
            service.get('t2', open_match['id'])


class TestJoin:
    """Tests for joining opponent matches."""

    def test_join_fills_match(self, service, seed, open_match, mock_gateway):
        match = service.join('t1', seed.users['player1'].id, open_match['id'], notes='Voy', now=NOW)

        assert match['status'] == 'MATCHED'
        assert match['current_players'] == 2
        assert [p['id'] for p in match['joined_players']] == [seed.users['player1'].id]
        mock_gateway.emit_player_joined.assert_called_once_with('t1', match)
        mock_gateway.emit_match_completed.assert_called_once_with('t1', match)

    def test_joined_then_completed_order(self, service, seed, open_match, mock_gateway):
        service.join('t1', seed.users['player1'].id, open_match['id'], now=NOW)

        names = [c[0] for c in mock_gateway.method_calls]
        assert names == ['emit_match_created', 'emit_player_joined', 'emit_match_completed']

    def test_join_without_filling(self, service, seed, match_payload, mock_gateway, ctx):
        match_payload['players_needed'] = 3
        created = service.create('t1', seed.users['owner1'].id, match_payload, now=NOW)

        match = service.join('t1', seed.users['player1'].id, created['id'], now=NOW)

        assert match['status'] == 'OPEN'
        mock_gateway.emit_match_completed.assert_not_called()

    def test_cannot_join_own_match(self, service, seed, open_match):
        with pytest.raises(ValidationError) as exc:
            service.join('t1', seed.users['owner1'].id, open_match['id'], now=NOW)
        assert exc.value.message == 'Cannot join your own match'

    def test_cannot_join_twice(self, service, seed, match_payload, ctx):
        match_payload['players_needed'] = 3
        created = service.create('t1', seed.users['owner1'].id, match_payload, now=NOW)
        service.join('t1', seed.users['player1'].id, created['id'], now=NOW)

        with pytest.raises(ConflictError):
            service.join('t1', seed.users['player1'].id, created['id'], now=NOW)

    def test_cannot_join_matched_match(self, service, seed, open_match):
        service.join('t1', seed.users['player1'].id, open_match['id'], now=NOW)
        with pytest.raises(ValidationError) as exc:
            service.join('t1', seed.users['staff1'].id, open_match['id'], now=NOW)
        assert exc.value.message == 'Match is not open for joining'

    def test_cannot_join_expired_match(self, service, seed, open_match):
        with pytest.raises(ValidationError) as exc:
            service.join('t1', seed.users['player1'].id, open_match['id'], now=NOW + timedelta(days=2))
        assert exc.value.message == 'Match has expired'

    def test_single_player_match_rejected(self, service, seed, match_payload, mock_gateway, ctx):
        """The creator counts as a player, so one player would be full on creation."""
        match_payload['players_needed'] = 1
        with pytest.raises(ValidationError) as exc:
            service.create('t1', seed.users['owner1'].id, match_payload, now=NOW)
        assert 'between 2 and 10' in exc.value.message
        mock_gateway.emit_match_created.assert_not_called()

    def test_join_other_tenant_match(self, service, seed, open_match):
        with pytest.raises(NotFoundError):
            service.join('t2', seed.users['owner2'].id, open_match['id'], now=NOW)


class TestLeave:
    """Tests for leaving opponent matches."""

    def test_leave_and_rejoin(self, service, seed, match_payload, mock_gateway, ctx):
        match_payload['players_needed'] = 3
        created = service.create('t1', seed.users['owner1'].id, match_payload, now=NOW)
        player_id = seed.users['player1'].id
        service.join('t1', player_id, created['id'], now=NOW)

        match = service.leave('t1', player_id, created['id'], now=NOW)
        assert match['current_players'] == 1
        assert match['joined_players'] == []
        mock_gateway.emit_player_left.assert_called_once_with('t1', match)

        match = service.join('t1', player_id, created['id'], now=NOW)
        assert match['current_players'] == 2
        assert OpponentMatchPlayer.query.filter_by(opponent_match_id=created['id']).count() == 1

    def test_leave_without_membership(self, service, seed, open_match):
        with pytest.raises(NotFoundError):
            service.leave('t1', seed.users['player1'].id, open_match['id'], now=NOW)

    def test_cannot_leave_matched_match(self, service, seed, open_match):
        service.join('t1', seed.users['player1'].id, open_match['id'], now=NOW)
        with pytest.raises(ValidationError) as exc:
            service.leave('t1', seed.users['player1'].id, open_match['id'], now=NOW)
        assert exc.value.message == 'Cannot leave a completed match'


class TestCancel:
    """Tests for cancelling opponent matches."""

    def test_creator_cancels(self, service, seed, open_match, mock_gateway):
        match = service.cancel('t1', seed.users['owner1'].id, open_match['id'])
        assert match['status'] == 'CANCELLED'
        mock_gateway.emit_match_cancelled.assert_called_once_with('t1', match)

    def test_cancel_matched_match(self, service, seed, open_match):
        service.join('t1', seed.users['player1'].id, open_match['id'], now=NOW)
        assert service.cancel('t1', seed.users['owner1'].id, open_match['id'])['status'] == 'CANCELLED'

    def test_only_creator_can_cancel(self, service, seed, open_match, mock_gateway):
        with pytest.raises(NotFoundError):
            service.cancel('t1', seed.users['player1'].id, open_match['id'])
        mock_gateway.emit_match_cancelled.assert_not_called()

    def test_cancel_twice(self, service, seed, open_match):
        service.cancel('t1', seed.users['owner1'].id, open_match['id'])
        with pytest.raises(ValidationError):
            service.cancel('t1', seed.users['owner1'].id, open_match['id'])

    def test_cancelled_match_persisted(self, service, seed, open_match):
        service.cancel('t1', seed.users['owner1'].id, open_match['id'])
        assert db.session.get(OpponentMatch, open_match['id']).status == 'CANCELLED'
