import pytest

from geoquiz.models import SessionState
from geoquiz.services.games.errors import NotFound, ReclaimRejected

HOST = 'host-sid'
LONDON = (51.5074, -0.1278)


@pytest.fixture()
def game(service):
    session = service.create_session(HOST, {'round_time_sec': 20})
    service.join('alice-sid', session.code, 'Alice')
    service.join('bob-sid', session.code, 'Bob')
    return session


def test_host_disconnect_arms_grace_timer(service, publisher, clock, game):
    assert service.host_disconnected(HOST, game.id) is True
    assert game.host_connection_id is None
    assert game.host_disconnected_at == clock.now
    assert game.grace_timer.pending
    assert publisher.named('host_disconnected') == [{'session_id': game.id, 'grace_deadline': clock.now + 180}]


def test_disconnect_of_non_host_connection_is_ignored(service, game):
    assert service.host_disconnected('alice-sid', game.id) is False
    assert game.is_host(HOST)
    assert service.host_disconnected(HOST, 'missing') is False


def test_reclaim_within_grace_restores_host(service, scheduler, publisher, game):
    service.start_round(HOST, game.id, 'London', *LONDON)
    service.host_disconnected(HOST, game.id)
    grace = game.grace_timer
    scheduler.advance(10)

    service.reclaim_host('new-host-sid', game.id, game.host_token)

    assert game.is_host('new-host-sid')
    assert game.host_disconnected_at is None
    assert grace.cancelled
    snapshot = publisher.sent_to('new-host-sid', 'host_reclaimed')[0]
    assert snapshot['state'] == 'in_round'
    assert snapshot['round'] == 1
    assert [p['name'] for p in snapshot['players']] == ['Alice', 'Bob']
    assert snapshot['current_round']['city_name'] == 'London'
    assert snapshot['current_round']['deadline'] == game.current_round.deadline_at
    assert 'lat' not in snapshot['current_round']
    assert 'host_token' not in snapshot
    assert publisher.named('host_reconnected') == [{'session_id': game.id}]
    assert publisher.rooms['new-host-sid'] == {game.id}

    # The restored host can drive the game and the grace period never fires
    service.end_round('new-host-sid', game.id)
    scheduler.advance(600)
    assert game.state is SessionState.SHOWING_RESULTS
    assert publisher.named('game_final') == []


def test_reclaim_with_wrong_token_fails(service, game):
    service.host_disconnected(HOST, game.id)
    with pytest.raises(ReclaimRejected):
        service.reclaim_host('new-host-sid', game.id, 'not-the-token')
    with pytest.raises(ReclaimRejected):
        service.reclaim_host('new-host-sid', game.id, None)
    assert game.host_connection_id is None
    assert game.grace_timer.pending


def test_reclaim_rejected_while_host_is_connected(service, game):
    with pytest.raises(ReclaimRejected):
        service.reclaim_host('intruder-sid', game.id, game.host_token)
    assert game.is_host(HOST)


def test_reclaim_unknown_session(service):
    with pytest.raises(NotFound):
        service.reclaim_host('new-host-sid', 'missing', 'token')


def test_grace_lapse_finishes_game_once(service, scheduler, publisher, game):
    service.start_round(HOST, game.id, 'London', *LONDON)
    service.host_disconnected(HOST, game.id)

    # The round still completes on its own deadline while the host is away
    scheduler.advance(20)
    assert game.state is SessionState.SHOWING_RESULTS
    scheduler.advance(159)
    assert game.state is SessionState.SHOWING_RESULTS
    scheduler.advance(1)

    assert game.state is SessionState.FINISHED
    final = publisher.named('game_final')
    assert len(final) == 1
    assert final[0]['reason'] == 'host_timeout'
    assert [row['name'] for row in final[0]['leaderboard']] == ['Alice', 'Bob']

    with pytest.raises(ReclaimRejected):
        service.reclaim_host('late-host-sid', game.id, game.host_token)
    scheduler.advance(1000)
    assert len(publisher.named('game_final')) == 1
    assert game.id not in service.registry


def test_second_disconnect_rearms_grace(service, scheduler, publisher, game):
    service.host_disconnected(HOST, game.id)
    scheduler.advance(170)
    service.reclaim_host('second-sid', game.id, game.host_token)
    service.host_disconnected('second-sid', game.id)
    scheduler.advance(170)
    assert game.state is SessionState.LOBBY
    scheduler.advance(10)
    assert game.state is SessionState.FINISHED
    assert len(publisher.named('game_final')) == 1
