from datetime import timedelta

from conftest import session_headers
from darter import db
from darter.models import MatchLock, utcnow


def _throw(leg=1, player=1, round_number=1, score=100, remaining=401, throw_number=3, **extra):
    payload = {
        'leg_number': leg,
        'set_number': 1,
        'player_number': player,
        'throw_number': throw_number,
        'round_number': round_number,
        'score': score,
        'remaining_score': remaining,
        'is_checkout_attempt': False,
    }
    payload.update(extra)
    return payload


def _record(client, match_id, payload, session_id='device-a'):
    return client.post(f'/api/matches/{match_id}/legs/throws', json=payload,
                       headers=session_headers(session_id))


def _throws(client, match_id, session_id='device-a', **params):
    res = client.get(f'/api/matches/{match_id}/legs/throws', query_string=params,
                     headers=session_headers(session_id))
    return res.get_json()


def _record_501_leg(client, match_id):
    rounds = [(100, 401), (140, 261), (140, 121), (121, 0)]
    responses = []
    for i, (score, remaining) in enumerate(rounds, start=1):
        responses.append(_record(client, match_id, _throw(
            round_number=i, score=score, remaining=remaining, is_checkout_attempt=(i == 4))))
    return responses


def test_record_501_leg(client, started_match):
    match = started_match()
    responses = _record_501_leg(client, match['id'])
    assert all(r.status_code == 201 for r in responses)

    first = responses[0].get_json()
    assert first['data']['remaining_score'] == 401
    assert first['data']['winner_player_number'] is None
    assert first['meta']['stats_updated'] is True
    assert first['meta']['leg_completed'] is False

    last = responses[-1].get_json()
    assert last['data']['winner_player_number'] == 1
    assert last['data']['winning_checkout'] == 121
    assert last['meta']['leg_completed'] is True
    assert last['meta']['match_completed'] is False

    data = client.get(f"/api/matches/{match['id']}", headers=session_headers()).get_json()['data']
    assert data['player1_legs_won'] == 1
    assert data['current_leg'] == 2
    # unlimited matches keep going
    assert data['match_status'] == 'in_progress'


def test_501_leg_stats(client, started_match):
    match = started_match()
    _record_501_leg(client, match['id'])
    res = client.get(f"/api/matches/{match['id']}/stats?player_number=1", headers=session_headers())
    body = res.get_json()
    assert body['meta']['count'] == 1
    stats = body['data'][0]
    assert stats['total_score'] == 501
    assert stats['darts_thrown'] == 12
    assert stats['rounds_played'] == 4
    assert stats['average_score'] == 125.25
    assert stats['first_9_average'] == 126.67
    assert stats['scores_60_plus'] == 4
    assert stats['scores_100_plus'] == 4
    assert stats['scores_120_plus'] == 3
    assert stats['scores_140_plus'] == 2
    assert stats['scores_170_plus'] == 0
    assert stats['scores_180'] == 0
    assert stats['checkout_attempts'] == 1
    assert stats['successful_checkouts'] == 1
    assert stats['high_finish'] == 121
    assert stats['finishes_100_plus'] == 1
    assert stats['best_leg_darts'] == 12
    assert stats['worst_leg_darts'] == 12
    assert stats['legs_won_on_own_throw'] == 1

    both = client.get(f"/api/matches/{match['id']}/stats", headers=session_headers()).get_json()
    assert [s['player_number'] for s in both['data']] == [1, 2]
    assert both['data'][1]['total_score'] == 0


def test_throw_validation(client, started_match):
    match = started_match()
    payload = _throw(score=181, throw_number=4)
    del payload['leg_number']
    res = _record(client, match['id'], payload)
    assert res.status_code == 400
    fields = {d['field'] for d in res.get_json()['error']['details']}
    assert fields == {'leg_number', 'score', 'throw_number'}


def test_same_position_is_upserted(client, started_match):
    match = started_match()
    first = _record(client, match['id'], _throw(score=100, remaining=401)).get_json()['data']
    second = _record(client, match['id'], _throw(score=60, remaining=441)).get_json()['data']
    assert first['id'] == second['id']
    body = _throws(client, match['id'])
    assert body['meta']['total'] == 1
    assert body['data'][0]['score'] == 60


def test_batch_record(client, started_match):
    match = started_match()
    res = client.post(f"/api/matches/{match['id']}/legs/throws/batch", json={'throws': [
        _throw(player=2, round_number=1, score=45, remaining=456),
        _throw(player=1, round_number=1, score=100, remaining=401),
    ]}, headers=session_headers())
    assert res.status_code == 201
    body = res.get_json()
    assert body['data']['created_count'] == 2
    assert sorted(t['player_number'] for t in body['data']['throws']) == [1, 2]
    assert body['meta']['stats_updated'] is True
    assert _throws(client, match['id'])['meta']['total'] == 2


def test_batch_validation(client, started_match):
    match = started_match()
    url = f"/api/matches/{match['id']}/legs/throws/batch"

    res = client.post(url, json={'throws': [_throw(), _throw(round_number=2, score=200)]},
                      headers=session_headers())
    assert res.status_code == 400
    assert [d['field'] for d in res.get_json()['error']['details']] == ['throws.1.score']

    res = client.post(url, json={'throws': [_throw(round_number=i) for i in range(1, 52)]},
                      headers=session_headers())
    assert res.status_code == 400
    assert res.get_json()['error']['details'][0]['field'] == 'throws'

    res = client.post(url, json={'throws': []}, headers=session_headers())
    assert res.status_code == 400
    assert _throws(client, match['id'])['meta']['total'] == 0


def test_first_to_one_completes_match(client, started_match):
    match = started_match(format_type='first_to', legs_count=1, start_score=101)
    res = _record(client, match['id'], _throw(player=2, score=101, remaining=0))
    meta = res.get_json()['meta']
    assert meta['match_completed'] is True
    assert meta['winner_player_number'] == 2

    data = client.get(f"/api/matches/{match['id']}", headers=session_headers()).get_json()['data']
    assert data['match_status'] == 'completed'
    assert data['winner_player_number'] == 2
    assert data['player2_legs_won'] == 1

    lock = client.get(f"/api/matches/{match['id']}/lock", headers=session_headers()).get_json()['data']
    assert lock['is_locked'] is False

    res = _record(client, match['id'], _throw(leg=2, player=1, score=101, remaining=0))
    assert res.status_code == 409
    assert res.get_json()['error']['code'] == 'MATCH_ALREADY_COMPLETED'


def test_best_of_three_needs_two_legs(client, started_match):
    match = started_match(format_type='best_of', legs_count=3, start_score=40)
    meta = _record(client, match['id'], _throw(leg=1, score=40, remaining=0)).get_json()['meta']
    assert meta['leg_completed'] is True
    assert meta['match_completed'] is False

    meta = _record(client, match['id'], _throw(leg=2, score=40, remaining=0)).get_json()['meta']
    assert meta['match_completed'] is True
    assert meta['winner_player_number'] == 1


def test_correcting_a_throw_recalculates_later_ones(client, started_match):
    match = started_match()
    rows = [_record(client, match['id'], _throw(round_number=i, score=s, remaining=r)).get_json()['data']
            for i, (s, r) in enumerate([(100, 401), (140, 261), (140, 121)], start=1)]

    res = client.patch(f"/api/matches/{match['id']}/legs/throws/{rows[0]['id']}", json={'score': 60},
                       headers=session_headers())
    assert res.status_code == 200
    body = res.get_json()
    assert body['data']['remaining_score'] == 441
    assert body['meta']['stats_recalculated'] is True
    assert body['meta']['subsequent_throws_affected'] == 2

    remaining = [t['remaining_score'] for t in _throws(client, match['id'])['data']]
    assert remaining == [441, 301, 161]
    stats = client.get(f"/api/matches/{match['id']}/stats?player_number=1",
                       headers=session_headers()).get_json()['data'][0]
    assert stats['total_score'] == 340


def test_deleting_a_throw_recalculates_later_ones(client, started_match):
    match = started_match()
    rows = [_record(client, match['id'], _throw(round_number=i, score=s, remaining=r)).get_json()['data']
            for i, (s, r) in enumerate([(100, 401), (140, 261), (140, 121)], start=1)]

    res = client.delete(f"/api/matches/{match['id']}/legs/throws/{rows[1]['id']}", headers=session_headers())
    assert res.status_code == 204
    remaining = [t['remaining_score'] for t in _throws(client, match['id'])['data']]
    assert remaining == [401, 261]


def test_unknown_throw(client, started_match):
    match = started_match()
    res = client.patch(f"/api/matches/{match['id']}/legs/throws/missing", json={'score': 60},
                       headers=session_headers())
    assert res.status_code == 404
    assert res.get_json()['error']['code'] == 'THROW_NOT_FOUND'


def test_list_throws_filters(client, started_match):
    match = started_match()
    _record(client, match['id'], _throw(player=1, score=100, remaining=401))
    _record(client, match['id'], _throw(player=2, score=60, remaining=441))

    body = _throws(client, match['id'], player_number=2)
    assert [t['score'] for t in body['data']] == [60]
    assert body['meta']['total'] == 1

    res = client.get(f"/api/matches/{match['id']}/legs?limit=1", headers=session_headers())
    body = res.get_json()
    assert body['meta'] == {'count': 1, 'total': 2, 'limit': 1, 'offset': 0}

    # reading throws needs no lock
    body = _throws(client, match['id'], session_id='device-b')
    assert body['meta']['total'] == 2


def test_recording_extends_auto_extend_lock(client, started_match):
    match = started_match()
    lock = db.session.get(MatchLock, match['id'])
    lock.expires_at = utcnow() + timedelta(seconds=10)
    db.session.commit()

    _record(client, match['id'], _throw())
    status = client.get(f"/api/matches/{match['id']}/lock", headers=session_headers()).get_json()['data']
    assert status['time_remaining_seconds'] > 250


def test_expired_lock_blocks_scoring(client, started_match):
    match = started_match()
    lock = db.session.get(MatchLock, match['id'])
    lock.expires_at = utcnow() - timedelta(seconds=1)
    db.session.commit()

    res = _record(client, match['id'], _throw())
    assert res.status_code == 403
    assert res.get_json()['error']['code'] == 'LOCK_EXPIRED'


def test_other_session_cannot_score(client, started_match):
    match = started_match('device-a')
    res = _record(client, match['id'], _throw(), session_id='device-b')
    assert res.status_code == 409
    assert res.get_json()['error']['code'] == 'LOCK_CONFLICT'


def test_scoring_needs_match_in_progress(client, new_match, started_match):
    match = new_match()
    client.post(f"/api/matches/{match['id']}/lock", json={}, headers=session_headers())
    res = _record(client, match['id'], _throw())
    assert res.status_code == 409
    assert res.get_json()['error']['code'] == 'MATCH_NOT_IN_PROGRESS'

    paused = started_match()
    row = _record(client, paused['id'], _throw()).get_json()['data']
    client.patch(f"/api/matches/{paused['id']}", json={'match_status': 'paused'}, headers=session_headers())
    res = _record(client, paused['id'], _throw(round_number=2))
    assert res.status_code == 409
    # corrections are still allowed while paused
    res = client.patch(f"/api/matches/{paused['id']}/legs/throws/{row['id']}", json={'score': 80},
                       headers=session_headers())
    assert res.status_code == 200
    assert res.get_json()['data']['remaining_score'] == 421


def test_bust_round_scores_nothing(client, started_match):
    match = started_match()
    for i, (score, remaining) in enumerate([(180, 321), (180, 141), (100, 41), (60, 41)], start=1):
        res = _record(client, match['id'], _throw(round_number=i, score=score, remaining=remaining))
        assert res.status_code == 201

    stats = client.get(f"/api/matches/{match['id']}/stats?player_number=1",
                       headers=session_headers()).get_json()['data'][0]
    assert stats['total_score'] == 460
    assert stats['rounds_played'] == 4
    assert stats['average_score'] == 115.0
    assert stats['scores_60_plus'] == 3
    assert stats['first_9_average'] == 153.33


def test_correction_that_checks_out_closes_the_leg(client, started_match):
    match = started_match()
    rounds = [(180, 321), (180, 141), (100, 41), (20, 21)]
    rows = [_record(client, match['id'], _throw(round_number=i, score=s, remaining=r,
                                                is_checkout_attempt=(i >= 3))).get_json()['data']
            for i, (s, r) in enumerate(rounds, start=1)]

    res = client.patch(f"/api/matches/{match['id']}/legs/throws/{rows[2]['id']}", json={'score': 141},
                       headers=session_headers())
    assert res.status_code == 200
    body = res.get_json()
    assert body['data']['remaining_score'] == 0
    assert body['data']['winning_checkout'] == 141
    assert body['meta']['subsequent_throws_affected'] == 1
    assert body['meta']['leg_completed'] is True

    assert [t['remaining_score'] for t in _throws(client, match['id'])['data']] == [321, 141, 0]
    stats = client.get(f"/api/matches/{match['id']}/stats?player_number=1",
                       headers=session_headers()).get_json()['data'][0]
    assert stats['checkout_attempts'] == 1
    assert stats['successful_checkouts'] == 1
    assert stats['rounds_played'] == 3
    assert stats['high_finish'] == 141

    data = client.get(f"/api/matches/{match['id']}", headers=session_headers()).get_json()['data']
    assert data['player1_legs_won'] == 1
    assert data['current_leg'] == 2


def test_won_leg_takes_no_more_throws(client, started_match):
    match = started_match()
    _record_501_leg(client, match['id'])

    res = _record(client, match['id'], _throw(player=2, round_number=4, score=60, remaining=441))
    assert res.status_code == 409
    assert res.get_json()['error']['code'] == 'LEG_ALREADY_WON'

    # the checkout itself can be sent again
    res = _record(client, match['id'], _throw(round_number=4, score=121, remaining=0, is_checkout_attempt=True))
    assert res.status_code == 201
    assert _record(client, match['id'], _throw(leg=2, player=2, score=100, remaining=401)).status_code == 201

    res = client.post(f"/api/matches/{match['id']}/legs/throws/batch", json={'throws': [
        _throw(leg=2, player=1, round_number=1, score=60, remaining=441),
        _throw(leg=1, player=2, round_number=5, score=45, remaining=456),
    ]}, headers=session_headers())
    assert res.status_code == 409
    assert res.get_json()['error']['details'] == {'set_number': 1, 'leg_number': 1}
    assert _throws(client, match['id'])['meta']['total'] == 5
