from darter.models import TournamentMatchResult
from darter.seed import DEFAULT_501_ID
from darter.services.tournaments import pagination_meta, tournament_statistics


def _login(client, username='alice'):
    res = client.post('/register', json={'username': username, 'password': 'secret123'})
    assert res.status_code == 201
    return res.get_json()['data']


def _result(**overrides):
    result = {
        'match_type_id': DEFAULT_501_ID,
        'opponent_name': 'Bob',
        'player_score': 3,
        'opponent_score': 1,
        'average_score': 62.5,
        'first_nine_avg': 70.0,
        'checkout_percentage': 37.5,
        'score_60_count': 10,
        'score_100_count': 4,
        'score_140_count': 2,
        'score_180_count': 1,
        'high_finish': 96,
        'best_leg': 18,
        'worst_leg': 27,
    }
    result.update(overrides)
    return result


def _create(client, name='Friday League', date='2026-03-14', matches=None, **extra):
    payload = {'name': name, 'date': date, 'matches': matches or [_result()]}
    payload.update(extra)
    return client.post('/api/tournaments', json=payload)


def test_tournament_types_are_public(client):
    body = client.get('/api/tournament-types').get_json()
    assert body['data'] == [{'id': 1, 'name': 'Leagues + SKO'}, {'id': 2, 'name': 'SKO'}]
    assert body['meta'] == {'count': 2}


def test_tournaments_need_login(client):
    res = client.get('/api/tournaments')
    assert res.status_code == 401
    assert res.get_json()['error']['code'] == 'UNAUTHORIZED'
    assert _create(client).status_code == 401


def test_create_and_get_tournament(client):
    _login(client)
    res = _create(client, final_place=3, matches=[
        _result(),
        _result(opponent_name='Carol', player_score=1, opponent_score=3, best_leg=0),
    ])
    assert res.status_code == 201
    created = res.get_json()['data']
    assert created['date'] == '2026-03-14'
    assert created['final_place'] == 3
    assert created['tournament_type_id'] == 1
    assert created['tournament_type_name'] == 'Leagues + SKO'
    assert [r['opponent_name'] for r in created['results']] == ['Bob', 'Carol']

    res = client.get(f"/api/tournaments/{created['id']}")
    assert res.status_code == 200
    assert res.get_json()['data'] == created


def test_create_tournament_validation(client):
    _login(client)
    res = client.post('/api/tournaments', json={'name': '', 'date': '14/03/2026', 'matches': []})
    assert res.status_code == 400
    fields = {d['field'] for d in res.get_json()['error']['details']}
    assert fields == {'name', 'date', 'matches'}

    bad = _result(checkout_percentage=120)
    del bad['average_score']
    res = _create(client, matches=[bad], final_place=0)
    assert res.status_code == 400
    fields = {d['field'] for d in res.get_json()['error']['details']}
    assert fields == {'final_place', 'matches.0.checkout_percentage', 'matches.0.average_score'}


def test_create_tournament_unknown_references(client):
    _login(client)
    res = _create(client, matches=[_result(match_type_id='missing')])
    assert res.status_code == 404
    assert res.get_json()['error']['code'] == 'INVALID_REFERENCE'

    res = _create(client, tournament_type_id=9)
    assert res.status_code == 404
    assert res.get_json()['error']['code'] == 'INVALID_REFERENCE'
    assert client.get('/api/tournaments').get_json()['meta']['total'] == 0


def test_tournament_of_another_user_is_hidden(client):
    _login(client, 'alice')
    tournament = _create(client).get_json()['data']
    client.post('/logout')
    _login(client, 'bob')
    res = client.get(f"/api/tournaments/{tournament['id']}")
    assert res.status_code == 404
    assert res.get_json()['error']['code'] == 'TOURNAMENT_NOT_FOUND'
    assert client.get('/api/tournaments').get_json()['data'] == []


def test_list_tournaments_sorted_with_average(client):
    _login(client)
    _create(client, name='January', date='2026-01-10', matches=[_result(average_score=50.0),
                                                                _result(average_score=60.0)])
    _create(client, name='March', date='2026-03-14')
    _create(client, name='February', date='2026-02-07')

    body = client.get('/api/tournaments?limit=2').get_json()
    assert [t['name'] for t in body['data']] == ['March', 'February']
    assert body['meta'] == {'count': 2, 'total': 3, 'limit': 2, 'offset': 0}

    body = client.get('/api/tournaments?sort=date_asc').get_json()
    assert [t['name'] for t in body['data']] == ['January', 'February', 'March']
    assert body['data'][0]['average_score'] == 55.0

    assert client.get('/api/tournaments?sort=name').status_code == 400


def test_list_tournaments_in_date_range(client):
    _login(client)
    _create(client, name='Outside', date='2026-02-28')
    _create(client, name='Early March', date='2026-03-01')
    _create(client, name='Late March', date='2026-03-31', matches=[
        _result(),
        _result(opponent_name='Carol', player_score=2, opponent_score=3, average_score=55.0,
                checkout_percentage=25.0, score_180_count=0, high_finish=121, best_leg=0),
    ])

    body = client.get('/api/tournaments/list?start_date=2026-03-01&end_date=2026-03-31&page_size=1').get_json()
    assert body['meta'] == {'current_page': 1, 'page_size': 1, 'total_count': 2, 'total_pages': 2,
                            'has_next_page': True, 'has_previous_page': False}
    item = body['data'][0]
    assert item['tournament_name'] == 'Late March'
    assert item['tournament_type'] == 'Leagues + SKO'
    assert item['statistics'] == {
        'tournament_avg': 58.75,
        'total_180s': 1,
        'total_140_plus': 4,
        'total_100_plus': 8,
        'total_60_plus': 20,
        'avg_checkout_percentage': 31.25,
        'best_high_finish': 121,
        'best_leg': 18,
    }
    assert [m['result'] for m in item['matches']] == ['3-1', '2-3']
    assert item['matches'][0]['match_type'] == '501'

    body = client.get('/api/tournaments/list?start_date=2026-03-01&end_date=2026-03-31&page_size=1&page=2') \
        .get_json()
    assert [t['tournament_name'] for t in body['data']] == ['Early March']
    assert body['meta']['has_previous_page'] is True


def test_list_tournaments_in_date_range_validation(client):
    _login(client)
    res = client.get('/api/tournaments/list?start_date=2026-03-01')
    assert res.status_code == 400
    assert res.get_json()['error']['details'] == [{'field': 'end_date', 'message': 'Required'}]

    res = client.get('/api/tournaments/list?start_date=2026-3-1&end_date=2026-03-31')
    assert res.get_json()['error']['details'][0]['field'] == 'start_date'

    res = client.get('/api/tournaments/list?start_date=2026-03-31&end_date=2026-03-01')
    assert res.status_code == 400
    assert res.get_json()['error']['code'] == 'INVALID_DATE_RANGE'


def test_tournament_statistics_without_results():
    assert tournament_statistics([]) == {
        'tournament_avg': None,
        'total_180s': 0,
        'total_140_plus': 0,
        'total_100_plus': 0,
        'total_60_plus': 0,
        'avg_checkout_percentage': None,
        'best_high_finish': 0,
        'best_leg': 0,
    }
    only_unfinished = [TournamentMatchResult(**_result(best_leg=0))]
    assert tournament_statistics(only_unfinished)['best_leg'] == 0


def test_pagination_meta():
    assert pagination_meta(1, 20, 0) == {'current_page': 1, 'page_size': 20, 'total_count': 0,
                                         'total_pages': 0, 'has_next_page': False,
                                         'has_previous_page': False}
    assert pagination_meta(2, 20, 41)['total_pages'] == 3
