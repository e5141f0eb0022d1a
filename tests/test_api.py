import time

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, create_engine

import jbbly.main as jbbly_main
from jbbly import crud, game
from jbbly.config import config
from jbbly.main import app


def setup_db(tmp_path):
    db = tmp_path / 'api.db'
    engine = create_engine(f'sqlite:///{db}', connect_args={"check_same_thread": False})
    SQLModel.metadata.create_all(engine)
    crud.engine = engine
    return engine


@pytest.fixture
def client(tmp_path):
    # entering the client runs startup, which gives session timers a loop that outlives each request
    setup_db(tmp_path)
    with TestClient(app) as c:
        yield c


def answer_for(sid):
    runner = jbbly_main._SESSIONS[sid][0]
    return runner.state.current_phrase.answer


def start(client, name='ann'):
    r = client.post('/api/sessions', json={"name": name})
    assert r.status_code == 201
    return r.json()['session']['session_id']


def wait_for(client, sid, done, timeout=5.0):
    deadline = time.time() + timeout
    while True:
        body = client.get(f'/api/sessions/{sid}').json()
        if done(body['session']) or time.time() > deadline:
            return body
        time.sleep(0.05)


def test_health(tmp_path):
    setup_db(tmp_path)
    client = TestClient(app)
    r = client.get('/health')
    assert r.status_code == 200
    assert r.json().get('status') == 'ok'
    assert client.get('/api/cache/stats').json()['status'] == 'ok'


def test_daily_hides_answers(tmp_path):
    setup_db(tmp_path)
    client = TestClient(app)
    r = client.get('/api/daily', params={"date": "2025-08-30"})
    assert r.status_code == 200
    data = r.json()
    assert data['date'] == '2025-08-30'
    assert data['count'] == 5
    expected = game.select_daily(jbbly_main.get_pool(), '2025-08-30')
    assert data['phrases'] == [p.gibberish for p in expected]
    assert client.get('/api/daily', params={"date": "2025-08-30"}).json() == data
    for p in expected:
        assert p.answer not in r.text

    assert client.get('/api/daily', params={"date": "2025/08/30"}).status_code == 400
    assert client.get('/api/daily', params={"date": "2025-13-45"}).status_code == 400


def test_leaderboard_param_validation(tmp_path):
    setup_db(tmp_path)
    client = TestClient(app)
    assert client.get('/api/leaderboard', params={"date": "2025/13/01"}).status_code == 400
    assert client.get('/api/leaderboard', params={"limit": 0}).status_code == 400
    r = client.get('/api/leaderboard', params={"date": "2025-08-30"})
    assert r.status_code == 200
    assert r.json() == {"date": "2025-08-30", "leaders": []}


def test_sessions_need_a_started_app(tmp_path):
    setup_db(tmp_path)
    client = TestClient(app)
    r = client.post('/api/sessions', json={"name": "ann"})
    assert r.status_code == 503


def test_start_session_name_rules(client):
    assert client.post('/api/sessions', json={"name": "   "}).status_code == 400
    assert client.post('/api/sessions', json={"name": "x" * 30}).status_code == 422

    r = client.post('/api/sessions', json={"name": "  ann "})
    assert r.status_code == 201
    s = r.json()['session']
    assert s['name'] == 'ann'
    assert s['outcome'] == 'in_progress'
    assert s['count'] == 5
    assert s['gibberish']


def test_full_game_lands_on_leaderboard(client):
    sid = start(client)

    wrong = client.post(f'/api/sessions/{sid}/guess', json={"text": "not even close"}).json()
    assert wrong['session']['wrong_guess'] is True
    assert wrong['session']['current_index'] == 0

    hint = client.post(f'/api/sessions/{sid}/hint').json()
    assert hint['notices'][0]['kind'] == 'info'
    assert hint['session']['hint_used'] is True

    for i in range(5):
        body = client.post(f'/api/sessions/{sid}/guess', json={"text": answer_for(sid).upper()}).json()
    s = body['session']
    assert s['outcome'] == 'finished'
    assert s['total_seconds'] >= 5.0
    assert body['placement'] == 1
    kinds = [n['kind'] for n in body['notices']]
    assert 'success' in kinds and 'celebrate' in kinds
    # the finished session no longer follows the board
    assert jbbly_main._SESSIONS[sid][0].view.closed

    board = client.get('/api/leaderboard').json()
    assert board['date'] == game.today_str()
    assert board['leaders'][0]['name'] == 'ann'
    assert board['leaders'][0]['time'] == s['total_seconds']

    # further input is ignored once finished
    again = client.post(f'/api/sessions/{sid}/guess', json={"text": "x"}).json()
    assert again['session']['outcome'] == 'finished'


def test_skip_reveals_then_advances(client):
    sid = start(client, 'bob')
    first_answer = answer_for(sid)

    skipped = client.post(f'/api/sessions/{sid}/skip').json()
    s = skipped['session']
    assert s['revealed_answer'] == first_answer
    assert s['current_index'] == 0
    assert s['penalty_seconds'] == 10.0
    assert s['skipped'] == [0]
    assert skipped['notices'][0]['kind'] == 'warning'

    # actions wait out the reveal
    held = client.post(f'/api/sessions/{sid}/guess', json={"text": first_answer}).json()
    assert held['session']['current_index'] == 0

    moved = wait_for(client, sid, lambda s: s['current_index'] == 1)['session']
    assert moved['current_index'] == 1
    assert moved['revealed_answer'] is None
    assert moved['outcome'] == 'in_progress'


def test_skipping_last_phrase_finishes_and_submits(client, monkeypatch):
    monkeypatch.setattr(config, 'SKIP_REVEAL_MS', 50)
    sid = start(client, 'cat')

    for i in range(5):
        client.post(f'/api/sessions/{sid}/skip')
        body = wait_for(client, sid, lambda s, i=i: s['current_index'] == i + 1)

    s = body['session']
    assert s['outcome'] == 'finished'
    assert s['skipped'] == [0, 1, 2, 3, 4]
    assert s['total_seconds'] >= 50.0
    assert body['placement'] == 1
    assert jbbly_main._SESSIONS[sid][0].view.closed

    leaders = client.get('/api/leaderboard').json()['leaders']
    assert [e['name'] for e in leaders] == ['cat']
    assert leaders[0]['time'] == s['total_seconds']


def test_give_up_during_reveal(client):
    sid = start(client, 'bob')
    client.post(f'/api/sessions/{sid}/skip')

    over = client.post(f'/api/sessions/{sid}/give_up').json()
    assert over['session']['outcome'] == 'gave_up'
    assert over['notices'][0]['kind'] == 'error'
    assert 'placement' not in over
    assert client.get('/api/leaderboard').json()['leaders'] == []


def test_unknown_and_closed_sessions(client):
    assert client.get('/api/sessions/nope').status_code == 404
    assert client.post('/api/sessions/nope/guess', json={"text": "a"}).status_code == 404

    sid = start(client, 'cat')
    runner = jbbly_main._SESSIONS[sid][0]
    client.post(f'/api/sessions/{sid}/skip')
    r = client.delete(f'/api/sessions/{sid}')
    assert r.status_code == 200 and r.json()['closed'] is True
    assert client.get(f'/api/sessions/{sid}').status_code == 404
    assert runner.closed and runner.view.closed
    assert runner._pending == []


def test_ws_sends_board_on_connect(client):
    with client.websocket_connect('/ws?date=2025-08-30') as ws:
        data = ws.receive_json()
        assert data['type'] == 'leaderboard'
        assert data['date'] == '2025-08-30'
        assert data['leaders'] == []


def test_ws_pushes_board_when_a_game_finishes(client):
    with client.websocket_connect('/ws') as ws:
        assert ws.receive_json()['leaders'] == []

        sid = start(client, 'dee')
        for _ in range(5):
            client.post(f'/api/sessions/{sid}/guess', json={"text": answer_for(sid)})

        pushed = ws.receive_json()
        assert pushed['type'] == 'leaderboard'
        assert pushed['date'] == game.today_str()
        assert [e['name'] for e in pushed['leaders']] == ['dee']

        ws.send_text('refresh')
        again = ws.receive_json()
        assert again['leaders'] == pushed['leaders']
