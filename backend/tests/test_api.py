def test_index(client):
    res = client.get('/')
    assert res.status_code == 200
    assert 'message' in res.get_json()


def test_health_reports_session_counts(client, sio_client):
    assert client.get('/health').get_json() == {'ok': True, 'sessions': 0, 'active': 0}
    sio_client.get_received(namespace='/ws')
    sio_client.emit('create_session', {}, namespace='/ws')
    created = [p['args'][0] for p in sio_client.get_received(namespace='/ws') if p['name'] == 'session_created'][0]
    assert client.get('/health').get_json() == {'ok': True, 'sessions': 1, 'active': 1}

    # Finished sessions are counted until they are reaped
    sio_client.emit('end_game', {'session_id': created['session_id']}, namespace='/ws')
    assert client.get('/health').get_json() == {'ok': True, 'sessions': 1, 'active': 0}


def test_cities_check_command(flask_app):
    result = flask_app.test_cli_runner().invoke(args=['cities-check'])
    assert result.exit_code == 0
    assert '27 cities loaded' in result.output
    assert 'EUROPE:' in result.output
    assert 'NORTH_AMERICA:' in result.output
    assert 'Sample draw: ' in result.output
