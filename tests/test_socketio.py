def _connected(sio_client):
    if not sio_client.is_connected('/ws'):
        sio_client.connect(namespace='/ws')
    assert sio_client.is_connected('/ws')
    # Flush any initial events
    sio_client.get_received('/ws')
    return sio_client


def _names(received):
    return [pkt['name'] for pkt in received]


def test_socket_connect_and_join(sio_client):
    client = _connected(sio_client)
    client.emit('join_room', {'room_code': 'abc123'}, namespace='/ws')
    received = client.get_received('/ws')
    joined = [pkt for pkt in received if pkt['name'] == 'joined']
    assert joined
    assert joined[0]['args'][0] == {'room_code': 'ABC123'}


def test_join_without_room_code_errors(sio_client):
    client = _connected(sio_client)
    client.emit('join_room', {}, namespace='/ws')
    assert 'error' in _names(client.get_received('/ws'))


def test_room_subscriber_receives_player_joined(sio_client, client):
    code = client.post('/api/rooms', json={'name': 'Socket Room'}).get_json()['code']
    ws = _connected(sio_client)
    ws.emit('join_room', {'room_code': code}, namespace='/ws')
    ws.get_received('/ws')

    client.post(f'/api/rooms/{code}/join', json={'display_name': 'Ann'})
    received = ws.get_received('/ws')
    joined = [pkt['args'][0] for pkt in received if pkt['name'] == 'player_joined']
    assert len(joined) == 1
    assert joined[0]['room_code'] == code
    assert joined[0]['display_name'] == 'Ann'


def test_left_room_stops_notifications(sio_client, client):
    code = client.post('/api/rooms', json={'name': 'Socket Room'}).get_json()['code']
    ws = _connected(sio_client)
    ws.emit('join_room', {'room_code': code}, namespace='/ws')
    ws.emit('leave_room', {'room_code': code}, namespace='/ws')
    assert 'left' in _names(ws.get_received('/ws'))

    client.post(f'/api/rooms/{code}/join', json={'display_name': 'Ann'})
    assert 'player_joined' not in _names(ws.get_received('/ws'))


def test_reaction_is_relayed_to_room(sio_client):
    ws = _connected(sio_client)
    ws.emit('join_room', {'room_code': '123456'}, namespace='/ws')
    ws.get_received('/ws')

    ws.emit('reaction', {'room_code': '123456', 'user_id': 1, 'display_name': 'Ann', 'emoji': '🔥'}, namespace='/ws')
    reactions = [pkt['args'][0] for pkt in ws.get_received('/ws') if pkt['name'] == 'reaction']
    assert len(reactions) == 1
    assert reactions[0]['emoji'] == '🔥'
    assert reactions[0]['display_name'] == 'Ann'


def test_unsupported_reaction_is_rejected(sio_client):
    ws = _connected(sio_client)
    ws.emit('reaction', {'room_code': '123456', 'emoji': 'x'}, namespace='/ws')
    assert _names(ws.get_received('/ws')) == ['error']


def test_ping_pong(sio_client):
    ws = _connected(sio_client)
    ws.emit('ping', {'n': 1}, namespace='/ws')
    received = ws.get_received('/ws')
    assert received[-1]['name'] == 'pong'
    assert received[-1]['args'][0] == {'n': 1}
