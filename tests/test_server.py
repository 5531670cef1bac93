"""Tests for the realtime endpoint in core/server.py

Connections are MagicMocks standing in for websockets.sync server
connections; no sockets are opened.
"""

import json
import threading
from http import HTTPStatus

import pytest
from unittest.mock import MagicMock
from websockets.exceptions import ConnectionClosed

from core.cache import ResourceState
from core.errors import BridgeError, GatewayError
from core.hub import ROLE_GENERIC, ROLE_LOXONE, Client, Hub
from core.server import GatewayServer, client_identity, error_status, parse_query
from helpers import LIGHT_ID, ROOM_ID, api_response, light_resource


@pytest.fixture
def mock_bridge():
    return MagicMock()


@pytest.fixture
def hub(resolver, mock_bridge):
    hub = Hub(resolver, mock_bridge)
    hub.start()
    yield hub
    hub.stop()


@pytest.fixture
def server(hub):
    return GatewayServer(hub, host='127.0.0.1', port=0, ping_interval=5)


def fake_connection(path='/ws', messages=()):
    connection = MagicMock()
    connection.request.path = path
    connection.__iter__.return_value = iter(messages)
    return connection


class TestQuery:
    """Tests for URL query helpers."""

    def test_parse_query(self):
        assert parse_query('/?cmd=SET%20kitchen%20ON&x=1') == {'cmd': 'SET kitchen ON', 'x': '1'}
        assert parse_query('/ws') == {}

    def test_client_identity(self):
        assert client_identity('/ws?type=loxone&id=ms-1') == ('ms-1', ROLE_LOXONE)
        assert client_identity('/ws?type=LOXONE') == (None, ROLE_LOXONE)
        assert client_identity('/ws?id=') == (None, ROLE_GENERIC)

    def test_error_status_default(self):
        assert error_status(GatewayError('boom')) == HTTPStatus.INTERNAL_SERVER_ERROR


class TestHandleCommand:
    """Tests for the synchronous ?cmd= endpoint."""

    def test_ok(self, server, mock_bridge):
        status, body = server.handle_command('SET kitchen ON')

        assert status == HTTPStatus.OK
        assert body == {'status': 'ok', 'target': 'kitchen', 'action': 'set',
                        'resourceId': LIGHT_ID, 'resourceType': 'light'}
        mock_bridge.set_light_state.assert_called_once()

    def test_status_includes_state(self, server, mock_bridge):
        mock_bridge.get_resource_state.return_value = ResourceState.from_resource(light_resource())
        status, body = server.handle_command('GET kitchen STATUS')
        assert status == HTTPStatus.OK
        assert body['state']['brightness'] == 80.0

    @pytest.mark.parametrize('line, expected', [
        ('DANCE kitchen', HTTPStatus.BAD_REQUEST),
        ('SET kitchen BRI 150', HTTPStatus.BAD_REQUEST),
        ('SET garage ON', HTTPStatus.NOT_FOUND),
        ('MOOD living 9', HTTPStatus.NOT_FOUND),
    ])
    def test_error_status(self, server, line, expected):
        status, body = server.handle_command(line)
        assert status == expected
        assert body['error']

    def test_bridge_failure(self, server, mock_bridge):
        mock_bridge.set_light_state.side_effect = BridgeError('bridge unreachable')
        status, body = server.handle_command('SET kitchen ON')
        assert status == HTTPStatus.BAD_GATEWAY
        assert body == {'error': 'bridge unreachable'}

    def test_malformed_bridge_response(self, resolver, bridge, session):
        session.request.return_value = api_response([{'owner': {'rid': ROOM_ID}}])
        hub = Hub(resolver, bridge)
        hub.start()
        try:
            server = GatewayServer(hub, host='127.0.0.1', port=0)
            status, body = server.handle_command('SET living ON')
        finally:
            hub.stop()

        assert status == HTTPStatus.BAD_GATEWAY
        assert 'grouped_light' in body['error']


class TestProcessRequest:
    """Tests for the HTTP hook that runs before the websocket handshake."""

    def test_upgrade_without_cmd(self, server):
        request = MagicMock(path='/ws?type=loxone')
        assert server.process_request(MagicMock(), request) is None

    def test_cmd_answered_as_json(self, server):
        connection = MagicMock()
        response = MagicMock()
        response.headers = {'Content-Type': 'text/plain; charset=utf-8'}
        connection.respond.return_value = response
        request = MagicMock(path='/?cmd=SET%20kitchen%20ON')

        assert server.process_request(connection, request) is response

        status, text = connection.respond.call_args.args
        assert status == HTTPStatus.OK
        assert json.loads(text)['resourceId'] == LIGHT_ID
        assert response.headers == {'Content-Type': 'application/json'}

    def test_cmd_error(self, server):
        connection = MagicMock()
        connection.respond.return_value = MagicMock(headers={'Content-Type': 'text/plain'})
        server.process_request(connection, MagicMock(path='/?cmd=SET%20garage%20ON'))
        assert connection.respond.call_args.args[0] == HTTPStatus.NOT_FOUND


class TestConnections:
    """Tests for the reader and writer sides of a connection."""

    def test_reply_sent_and_client_removed(self, server, hub):
        sent = []
        replied = threading.Event()

        def messages():
            yield 'SET kitchen ON'
            replied.wait(2)

        connection = fake_connection('/ws?type=loxone&id=ms-1')
        connection.__iter__.return_value = messages()
        connection.send.side_effect = lambda text: (sent.append(json.loads(text)), replied.set())

        server.handle_connection(connection)
        hub.drain()

        assert sent == [{'type': 'ack', 'target': 'kitchen'}]
        assert hub.clients() == ()
        connection.close.assert_called()

    def test_broadcast_reaches_connection(self, server, hub):
        sent = []
        delivered = threading.Event()
        registered = threading.Event()

        def messages():
            registered.set()
            delivered.wait(2)
            return
            yield

        connection = fake_connection('/ws')
        connection.__iter__.return_value = messages()
        connection.send.side_effect = lambda text: (sent.append(json.loads(text)), delivered.set())

        reader = threading.Thread(target=server.handle_connection, args=(connection,))
        reader.start()
        registered.wait(2)
        hub.drain()
        hub.publish_status('kitchen', {'on': True})
        reader.join(3)

        assert sent == [{'type': 'status', 'device': 'kitchen', 'state': {'on': True}}]

    def test_connection_closed_by_peer(self, server, hub):
        def messages():
            raise ConnectionClosed(None, None)
            yield

        connection = fake_connection('/ws')
        connection.__iter__.return_value = messages()

        server.handle_connection(connection)
        hub.drain()

        assert hub.clients() == ()

    def test_writer_pings_when_idle(self, hub):
        server = GatewayServer(hub, ping_interval=0.01)
        client = Client()
        connection = MagicMock()
        connection.ping.side_effect = lambda: client.close()

        server._write_loop(connection, client)

        connection.ping.assert_called_once()
        connection.close.assert_called_once()
        connection.send.assert_not_called()

    def test_writer_stops_on_closed_connection(self, hub):
        server = GatewayServer(hub)
        client = Client()
        client.offer({'type': 'ack', 'target': 'x'})
        connection = MagicMock()
        connection.send.side_effect = ConnectionClosed(None, None)

        server._write_loop(connection, client)

        connection.close.assert_called_once()
