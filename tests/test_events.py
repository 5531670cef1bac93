"""Tests for event stream ingestion in core/events.py"""

import json
import threading

import pytest
import requests
from unittest.mock import MagicMock

from core.events import EVENT_STREAM_PATH, EventStream, StreamState, iter_sse_payloads, parse_batch
from helpers import LIGHT_ID, api_response, light_resource


def sse_response(lines, status_code=200, content_type='text/event-stream; charset=utf-8'):
    response = MagicMock()
    response.status_code = status_code
    response.headers = {'Content-Type': content_type}
    response.iter_lines.return_value = iter(lines)
    return response


def event_lines(*records):
    payload = json.dumps([{'type': 'update', 'data': list(records)}])
    return [': hi', '', 'id: 1:0', f'data: {payload}', '']


@pytest.fixture
def loaded_bridge(bridge, session):
    session.request.return_value = api_response([light_resource()])
    bridge.get_lights()
    return bridge


class TestSseParsing:
    """Tests for SSE framing."""

    def test_payload_ends_on_blank_line(self):
        lines = ['id: 1', 'data: [1]', '', 'data: [2]', '']
        assert list(iter_sse_payloads(lines)) == ['[1]', '[2]']

    def test_multiline_payload_joined(self):
        assert list(iter_sse_payloads(['data: [1,', 'data: 2]', ''])) == ['[1,\n2]']

    def test_comments_and_empty_messages_ignored(self):
        assert list(iter_sse_payloads([': keep-alive', '', '', 'event: x', ''])) == []

    def test_bytes_and_crlf(self):
        assert list(iter_sse_payloads([b'data: [3]\r', b''])) == ['[3]']

    def test_trailing_payload_flushed(self):
        assert list(iter_sse_payloads(['data:[4]'])) == ['[4]']


class TestParseBatch:
    """Tests for event batch decoding."""

    def test_records_from_all_events(self):
        payload = json.dumps([
            {'type': 'update', 'data': [{'id': 'a'}, {'id': 'b'}]},
            {'type': 'update', 'data': [{'id': 'c'}]},
        ])
        assert [r['id'] for r in parse_batch(payload)] == ['a', 'b', 'c']

    @pytest.mark.parametrize('payload', ['not json', '{"data": []}', '[1]', '[{"data": "x"}]'])
    def test_malformed(self, payload):
        with pytest.raises(ValueError):
            parse_batch(payload)


class TestHandlePayload:
    """Tests for applying payloads to the bridge cache."""

    def test_updates_cache(self, loaded_bridge):
        stream = EventStream(loaded_bridge)
        payload = json.dumps([{'type': 'update', 'data': [
            {'id': LIGHT_ID, 'type': 'light', 'on': {'on': False}},
            {'id': 'unknown', 'type': 'light', 'on': {'on': True}},
        ]}])

        assert stream.handle_payload(payload) == 1
        assert loaded_bridge.cache.get(LIGHT_ID).on is False

    def test_malformed_batch_skipped(self, loaded_bridge, caplog):
        stream = EventStream(loaded_bridge)
        assert stream.handle_payload('[{"data": 5}]') == 0
        assert 'malformed event batch' in caplog.text

    def test_malformed_record_skipped(self, loaded_bridge):
        stream = EventStream(loaded_bridge)
        payload = json.dumps([{'type': 'update', 'data': [
            {'id': LIGHT_ID, 'type': 'light', 'color': {'xy': {'x': 0.3}}},
            {'id': LIGHT_ID, 'type': 'light', 'dimming': {'brightness': 5}},
        ]}])
        assert stream.handle_payload(payload) == 1
        assert loaded_bridge.cache.get(LIGHT_ID).brightness == 5.0


class TestRun:
    """Tests for the connect/stream/reconnect loop."""

    def test_streams_and_reconnects_after_end(self, loaded_bridge, session):
        stop = threading.Event()
        stream = EventStream(loaded_bridge, reconnect_delay=0)
        responses = [
            sse_response(event_lines({'id': LIGHT_ID, 'type': 'light', 'dimming': {'brightness': 12}})),
            sse_response(event_lines({'id': LIGHT_ID, 'type': 'light', 'on': {'on': False}})),
        ]

        def get(url, **kwargs):
            if not responses:
                stop.set()
                return sse_response([])
            return responses.pop(0)

        session.get.side_effect = get

        stream.run(stop)

        state = loaded_bridge.cache.get(LIGHT_ID)
        assert state.brightness == 12.0
        assert state.on is False
        assert stream.state == StreamState.DISCONNECTED

        url = session.get.call_args.args[0]
        kwargs = session.get.call_args.kwargs
        assert url == f'https://192.168.1.20{EVENT_STREAM_PATH}'
        assert kwargs['stream'] is True
        assert kwargs['headers']['Accept'] == 'text/event-stream'
        assert kwargs['headers']['hue-application-key'] == 'test-key'

    def test_error_status_retried(self, loaded_bridge, session, caplog):
        stop = threading.Event()
        stream = EventStream(loaded_bridge, reconnect_delay=0)
        attempts = []

        def get(url, **kwargs):
            attempts.append(url)
            if len(attempts) == 2:
                stop.set()
            return sse_response([], status_code=503)

        session.get.side_effect = get

        stream.run(stop)

        assert len(attempts) == 2
        assert 'unexpected event stream status: 503' in caplog.text

    def test_wrong_content_type_is_error(self, loaded_bridge, session):
        stop = threading.Event()
        stream = EventStream(loaded_bridge, reconnect_delay=0)
        states = []

        def get(url, **kwargs):
            stop.set()
            return sse_response([], content_type='application/json')

        session.get.side_effect = get
        original = stream._set_state
        stream._set_state = lambda state: (states.append(state), original(state))

        stream.run(stop)

        assert StreamState.STREAMING not in states
        assert states[-1] == StreamState.DISCONNECTED

    def test_stop_closes_active_response(self, loaded_bridge):
        stream = EventStream(loaded_bridge)
        response = MagicMock()
        stream._response = response
        stream._stop_event = threading.Event()

        stream.stop()

        response.close.assert_called_once()
        assert stream._stop_event.is_set()
        assert stream.state == StreamState.DISCONNECTED

    def test_unconfigured_bridge_does_not_connect(self, session):
        from core.controller import HueBridge

        stop = threading.Event()
        stream = EventStream(HueBridge(None, None, session=session), reconnect_delay=0)
        stream._fail = lambda error, stop_event: stop.set()

        stream.run(stop)

        session.get.assert_not_called()

    def test_connection_dropped_mid_stream(self, loaded_bridge, session, caplog):
        """A read failure after some events reconnects and keeps the applied state."""
        stop = threading.Event()
        stream = EventStream(loaded_bridge, reconnect_delay=0)
        states = []

        def dropped_lines():
            yield from event_lines({'id': LIGHT_ID, 'type': 'light', 'dimming': {'brightness': 33}})
            raise requests.exceptions.ChunkedEncodingError('connection reset by peer')

        first = sse_response([])
        first.iter_lines.return_value = dropped_lines()
        responses = [first]

        def get(url, **kwargs):
            if not responses:
                stop.set()
                return sse_response([])
            return responses.pop(0)

        session.get.side_effect = get
        original = stream._set_state
        stream._set_state = lambda state: (states.append(state), original(state))

        stream.run(stop)

        assert [state.value for state in states] == [
            'connecting', 'streaming', 'error', 'connecting', 'streaming', 'disconnected',
        ]
        assert 'connection reset by peer' in caplog.text
        assert loaded_bridge.cache.get(LIGHT_ID).brightness == 33.0
        first.close.assert_called_once()

    def test_malformed_batch_keeps_connection(self, loaded_bridge, session):
        stop = threading.Event()
        stream = EventStream(loaded_bridge, reconnect_delay=0)

        def lines():
            yield from ['id: 1:0', 'data: not json', '']
            yield from event_lines({'id': LIGHT_ID, 'type': 'light', 'on': {'on': False}})
            stop.set()

        response = sse_response([])
        response.iter_lines.return_value = lines()
        session.get.return_value = response

        stream.run(stop)

        assert loaded_bridge.cache.get(LIGHT_ID).on is False
        session.get.assert_called_once()
        assert stream.state == StreamState.DISCONNECTED
