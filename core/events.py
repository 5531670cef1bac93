"""Hue Bridge event stream ingestion.

The bridge pushes resource changes as server-sent events on
/eventstream/clip/v2. Each SSE message carries a JSON array of events,
and every event holds a 'data' array of change records:

    data: [{"type": "update", "data": [{"id": "...", "type": "light", "on": {"on": true}}]}]

EventStream keeps one connection open, applies every record to the bridge
cache and reconnects after a fixed delay whenever the stream fails.
"""

import json
import logging
import threading
from enum import Enum

import requests

from core.controller import REQUEST_TIMEOUT, HueBridge
from core.errors import StreamError

logger = logging.getLogger(__name__)

EVENT_STREAM_PATH = '/eventstream/clip/v2'

# Fixed delay before reconnecting after a stream failure (seconds)
RECONNECT_DELAY = 5


class StreamState(Enum):
    DISCONNECTED = 'disconnected'
    CONNECTING = 'connecting'
    STREAMING = 'streaming'
    ERROR = 'error'


def iter_sse_payloads(lines):
    """Yield the payload of each SSE message from an iterable of lines.

    'data:' lines are buffered until a blank line ends the message. Multiple
    data lines are joined with a newline. Comment, id and event lines are
    ignored.
    """
    buffer = []
    for line in lines:
        if line is None:
            continue
        if isinstance(line, bytes):
            line = line.decode('utf-8', errors='replace')
        line = line.rstrip('\r')

        if not line:
            if buffer:
                yield '\n'.join(buffer)
                buffer = []
            continue

        if line.startswith('data:'):
            data = line[5:]
            buffer.append(data[1:] if data.startswith(' ') else data)

    if buffer:
        yield '\n'.join(buffer)


def parse_batch(payload: str) -> list[dict]:
    """Extract the change records from one SSE payload.

    Raises:
        ValueError: If the payload is not a JSON array of events
    """
    batch = json.loads(payload)
    if not isinstance(batch, list):
        raise ValueError("event batch is not a list")

    records = []
    for event in batch:
        if not isinstance(event, dict):
            raise ValueError("event is not an object")
        data = event.get('data') or []
        if not isinstance(data, list):
            raise ValueError("event data is not a list")
        records.extend(r for r in data if isinstance(r, dict))
    return records


class EventStream:
    """Long-lived connection to the bridge event stream."""

    def __init__(self, bridge: HueBridge, reconnect_delay: float = RECONNECT_DELAY):
        self.bridge = bridge
        self.reconnect_delay = reconnect_delay
        self.state = StreamState.DISCONNECTED
        self.last_error: str | None = None
        self._lock = threading.Lock()
        self._response = None
        self._stop_event: threading.Event | None = None
        self._thread: threading.Thread | None = None

    @property
    def url(self) -> str:
        return f"https://{self.bridge.bridge_ip}{EVENT_STREAM_PATH}"

    def _set_state(self, state: StreamState):
        if state != self.state:
            logger.debug("Event stream %s -> %s", self.state.value, state.value)
        self.state = state

    def start(self, stop_event: threading.Event) -> threading.Thread:
        """Run the ingestion loop on a daemon thread."""
        self._thread = threading.Thread(target=self.run, args=(stop_event,),
                                        name='hue-events', daemon=True)
        self._thread.start()
        return self._thread

    def stop(self):
        """Cancel the loop and close the active response immediately."""
        if self._stop_event is not None:
            self._stop_event.set()
        with self._lock:
            response = self._response
            self._response = None
        if response is not None:
            response.close()
        self._set_state(StreamState.DISCONNECTED)

    def run(self, stop_event: threading.Event):
        """Connect, stream and reconnect until stop_event is set."""
        self._stop_event = stop_event

        while not stop_event.is_set():
            self._set_state(StreamState.CONNECTING)
            try:
                self._stream(stop_event)
            except StreamError as e:
                self._fail(e, stop_event)
            except requests.exceptions.RequestException as e:
                self._fail(StreamError(f"event stream request failed: {e}"), stop_event)
            except Exception as e:
                # Closing the response from stop() can surface as any error
                # inside the read loop
                if stop_event.is_set():
                    break
                logger.exception("Unexpected event stream failure")
                self._fail(StreamError(str(e)), stop_event)

            if stop_event.is_set():
                break
            stop_event.wait(self.reconnect_delay)

        self._set_state(StreamState.DISCONNECTED)
        logger.info("Event stream stopped")

    def _fail(self, error: StreamError, stop_event: threading.Event):
        if stop_event.is_set():
            return
        self._set_state(StreamState.ERROR)
        self.last_error = error.user_message
        logger.error("Event stream error, reconnecting in %ss: %s",
                     self.reconnect_delay, error.technical_message)

    def _stream(self, stop_event: threading.Event):
        if not self.bridge.is_configured():
            raise StreamError("Hue Bridge is not configured")

        headers = {**self.bridge.headers, 'Accept': 'text/event-stream'}
        # No read timeout: the stream is idle for as long as nothing changes
        response = self.bridge.session.get(self.url, headers=headers, stream=True,
                                           timeout=(REQUEST_TIMEOUT, None), verify=False)
        with self._lock:
            self._response = response

        try:
            if response.status_code != 200:
                raise StreamError(f"unexpected event stream status: {response.status_code}")
            content_type = response.headers.get('Content-Type', '')
            if not content_type.startswith('text/event-stream'):
                raise StreamError(f"unexpected event stream content type: {content_type}")

            self._set_state(StreamState.STREAMING)
            self.last_error = None
            logger.info("Connected to Hue event stream", extra={'fields': {'bridge': self.bridge.bridge_ip}})

            for payload in iter_sse_payloads(response.iter_lines(decode_unicode=True)):
                if stop_event.is_set():
                    return
                self.handle_payload(payload)
        finally:
            with self._lock:
                if self._response is response:
                    self._response = None
            response.close()

        if not stop_event.is_set():
            raise StreamError("event stream ended")

    def handle_payload(self, payload: str) -> int:
        """Apply one SSE payload to the cache. Returns the number of events produced.

        A malformed batch is logged and skipped; the connection stays open.
        """
        try:
            records = parse_batch(payload)
        except ValueError as e:
            logger.warning("Skipping malformed event batch: %s", e)
            return 0

        count = 0
        for record in records:
            try:
                count += len(self.bridge.apply_event_record(record))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed event record %s: %s", record.get('id'), e)
        return count
