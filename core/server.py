"""Realtime endpoint for controllers.

Controllers connect with a websocket to ws://host:port/ws?type=loxone&id=<id>
and exchange JSON messages (or text-grammar lines) with the hub. Each
connection gets a reader (the handler thread) and a writer thread that
drains the client's outbound queue and sends a keep-alive ping whenever it
has been idle for the ping interval.

A plain HTTP GET carrying ?cmd=<text command> runs one command
synchronously and answers with JSON instead of upgrading the connection.
"""

import json
import logging
import queue
import threading
from http import HTTPStatus
from urllib.parse import parse_qs, urlsplit

from websockets.exceptions import ConnectionClosed
from websockets.sync.server import serve

from core.errors import BridgeError, GatewayError, ParseError, ResolutionError
from core.hub import ROLE_GENERIC, ROLE_LOXONE, Client, Hub

logger = logging.getLogger(__name__)

DEFAULT_PING_INTERVAL = 30

# Largest inbound websocket message accepted (bytes)
MAX_MESSAGE_SIZE = 512 * 1024

# Error type to HTTP status for ?cmd= requests
ERROR_STATUS = (
    (ParseError, HTTPStatus.BAD_REQUEST),
    (ResolutionError, HTTPStatus.NOT_FOUND),
    (BridgeError, HTTPStatus.BAD_GATEWAY),
)


def parse_query(path: str) -> dict[str, str]:
    """First value of each query parameter in a request path."""
    return {k: v[0] for k, v in parse_qs(urlsplit(path).query, keep_blank_values=True).items()}


def client_identity(path: str) -> tuple[str | None, str]:
    """Client id and role announced in the connection URL."""
    query = parse_query(path)
    role = ROLE_LOXONE if query.get('type', '').lower() == ROLE_LOXONE else ROLE_GENERIC
    return query.get('id') or None, role


def error_status(error: GatewayError) -> HTTPStatus:
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return HTTPStatus.INTERNAL_SERVER_ERROR


class GatewayServer:
    """Websocket server wired to the event hub."""

    def __init__(self, hub: Hub, host: str = '0.0.0.0', port: int = 8080,
                 ping_interval: float = DEFAULT_PING_INTERVAL):
        self.hub = hub
        self.host = host
        self.port = port
        self.ping_interval = ping_interval
        self._server = None

    def serve_forever(self):
        """Listen and serve until shutdown() is called."""
        self._server = serve(
            self.handle_connection,
            self.host,
            self.port,
            process_request=self.process_request,
            ping_interval=None,  # keep-alive is sent by the writer thread
            max_size=MAX_MESSAGE_SIZE,
        )
        logger.info("Gateway listening", extra={'fields': {'host': self.host, 'port': self.port}})
        with self._server:
            self._server.serve_forever()

    def shutdown(self):
        if self._server is not None:
            self._server.shutdown()

    def handle_command(self, line: str) -> tuple[HTTPStatus, dict]:
        """Run one text command for the HTTP endpoint.

        Returns:
            Tuple of (HTTP status, JSON body)
        """
        try:
            result = self.hub.execute_text(line)
        except GatewayError as e:
            status = error_status(e)
            logger.warning("HTTP command failed: %s", e.technical_message,
                           extra={'fields': {'status': int(status)}})
            return status, {'error': e.user_message}

        body = {
            'status': 'ok',
            'target': result['target'],
            'action': result['action'],
            'resourceId': result['resource_id'],
            'resourceType': result['resource_type'],
        }
        if 'state' in result:
            body['state'] = result['state']
        return HTTPStatus.OK, body

    def process_request(self, connection, request):
        """Answer ?cmd= requests over plain HTTP; let everything else upgrade."""
        query = parse_query(request.path)
        if 'cmd' not in query:
            return None

        status, body = self.handle_command(query['cmd'])
        response = connection.respond(status, json.dumps(body))
        del response.headers['Content-Type']
        response.headers['Content-Type'] = 'application/json'
        return response

    def handle_connection(self, connection):
        """Reader side of a websocket connection."""
        client_id, role = client_identity(connection.request.path)
        client = self.hub.register(client_id, role)

        writer = threading.Thread(target=self._write_loop, args=(connection, client),
                                  name=f"writer-{client.id}", daemon=True)
        writer.start()

        try:
            for message in connection:
                self.hub.dispatch(message, client)
        except ConnectionClosed as e:
            logger.debug("Connection closed for %s: %s", client.id, e)
        finally:
            self.hub.unregister(client)
            writer.join(timeout=1.0)

    def _write_loop(self, connection, client: Client):
        try:
            while True:
                try:
                    message = client.next_message(timeout=self.ping_interval)
                except queue.Empty:
                    connection.ping()
                    continue
                if message is None:
                    break
                connection.send(json.dumps(message))
        except ConnectionClosed:
            logger.debug("Writer for %s stopped: connection closed", client.id)
        finally:
            # Ends the reader when the hub dropped the client
            connection.close()
