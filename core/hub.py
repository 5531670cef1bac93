"""Event hub: connected clients, status fan-out and command execution.

The set of connected clients is owned by a single thread. Every change to it
(register, unregister) and every broadcast goes through one bounded control
queue that only the owner thread consumes, so the set is never touched
concurrently and per-client message order is the order of enqueueing.

Fan-out never blocks: each client has its own bounded outbound queue, and a
client whose queue is full is disconnected instead of stalling the others.
"""

import itertools
import logging
import queue
import threading
import uuid

from core.controller import HueBridge
from core.errors import GatewayError, ParseError, ResolutionError
from core.resolver import MappingResolver
from models.command import (
    ACTION_MOOD,
    ACTION_SCENE,
    ACTION_SET,
    ACTION_STATUS,
    KIND_QUERY,
    Command,
    DeviceCommand,
    parse_message,
    parse_text,
    to_device_command,
)

logger = logging.getLogger(__name__)

ROLE_GENERIC = 'generic'
ROLE_LOXONE = 'loxone'

DEFAULT_CLIENT_QUEUE_SIZE = 100
CONTROL_QUEUE_SIZE = 1000

# How long a producer waits for room on a full control queue (seconds)
CONTROL_PUT_TIMEOUT = 1.0

# How often the owner thread checks the stop signal while idle (seconds)
IDLE_POLL_INTERVAL = 0.5

_STOP = object()
_CLOSED = object()


class Client:
    """A connected controller and its outbound message queue."""

    _ids = itertools.count(1)

    def __init__(self, client_id: str | None = None, role: str = ROLE_GENERIC,
                 maxsize: int = DEFAULT_CLIENT_QUEUE_SIZE):
        self.key = uuid.uuid4().hex
        self.id = client_id or f"client-{next(self._ids)}"
        self.role = role
        self.delivered = 0
        self._queue = queue.Queue(maxsize)
        self._closed = threading.Event()
        self._close_lock = threading.Lock()

    def __repr__(self) -> str:
        return f"Client(id={self.id!r}, role={self.role!r})"

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def offer(self, message: dict) -> bool:
        """Enqueue a message without blocking. Returns False if closed or full."""
        if self.closed:
            return False
        try:
            self._queue.put_nowait(message)
        except queue.Full:
            return False
        return True

    def next_message(self, timeout: float | None = None) -> dict | None:
        """Wait for the next outbound message.

        Returns:
            The message, or None once the client is closed

        Raises:
            queue.Empty: If nothing arrived within timeout
        """
        if self.closed:
            return None
        message = self._queue.get(timeout=timeout)
        if message is _CLOSED or self.closed:
            return None
        self.delivered += 1
        return message

    def close(self) -> bool:
        """Close the outbound queue. Returns True only for the first call."""
        with self._close_lock:
            if self._closed.is_set():
                return False
            self._closed.set()
        try:
            self._queue.put_nowait(_CLOSED)
        except queue.Full:
            # The writer finds the closed flag on its next get
            pass
        return True


def status_message(device: str, state: dict) -> dict:
    return {'type': 'status', 'device': device, 'state': state}


def ack_message(target: str) -> dict:
    return {'type': 'ack', 'target': target}


def error_message(message: str) -> dict:
    return {'type': 'error', 'message': message}


class Hub:
    """Owns the connected clients and executes controller commands."""

    def __init__(self, resolver: MappingResolver, bridge: HueBridge,
                 allow_direct_ids: bool = False,
                 client_queue_size: int = DEFAULT_CLIENT_QUEUE_SIZE,
                 control_queue_size: int = CONTROL_QUEUE_SIZE):
        self.resolver = resolver
        self.bridge = bridge
        self.allow_direct_ids = allow_direct_ids
        self.client_queue_size = client_queue_size
        self._control = queue.Queue(control_queue_size)
        # Only the owner thread touches _clients; _snapshot is what others read
        self._clients: dict[str, Client] = {}
        self._snapshot: tuple[Client, ...] = ()
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()

    # Owner thread

    def start(self, stop_event: threading.Event | None = None) -> threading.Thread:
        """Run the owner loop on a daemon thread."""
        if stop_event is not None:
            self._stop_event = stop_event
        self._thread = threading.Thread(target=self.run, name='event-hub', daemon=True)
        self._thread.start()
        return self._thread

    def run(self):
        """Consume the control queue until stopped, then close every client."""
        logger.debug("Event hub started")
        while True:
            try:
                item = self._control.get(timeout=IDLE_POLL_INTERVAL)
            except queue.Empty:
                if self._stop_event.is_set():
                    break
                continue

            try:
                if item is _STOP:
                    break
                self._handle(item)
            finally:
                self._control.task_done()

        for client in list(self._clients.values()):
            client.close()
        self._clients.clear()
        self._snapshot = ()
        logger.debug("Event hub stopped")

    def stop(self, timeout: float | None = 5.0):
        """Stop the owner loop and wait for it to exit."""
        self._stop_event.set()
        if self._thread is None:
            return
        try:
            self._control.put(_STOP, timeout=CONTROL_PUT_TIMEOUT)
        except queue.Full:
            logger.warning("Control queue full while stopping; relying on stop signal")
        self._thread.join(timeout)

    def drain(self):
        """Block until every queued control message has been handled."""
        if self._thread is None or not self._thread.is_alive():
            raise RuntimeError("event hub is not running")
        self._control.join()

    def _handle(self, item: tuple):
        op, value = item
        if op == 'register':
            self._clients[value.key] = value
            logger.info("Client connected",
                        extra={'fields': {'client': value.id, 'role': value.role}})
        elif op == 'unregister':
            client = self._clients.pop(value.key, None)
            if value.close() or client is not None:
                logger.info("Client disconnected", extra={'fields': {'client': value.id}})
        elif op == 'broadcast':
            self._fan_out(value)
        self._snapshot = tuple(self._clients.values())

    def _fan_out(self, message: dict):
        for key, client in list(self._clients.items()):
            if client.offer(message):
                continue
            logger.warning("Client queue full, disconnecting",
                           extra={'fields': {'client': client.id, 'pending': client.pending}})
            del self._clients[key]
            client.close()

    def _submit(self, op: str, value) -> bool:
        try:
            self._control.put((op, value), timeout=CONTROL_PUT_TIMEOUT)
        except queue.Full:
            logger.warning("Control queue full, dropping %s", op)
            return False
        return True

    # Client set

    def register(self, client_id: str | None = None, role: str = ROLE_GENERIC) -> Client:
        """Create a client and hand it to the owner thread."""
        client = Client(client_id, role, self.client_queue_size)
        self._submit('register', client)
        return client

    def unregister(self, client: Client):
        """Remove a client. Safe to call more than once."""
        if client.closed:
            return
        if not self._submit('unregister', client):
            client.close()

    def clients(self) -> tuple[Client, ...]:
        """Snapshot of the connected clients."""
        return self._snapshot

    # Broadcasts

    def publish_status(self, device: str, state: dict):
        """Broadcast a status message to every connected client."""
        self._submit('broadcast', status_message(device, state))

    def publish(self, event):
        """Turn a NormalizedEvent into a status broadcast.

        The device is named by the external id mapped to the resource. A
        grouped light is named after the room or zone that owns it. Unmapped
        resources are broadcast under their bridge id.
        """
        state = self.bridge.cache.peek(event.resource_id)
        if state is None:
            return

        device = None
        if state.type == 'grouped_light' and state.owner:
            device = self.resolver.external_id_for(state.owner)
        if device is None:
            device = self.resolver.external_id_for(event.resource_id) or event.resource_id

        self.publish_status(device, state.to_dict())

    # Commands

    def dispatch(self, raw: str | bytes, client: Client) -> dict:
        """Handle one inbound message and reply to the sender only.

        Every message yields exactly one reply: ack, error or status.
        """
        try:
            command = parse_message(raw)
            result = self.execute(command)
        except GatewayError as e:
            logger.warning("Command failed: %s", e.technical_message,
                           extra={'fields': {'client': client.id}})
            reply = error_message(e.user_message)
        else:
            if command.kind == KIND_QUERY:
                reply = status_message(command.target, result['state'])
            else:
                reply = ack_message(command.target)

        if not client.offer(reply):
            logger.warning("Could not deliver reply, disconnecting",
                           extra={'fields': {'client': client.id}})
            self.unregister(client)
        return reply

    def execute_text(self, line: str) -> dict:
        """Parse and execute a single text-grammar command."""
        return self.execute(parse_text(line))

    def execute(self, command: Command) -> dict:
        """Execute a parsed command against the bridge.

        Returns:
            Dict with target, action, resource_id, resource_type and, for
            status queries, state

        Raises:
            ParseError: If the action does not apply to the mapped resource
            ResolutionError: If the target has no enabled mapping
            BridgeError: If the bridge call fails
        """
        if command.action == ACTION_SET:
            resource_id, resource_type = self._resolve(command.target)
            self._apply(command.target, resource_id, resource_type, to_device_command(command))
            result = self._result(command, resource_id, resource_type)

        elif command.action == ACTION_SCENE:
            scene = command.parameters['sceneId']
            resource_id = self._resolve_scene(scene)
            self.bridge.activate_scene(resource_id)
            result = self._result(command, resource_id, 'scene')

        elif command.action == ACTION_MOOD:
            mood = command.parameters['moodNumber']
            resolved = self.resolver.resolve_mood(command.target, mood)
            if resolved is None:
                raise ResolutionError(command.target, mood)
            resource_id, resource_type = resolved
            if mood == 0:
                self._apply(command.target, resource_id, resource_type, DeviceCommand(on=False))
            else:
                self.bridge.activate_scene(resource_id)
            result = self._result(command, resource_id, resource_type)

        elif command.action == ACTION_STATUS:
            resource_id, resource_type = self._resolve(command.target)
            if resource_type == 'scene':
                raise ParseError(f"scenes have no status: {command.target}", command.target)
            state = self.bridge.get_resource_state(resource_id, resource_type)
            result = self._result(command, resource_id, resource_type)
            result['state'] = state.to_dict()

        else:
            raise ParseError(f"unsupported action: {command.action}", command.action)

        logger.info("Command executed", extra={'fields': {
            'target': command.target,
            'action': command.action,
            'resource_id': result['resource_id'],
            'resource_type': result['resource_type'],
        }})
        return result

    def _result(self, command: Command, resource_id: str, resource_type: str) -> dict:
        return {
            'target': command.target,
            'action': command.action,
            'resource_id': resource_id,
            'resource_type': resource_type,
        }

    def _resolve(self, target: str) -> tuple[str, str]:
        resolved = self.resolver.resolve_target(target)
        if resolved is not None:
            return resolved
        if self.allow_direct_ids:
            logger.debug("No mapping for %s, using it as a light id", target)
            return target, 'light'
        raise ResolutionError(target)

    def _resolve_scene(self, scene: str) -> str:
        resolved = self.resolver.resolve_target(scene)
        if resolved is not None and resolved[1] == 'scene':
            return resolved[0]
        if resolved is None and self.allow_direct_ids:
            return scene
        raise ResolutionError(scene)

    def _apply(self, target: str, resource_id: str, resource_type: str, command: DeviceCommand):
        if resource_type == 'light':
            self.bridge.set_light_state(resource_id, command)
        elif resource_type == 'group':
            self.bridge.set_group_state(resource_id, command)
        else:
            raise ParseError(f"cannot set state on a {resource_type}: {target}", target)
