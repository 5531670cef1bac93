"""HueBridge class for Hue Bridge API v2 interactions.

This module contains the bridge adapter used by the gateway: bulk and
single-resource fetches, state changes for lights, groups and scenes, and
the resource state cache that the event stream keeps current.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import replace

import requests
from requests.packages.urllib3.exceptions import InsecureRequestWarning

from core.cache import NormalizedEvent, ResourceCache, ResourceState
from core.errors import BridgeError, CacheMiss
from models.command import DeviceCommand

logger = logging.getLogger(__name__)

# Bound on every bridge call, so a stuck bridge cannot stall command dispatch
REQUEST_TIMEOUT = 10

# Disable SSL warnings for self-signed certificate
requests.packages.urllib3.disable_warnings(InsecureRequestWarning)


@contextmanager
def _resource_shape(what: str):
    """Report a resource body missing fields or carrying wrong types as a BridgeError."""
    try:
        yield
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise BridgeError(f"Unexpected Hue API response shape for {what}", body=repr(e)) from e


class HueBridge:
    """Manages operations with a Philips Hue Bridge using API v2."""

    def __init__(self, bridge_ip: str | None = None, application_key: str | None = None,
                 session: requests.Session | None = None, cache: ResourceCache | None = None):
        """Initialise HueBridge.

        Args:
            bridge_ip: Bridge IP address
            application_key: Key obtained when pairing with the bridge
            session: Optional pre-built session (tests inject a mock)
            cache: Optional resource cache to share
        """
        self.bridge_ip = bridge_ip
        self.application_key = application_key
        self.session = session or requests.Session()
        self.session.verify = False  # Accept self-signed certificate
        self.cache = cache or ResourceCache()
        self._listeners = []
        self._listeners_lock = threading.Lock()

    @property
    def base_url(self) -> str | None:
        return f"https://{self.bridge_ip}" if self.bridge_ip else None

    @property
    def headers(self) -> dict:
        return {"hue-application-key": self.application_key or ''}

    def is_configured(self) -> bool:
        return bool(self.bridge_ip and self.application_key)

    def _request(self, method: str, endpoint: str, data: dict | None = None) -> list:
        """Make a request to the Hue Bridge API v2.

        Returns:
            The 'data' list of the v2 response envelope

        Raises:
            BridgeError: On connection failure, HTTP error or unexpected body
        """
        if not self.is_configured():
            raise BridgeError("Hue Bridge is not configured")

        url = f"{self.base_url}/clip/v2{endpoint}"

        try:
            response = self.session.request(method, url, headers=self.headers, json=data,
                                            timeout=REQUEST_TIMEOUT, verify=False)
        except requests.exceptions.RequestException as e:
            raise BridgeError(f"Hue Bridge request failed: {e}") from e

        if response.status_code >= 400:
            raise BridgeError(f"Hue API error: {response.status_code}",
                              status_code=response.status_code, body=response.text)

        try:
            result = response.json()
        except ValueError as e:
            raise BridgeError("Hue API returned invalid JSON", body=response.text) from e

        # v2 API returns {errors: [], data: [...]}
        if not isinstance(result, dict) or not isinstance(result.get('data'), list):
            raise BridgeError("Unexpected Hue API response shape", body=response.text)

        errors = result.get('errors') or []
        if errors and not result['data']:
            first = errors[0] if isinstance(errors[0], dict) else {}
            description = first.get('description', 'unknown error')
            raise BridgeError(f"Hue API error: {description}", body=response.text)

        return result['data']

    def get_bridge_info(self) -> dict:
        """Get the bridge resource (used to test the connection)."""
        result = self._request('GET', '/resource/bridge')
        return result[0] if result else {}

    def get_lights(self) -> list[dict]:
        """Get all lights and refresh their cached state."""
        lights = self._request('GET', '/resource/light')
        with _resource_shape('light'):
            self.cache.load(lights, 'light')
        logger.debug("Fetched %d lights from bridge", len(lights))
        return lights

    def get_grouped_lights(self) -> list[dict]:
        """Get all grouped_light resources and refresh their cached state."""
        grouped = self._request('GET', '/resource/grouped_light')
        with _resource_shape('grouped_light'):
            self.cache.load(grouped, 'grouped_light')
        return grouped

    def get_rooms(self) -> list[dict]:
        """Get all rooms (v2 API)."""
        return self._request('GET', '/resource/room')

    def get_zones(self) -> list[dict]:
        """Get all zones (v2 API)."""
        return self._request('GET', '/resource/zone')

    def get_groups(self) -> list[dict]:
        """Get rooms and zones, each annotated with its grouped_light id.

        Zones are optional on older bridges; a failed zone fetch is logged
        and the rooms are still returned.
        """
        grouped = self.get_grouped_lights()
        aggregate_by_owner = {(g.get('owner') or {}).get('rid'): g['id'] for g in grouped}

        rooms = self.get_rooms()
        try:
            zones = self.get_zones()
        except BridgeError as e:
            logger.warning("Failed to fetch zones: %s", e)
            zones = []

        with _resource_shape('room or zone'):
            groups = [{**group, 'grouped_light': aggregate_by_owner.get(group['id'])}
                      for group in rooms + zones]

        logger.debug("Fetched %d groups from bridge", len(groups))
        return groups

    def get_scenes(self) -> list[dict]:
        """Get all scenes (v2 API)."""
        return self._request('GET', '/resource/scene')

    def reload(self) -> dict:
        """Bulk fetch lights and grouped lights into the cache."""
        self.get_lights()
        self.get_grouped_lights()
        return self.cache.info()

    def _fetch_state(self, resource_type: str, resource_id: str) -> ResourceState:
        result = self._request('GET', f'/resource/{resource_type}/{resource_id}')
        if not result:
            raise BridgeError(f"{resource_type} not found: {resource_id}", status_code=404)
        with _resource_shape(resource_type):
            state = ResourceState.from_resource({**result[0], 'type': resource_type})
        previous = self.cache.peek(resource_id)
        if previous is not None:
            state = replace(state, reachable=previous.reachable)
        self.cache.put(state)
        return state

    def get_light(self, light_id: str) -> ResourceState:
        """Get a light's state, fetching it from the bridge on a cache miss."""
        try:
            return self.cache.get(light_id)
        except CacheMiss:
            logger.debug("Cache miss for light %s, fetching", light_id)
            return self._fetch_state('light', light_id)

    def find_grouped_light(self, group_id: str) -> str:
        """Find the grouped_light resource owned by a room or zone.

        The grouped_light list is fetched on every call; the id is not
        assumed to survive a bridge-side change.

        Raises:
            BridgeError: If no grouped_light belongs to the group, or the list is malformed
        """
        for grouped in self._request('GET', '/resource/grouped_light'):
            with _resource_shape('grouped_light'):
                if (grouped.get('owner') or {}).get('rid') != group_id:
                    continue
                grouped_id = grouped['id']
            if not isinstance(grouped_id, str) or not grouped_id:
                raise BridgeError(f"grouped_light for group {group_id} has no valid id: {grouped_id!r}")
            return grouped_id
        raise BridgeError(f"grouped_light not found for group: {group_id}", status_code=404)

    def get_group_state(self, group_id: str) -> ResourceState:
        """Get the aggregate state of a room or zone."""
        grouped_id = self.find_grouped_light(group_id)
        try:
            return self.cache.get(grouped_id)
        except CacheMiss:
            return self._fetch_state('grouped_light', grouped_id)

    def get_resource_state(self, resource_id: str, resource_type: str) -> ResourceState:
        """Get the state of a mapped resource (light or group).

        Raises:
            BridgeError: For scenes, which carry no state, or bridge failures
        """
        if resource_type == 'light':
            return self.get_light(resource_id)
        if resource_type == 'group':
            return self.get_group_state(resource_id)
        raise BridgeError(f"no state available for {resource_type} resources")

    def set_light_state(self, light_id: str, command: DeviceCommand):
        """Set the state of a light (v2 API)."""
        self._request('PUT', f'/resource/light/{light_id}', command.to_payload())
        logger.debug("Light %s state updated: %s", light_id, command)

    def set_group_state(self, group_id: str, command: DeviceCommand):
        """Set the state of every light in a room or zone via its grouped_light."""
        grouped_id = self.find_grouped_light(group_id)
        self._request('PUT', f'/resource/grouped_light/{grouped_id}', command.to_payload())
        logger.debug("Group %s (grouped_light %s) state updated: %s", group_id, grouped_id, command)

    def activate_scene(self, scene_id: str):
        """Activate a scene by its ID (v2 API - uses recall on scene)."""
        self._request('PUT', f'/resource/scene/{scene_id}', {'recall': {'action': 'active'}})
        logger.debug("Scene %s activated", scene_id)

    def subscribe(self, listener):
        """Register a callable receiving every NormalizedEvent."""
        with self._listeners_lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener):
        with self._listeners_lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def apply_event_record(self, record: dict) -> list[NormalizedEvent]:
        """Apply an event-stream record to the cache and notify listeners."""
        events = self.cache.apply_record(record)
        if not events:
            return events

        with self._listeners_lock:
            listeners = list(self._listeners)
        for event in events:
            for listener in listeners:
                listener(event)
        return events
