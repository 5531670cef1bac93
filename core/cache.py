"""Last-known state of bridge resources.

The cache holds one ResourceState per light and grouped light. It is
filled by bulk fetches and kept current by records from the bridge event
stream. States are immutable: every update swaps in a new value under the
cache lock, so a reader never sees a half-applied record.
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime

from core.errors import CacheMiss

logger = logging.getLogger(__name__)

CACHED_TYPES = ('light', 'grouped_light')


@dataclass(frozen=True)
class ResourceState:
    """Cached state of a light or grouped light."""
    id: str
    type: str = 'light'
    owner: str | None = None
    on: bool = False
    brightness: float = 0.0
    color_temperature: int | None = None
    color: tuple[float, float] | None = None
    reachable: bool = True

    @classmethod
    def from_resource(cls, resource: dict) -> 'ResourceState':
        """Build a state from a CLIP v2 light or grouped_light resource."""
        changes = record_changes(resource)
        return cls(
            id=resource['id'],
            type=resource.get('type', 'light'),
            owner=(resource.get('owner') or {}).get('rid'),
            **changes,
        )

    def to_dict(self) -> dict:
        """State as sent to controllers in status messages."""
        return {
            'on': self.on,
            'brightness': self.brightness,
            'colorTemperature': self.color_temperature,
            'color': list(self.color) if self.color else None,
            'reachable': self.reachable,
        }


@dataclass(frozen=True)
class NormalizedEvent:
    """A bridge-agnostic change record produced from a bridge event."""
    resource_id: str
    resource_type: str
    changed_fields: dict = field(default_factory=dict)


def record_changes(record: dict) -> dict:
    """Extract the state fields present in a resource or event record.

    Only fields present in the record are returned, so applying the result
    leaves every other cached field untouched.
    """
    changes = {}

    on = record.get('on')
    if isinstance(on, dict) and 'on' in on:
        changes['on'] = bool(on['on'])

    dimming = record.get('dimming')
    if isinstance(dimming, dict) and 'brightness' in dimming:
        changes['brightness'] = float(dimming['brightness'])

    ct = record.get('color_temperature')
    if isinstance(ct, dict) and 'mirek' in ct:
        mirek = ct['mirek'] if ct.get('mirek_valid', True) else None
        changes['color_temperature'] = int(mirek) if mirek is not None else None

    colour = record.get('color')
    if isinstance(colour, dict) and isinstance(colour.get('xy'), dict):
        xy = colour['xy']
        changes['color'] = (float(xy['x']), float(xy['y']))

    return changes


class ResourceCache:
    """Thread-safe map of resource id to ResourceState."""

    def __init__(self):
        self._lock = threading.Lock()
        self._states: dict[str, ResourceState] = {}
        self.last_updated: datetime | None = None

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, resource_id: str) -> bool:
        return resource_id in self._states

    def get(self, resource_id: str) -> ResourceState:
        """Return the cached state.

        Raises:
            CacheMiss: If the resource has not been fetched yet
        """
        with self._lock:
            state = self._states.get(resource_id)
        if state is None:
            raise CacheMiss(resource_id)
        return state

    def peek(self, resource_id: str) -> ResourceState | None:
        with self._lock:
            return self._states.get(resource_id)

    def put(self, state: ResourceState):
        with self._lock:
            self._states[state.id] = state

    def load(self, resources: list[dict], resource_type: str) -> list[ResourceState]:
        """Replace every cached entry of one type from a bulk fetch."""
        states = [ResourceState.from_resource({**r, 'type': resource_type}) for r in resources]

        with self._lock:
            previous = self._states
            kept = {rid: s for rid, s in previous.items() if s.type != resource_type}
            for state in states:
                old = previous.get(state.id)
                if old is not None:
                    # Reachability comes from zigbee_connectivity, not from the light
                    state = replace(state, reachable=old.reachable)
                kept[state.id] = state
            self._states = kept
            self.last_updated = datetime.now()

        logger.debug("Cached %d %s resources", len(states), resource_type)
        return states

    def apply_record(self, record: dict) -> list[NormalizedEvent]:
        """Apply one event record and return the resulting events.

        Records for resources that are not cached are dropped. A
        zigbee_connectivity record updates the reachability of every light
        owned by the record's device.
        """
        resource_id = record.get('id')
        resource_type = record.get('type')

        if resource_type == 'zigbee_connectivity':
            return self._apply_connectivity(record)

        with self._lock:
            state = self._states.get(resource_id)
            if state is None:
                return []
            changes = record_changes(record)
            if changes:
                self._states[resource_id] = replace(state, **changes)

        return [NormalizedEvent(resource_id, state.type, changes)]

    def _apply_connectivity(self, record: dict) -> list[NormalizedEvent]:
        device_id = (record.get('owner') or {}).get('rid')
        status = record.get('status')
        if not device_id or status is None:
            return []

        reachable = status == 'connected'
        events = []
        with self._lock:
            for rid, state in list(self._states.items()):
                if state.type == 'light' and state.owner == device_id:
                    self._states[rid] = replace(state, reachable=reachable)
                    events.append(NormalizedEvent(rid, state.type, {'reachable': reachable}))
        return events

    def info(self) -> dict:
        """Counts per resource type and the time of the last bulk fetch."""
        with self._lock:
            states = list(self._states.values())
        counts = {t: sum(1 for s in states if s.type == t) for t in CACHED_TYPES}
        return {
            'last_updated': self.last_updated.isoformat() if self.last_updated else None,
            'counts': counts,
        }
