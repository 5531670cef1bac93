"""Resolution of Loxone external ids to Hue resources.

The resolver keeps an index over the enabled mappings only. The index is an
immutable snapshot: writers build a new one and swap the reference under a
lock, readers just grab the current reference. A lookup therefore sees
either the old or the new index, never a half-built one, and never waits on
a rebuild for longer than the swap.
"""

import logging
import threading
from dataclasses import dataclass, field
from types import MappingProxyType

from models.mapping import Mapping, mood_key

logger = logging.getLogger(__name__)

# Resource types that can be switched off by mood 0
MOOD_OFF_TYPES = ('light', 'group')

# Resource type a mood > 0 must point at
MOOD_SCENE_TYPE = 'scene'


@dataclass(frozen=True)
class _Index:
    by_id: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    by_external: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    by_resource: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))


def _build_index(mappings) -> _Index:
    """Index the enabled mappings; later entries win on a shared key."""
    by_id = {}
    by_external = {}
    by_resource = {}

    for mapping in mappings:
        if not mapping.enabled:
            continue
        previous = by_external.get(mapping.external_id)
        if previous is not None and previous.id != mapping.id:
            logger.warning(
                "Duplicate enabled mapping for external id %s: %s replaces %s",
                mapping.external_id, mapping.id, previous.id,
            )
            by_id.pop(previous.id, None)
            if by_resource.get(previous.resource_id) is previous:
                del by_resource[previous.resource_id]
        by_id[mapping.id] = mapping
        by_external[mapping.external_id] = mapping
        by_resource[mapping.resource_id] = mapping

    return _Index(
        by_id=MappingProxyType(by_id),
        by_external=MappingProxyType(by_external),
        by_resource=MappingProxyType(by_resource),
    )


class MappingResolver:
    """Index of enabled mappings keyed by external id and by resource id."""

    def __init__(self, mappings: list[Mapping] | None = None):
        self._lock = threading.Lock()
        self._index = _build_index(mappings or [])

    def rebuild(self, mappings: list[Mapping]):
        """Replace the whole index from a full mapping list."""
        index = _build_index(mappings)
        with self._lock:
            self._index = index
        logger.debug("Mapping index rebuilt with %d enabled mappings", len(index.by_id))

    def upsert(self, mapping: Mapping):
        """Add or update a single mapping (a disabled mapping is dropped)."""
        with self._lock:
            current = [m for m in self._index.by_id.values() if m.id != mapping.id]
            current.append(mapping)
            self._index = _build_index(current)

    def remove(self, mapping_id: str) -> bool:
        """Remove a mapping by id. Returns True if it was indexed."""
        with self._lock:
            if mapping_id not in self._index.by_id:
                return False
            remaining = [m for m in self._index.by_id.values() if m.id != mapping_id]
            self._index = _build_index(remaining)
            return True

    def mappings(self) -> list[Mapping]:
        """Return the enabled mappings currently indexed."""
        return list(self._index.by_id.values())

    def get(self, external_id: str) -> Mapping | None:
        return self._index.by_external.get(external_id)

    def resolve_target(self, external_id: str) -> tuple[str, str] | None:
        """Resolve an external id to (resource_id, resource_type), or None."""
        mapping = self._index.by_external.get(external_id)
        if mapping is None:
            return None
        return mapping.resource_id, mapping.resource_type

    def resolve_mood(self, external_id: str, mood_number: int) -> tuple[str, str] | None:
        """Resolve a mood for a target.

        Mood 0 means 'off' and resolves the target's own mapping, which must
        be a light or group. Mood N > 0 resolves the '<target>_mood_<N>'
        mapping, which must be a scene.
        """
        index = self._index

        if mood_number == 0:
            mapping = index.by_external.get(external_id)
            if mapping is None or mapping.resource_type not in MOOD_OFF_TYPES:
                return None
            return mapping.resource_id, mapping.resource_type

        if mood_number < 0:
            return None

        mapping = index.by_external.get(mood_key(external_id, mood_number))
        if mapping is None or mapping.resource_type != MOOD_SCENE_TYPE:
            return None
        return mapping.resource_id, mapping.resource_type

    def external_id_for(self, resource_id: str) -> str | None:
        """Reverse lookup used to name devices in status broadcasts."""
        mapping = self._index.by_resource.get(resource_id)
        return mapping.external_id if mapping else None
