"""Loxone-to-Hue mappings and their backup documents.

A mapping ties the identifier a Loxone controller uses in its commands
(the external id) to a Hue resource (light, group or scene). Mappings live
in the configuration file; the resolver only keeps an index over them.

Mood scenes follow a naming convention: the scene for mood N of target
'living' is mapped under the external id 'living_mood_N'.
"""

import uuid
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone

from core.errors import DuplicateMappingError

RESOURCE_TYPES = ('light', 'group', 'scene')

BACKUP_VERSION = '1.0'

IMPORT_MODES = ('replace', 'merge')

# Field names accepted from older gateway versions and camelCase tools
_LEGACY_KEYS = {
    'loxone_id': 'external_id',
    'hue_id': 'resource_id',
    'hue_type': 'resource_type',
    'externalId': 'external_id',
    'resourceId': 'resource_id',
    'resourceType': 'resource_type',
}

# Keys written for older gateway versions, which read nothing else
_OLD_GATEWAY_KEYS = {
    'external_id': 'loxone_id',
    'resource_id': 'hue_id',
    'resource_type': 'hue_type',
}


_TRUE_STRINGS = ('true', 'yes', 'on', '1')
_FALSE_STRINGS = ('false', 'no', 'off', '0')


def parse_flag(value, default: bool = True) -> bool:
    """Read a boolean written by hand or by another tool.

    Accepts real booleans, 0/1 and the strings true/false, yes/no, on/off
    in any case. None means the key was absent.

    Raises:
        ValueError: For anything else
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    raise ValueError(f"enabled must be true or false: {value!r}")


def new_mapping_id() -> str:
    return str(uuid.uuid4())


def mood_key(external_id: str, mood_number: int) -> str:
    """External id under which the scene for a mood is mapped."""
    return f"{external_id}_mood_{mood_number}"


@dataclass(frozen=True)
class Mapping:
    """Association between a Loxone external id and a Hue resource."""
    id: str
    external_id: str
    resource_id: str
    resource_type: str
    name: str = ''
    enabled: bool = True
    description: str = ''

    def __post_init__(self):
        if self.resource_type not in RESOURCE_TYPES:
            raise ValueError(
                f"resource_type must be one of {', '.join(RESOURCE_TYPES)}: {self.resource_type!r}"
            )
        if not self.external_id:
            raise ValueError("external_id is required")
        if not self.resource_id:
            raise ValueError("resource_id is required")

    @classmethod
    def from_dict(cls, data: dict) -> 'Mapping':
        """Build a mapping from a config/backup entry.

        Accepts both the current snake_case keys and the keys used by older
        gateway versions (loxone_id/hue_id/hue_type). Entries without an id
        get an empty id; callers assign one where needed.
        """
        values = {}
        for key, value in data.items():
            values[_LEGACY_KEYS.get(key, key)] = value

        return cls(
            id=str(values.get('id') or ''),
            external_id=str(values.get('external_id') or ''),
            resource_id=str(values.get('resource_id') or ''),
            resource_type=str(values.get('resource_type') or ''),
            name=str(values.get('name') or ''),
            enabled=parse_flag(values.get('enabled')),
            description=str(values.get('description') or ''),
        )

    def to_dict(self, legacy: bool = False) -> dict:
        """Entry as written to config and backup files.

        With legacy=True the identifiers use the keys older gateway versions
        read (loxone_id/hue_id/hue_type); from_dict accepts both forms.
        """
        values = asdict(self)
        if not legacy:
            return values
        return {_OLD_GATEWAY_KEYS.get(key, key): value for key, value in values.items()}


def load_mappings(entries: list[dict]) -> list[Mapping]:
    """Convert config entries to Mapping objects, assigning missing ids."""
    mappings = []
    for entry in entries:
        mapping = Mapping.from_dict(entry)
        if not mapping.id:
            mapping = replace(mapping, id=new_mapping_id())
        mappings.append(mapping)
    return mappings


def find_conflict(mappings: list[Mapping], candidate: Mapping) -> Mapping | None:
    """Return the enabled mapping that shares candidate's external id, if any."""
    if not candidate.enabled:
        return None
    for mapping in mappings:
        if (mapping.id != candidate.id and mapping.enabled
                and mapping.external_id == candidate.external_id):
            return mapping
    return None


def check_unique(mappings: list[Mapping]):
    """Reject a mapping list holding two enabled entries for one external id.

    Raises:
        DuplicateMappingError: On the first duplicate found
    """
    seen = {}
    for mapping in mappings:
        if not mapping.enabled:
            continue
        if mapping.external_id in seen:
            raise DuplicateMappingError(mapping.external_id, seen[mapping.external_id])
        seen[mapping.external_id] = mapping.id


def add_mapping(mappings: list[Mapping], mapping: Mapping) -> list[Mapping]:
    """Return a new list with mapping added (or replaced, when the id exists).

    Raises:
        DuplicateMappingError: If another enabled mapping uses the external id
    """
    conflict = find_conflict(mappings, mapping)
    if conflict:
        raise DuplicateMappingError(mapping.external_id, conflict.id)

    result = [m for m in mappings if m.id != mapping.id]
    result.append(mapping)
    return result


def remove_mapping(mappings: list[Mapping], mapping_id: str) -> tuple[list[Mapping], bool]:
    """Return (remaining mappings, whether anything was removed)."""
    result = [m for m in mappings if m.id != mapping_id]
    return result, len(result) < len(mappings)


def find_mapping(mappings: list[Mapping], key: str) -> Mapping | None:
    """Find a mapping by id, falling back to external id."""
    for mapping in mappings:
        if mapping.id == key:
            return mapping
    for mapping in mappings:
        if mapping.external_id == key:
            return mapping
    return None


def export_mappings(mappings: list[Mapping], legacy: bool = False) -> dict:
    """Build a versioned backup document for the given mappings."""
    return {
        'version': BACKUP_VERSION,
        'created_at': datetime.now(timezone.utc).isoformat(),
        'mappings': [m.to_dict(legacy=legacy) for m in mappings],
    }


def import_mappings(existing: list[Mapping], backup: dict, mode: str) -> tuple[list[Mapping], dict]:
    """Apply a backup document to the existing mappings.

    Modes:
    - replace: the backup becomes the full mapping set; entries without an
      id get a new one
    - merge: entries are matched by external id; matches are updated in
      place (keeping the existing id), the rest are appended

    Args:
        existing: Current mappings
        backup: Backup document ({version, created_at, mappings})
        mode: 'replace' or 'merge'

    Returns:
        Tuple of (resulting mappings, stats dict with imported/updated/total)

    Raises:
        ValueError: If the document or mode is invalid
        DuplicateMappingError: If the result holds duplicate enabled external ids
    """
    if mode not in IMPORT_MODES:
        raise ValueError(f"invalid mode: {mode!r} (use 'replace' or 'merge')")
    if not isinstance(backup, dict) or not backup.get('version'):
        raise ValueError("invalid backup format: missing version")

    entries = backup.get('mappings') or []
    if not isinstance(entries, list) or not all(isinstance(e, dict) for e in entries):
        raise ValueError("invalid backup format: mappings must be a list of objects")
    incoming = [Mapping.from_dict(e) for e in entries]
    imported = updated = 0

    if mode == 'replace':
        result = [m if m.id else replace(m, id=new_mapping_id()) for m in incoming]
        imported = len(result)
    else:
        result = list(existing)
        index_by_external = {m.external_id: i for i, m in enumerate(result)}
        for mapping in incoming:
            idx = index_by_external.get(mapping.external_id)
            if idx is not None:
                result[idx] = replace(mapping, id=result[idx].id)
                updated += 1
            else:
                if not mapping.id:
                    mapping = replace(mapping, id=new_mapping_id())
                index_by_external[mapping.external_id] = len(result)
                result.append(mapping)
                imported += 1

    check_unique(result)

    return result, {'imported': imported, 'updated': updated, 'total': len(result)}
