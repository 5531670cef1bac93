"""Utility functions for the gateway CLI.

- display_width: Terminal column width of labels containing arrows/emoji
- resource_name / create_name_lookup: Names of v2 API resources
- similarity_score / find_similar_strings: Fuzzy matching for suggestions
"""

# Rendered two columns wide: the mapping arrow and emoji above this code point
WIDE_CHARS = frozenset('→')
EMOJI_START = 0x1F300

VARIATION_SELECTOR = '\ufe0f'


def display_width(text: str) -> int:
    """Number of terminal columns text occupies."""
    return sum(
        2 if char in WIDE_CHARS or ord(char) > EMOJI_START else 1
        for char in text
        if char != VARIATION_SELECTOR
    )


def resource_name(resource: dict, default: str = 'Unknown') -> str:
    """Return the metadata name of a v2 API resource."""
    return (resource.get('metadata') or {}).get('name') or default


def create_name_lookup(resources: list[dict]) -> dict[str, str]:
    """Map resource id to display name for a list of v2 API resources."""
    return {r['id']: resource_name(r) for r in resources}


def _ordered_matches(needle: str, haystack: str) -> int:
    """Count characters of needle found in haystack in the same order."""
    position = 0
    matches = 0
    for char in needle:
        found = haystack.find(char, position)
        if found == -1:
            # Nothing after this point can match either
            break
        matches += 1
        position = found + 1
    return matches


def similarity_score(s1: str, s2: str) -> int:
    """Score how closely two strings match, ignoring case.

    Returns:
        100 for an exact match, 80 when one is a prefix of the other, 60 when
        one contains the other, otherwise up to 50 in proportion to the
        characters matched in order (scores of 20 or less count as 0)
    """
    a, b = s1.lower(), s2.lower()
    if a == b:
        return 100
    if a.startswith(b) or b.startswith(a):
        return 80
    if a in b or b in a:
        return 60

    matches = _ordered_matches(a, b)
    score = int(matches / max(len(a), len(b)) * 50) if matches else 0
    return score if score > 20 else 0


def find_similar_strings(target: str, candidates: list[str], limit: int = 5) -> list[str]:
    """Candidates that resemble target, best match first."""
    scored = [(similarity_score(target, c), c) for c in candidates]
    ranked = sorted((item for item in scored if item[0] > 0), key=lambda item: item[0], reverse=True)
    return [c for _, c in ranked[:limit]]
