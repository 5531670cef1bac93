"""Tests for utility functions in models/utils.py"""

from models.utils import (
    create_name_lookup,
    display_width,
    find_similar_strings,
    resource_name,
    similarity_score,
)


class TestDisplayWidth:
    """Tests for display_width function."""

    def test_ascii_text(self):
        """ASCII text should have width equal to length."""
        assert display_width("hello") == 5
        assert display_width("") == 0

    def test_arrow_symbol(self):
        """Arrow symbol should count as 2 columns."""
        assert display_width("→") == 2

    def test_mixed_content(self):
        """Mixed ASCII and arrows should sum correctly."""
        assert display_width("kitchen → light") == 16

    def test_high_unicode(self):
        """High Unicode characters (>0x1F300) should count as 2."""
        assert display_width("\U0001F600") == 2
        assert display_width("\U0001F4A1 on") == 5

    def test_variation_selector_ignored(self):
        assert display_width("\U0001F4A1\ufe0f") == 2


class TestNames:
    """Tests for resource name helpers."""

    def test_resource_name(self):
        assert resource_name({'id': 'x', 'metadata': {'name': 'Kitchen'}}) == 'Kitchen'

    def test_resource_name_default(self):
        assert resource_name({'id': 'x'}) == 'Unknown'
        assert resource_name({'id': 'x', 'metadata': None}, default='x') == 'x'

    def test_create_name_lookup(self):
        resources = [
            {'id': 'a', 'metadata': {'name': 'Kitchen'}},
            {'id': 'b', 'metadata': {}},
        ]
        assert create_name_lookup(resources) == {'a': 'Kitchen', 'b': 'Unknown'}


class TestSimilarity:
    """Tests for fuzzy matching used in suggestions."""

    def test_exact_match_ignores_case(self):
        assert similarity_score('Kitchen', 'kitchen') == 100

    def test_prefix_and_substring(self):
        assert similarity_score('kit', 'kitchen') == 80
        assert similarity_score('chen', 'kitchen') == 60

    def test_sequence_match(self):
        assert similarity_score('kitchn', 'kitchen') == 42

    def test_no_match(self):
        assert similarity_score('xyz', 'kitchen') == 0

    def test_find_similar_strings_sorted(self):
        assert find_similar_strings('kitchn', ['kitchen', 'garage', 'kit']) == ['kit', 'kitchen']

    def test_find_similar_strings_limit(self):
        candidates = ['map', 'maps', 'mapping', 'mappings']
        assert len(find_similar_strings('map', candidates, limit=2)) == 2
