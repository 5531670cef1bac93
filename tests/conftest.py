"""Pytest configuration and fixtures for gateway tests."""

import pytest
from pathlib import Path
from unittest.mock import MagicMock

from core.controller import HueBridge
from core.resolver import MappingResolver
from helpers import LIGHT_ID, ROOM_ID, SCENE_ID
from models.mapping import Mapping


@pytest.fixture
def project_root():
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def mappings():
    """Typical mapping set: a light, a room, a scene and two mood scenes."""
    return [
        Mapping('m1', 'kitchen', LIGHT_ID, 'light', name='Kitchen'),
        Mapping('m2', 'living', ROOM_ID, 'group', name='Living room'),
        Mapping('m3', 'relax', SCENE_ID, 'scene'),
        Mapping('m4', 'living_mood_1', 'scene-bright', 'scene'),
        Mapping('m5', 'living_mood_2', SCENE_ID, 'scene'),
        Mapping('m6', 'hall', 'light-hall', 'light', enabled=False),
    ]


@pytest.fixture
def resolver(mappings):
    return MappingResolver(mappings)


@pytest.fixture
def session():
    """Mock requests.Session; tests set request.return_value/side_effect."""
    return MagicMock()


@pytest.fixture
def bridge(session):
    return HueBridge('192.168.1.20', 'test-key', session=session)


@pytest.fixture
def config_file(tmp_path):
    return tmp_path / 'config.json'
