"""
Tests for the CLI commands.

Each test points --config at a file under tmp_path, so mapping commands
read and write a throwaway configuration. Bridge access is patched out.
"""

import json

import pytest
from unittest.mock import MagicMock, patch
from click.testing import CliRunner

from core.config import load_config, mappings_from_config, save_mappings
from loxone_hue import cli
from helpers import LIGHT_ID, ROOM_ID


@pytest.fixture(autouse=True)
def no_env_credentials(monkeypatch):
    monkeypatch.delenv('HUE_BRIDGE_IP', raising=False)
    monkeypatch.delenv('HUE_APPLICATION_KEY', raising=False)
    monkeypatch.delenv('LOXONE_HUE_CONFIG', raising=False)


@pytest.fixture
def configured(config_file, mappings):
    """Config file holding the standard mapping set."""
    config = load_config(config_file, environ={})
    config['hue'] = {'bridge_ip': '192.168.1.20', 'application_key': 'test-key'}
    save_mappings(config, mappings, config_file)
    return config_file


def invoke(config_file, *args, **kwargs):
    return CliRunner().invoke(cli, ['--config', str(config_file), *args], **kwargs)


def stored(config_file):
    return mappings_from_config(load_config(config_file, environ={}))


class TestMapCommand:
    """Test creating mappings."""

    def test_map_creates_mapping(self, config_file):
        result = invoke(config_file, 'map', 'kitchen', 'light', LIGHT_ID, '-n', 'Kitchen')

        assert result.exit_code == 0
        assert 'Mapping created' in result.output
        [mapping] = stored(config_file)
        assert (mapping.external_id, mapping.resource_type, mapping.resource_id) == ('kitchen', 'light', LIGHT_ID)
        assert mapping.name == 'Kitchen'
        assert mapping.enabled

    def test_map_rejects_duplicate(self, configured):
        result = invoke(configured, 'map', 'kitchen', 'light', 'light-other')

        assert result.exit_code == 1
        assert 'already mapped' in result.output
        assert len(stored(configured)) == 6

    def test_map_mood(self, config_file):
        result = invoke(config_file, 'map', 'living', 'scene', 'scene-1', '--mood', '3')
        assert result.exit_code == 0
        assert stored(config_file)[0].external_id == 'living_mood_3'

    def test_mood_requires_scene(self, config_file):
        result = invoke(config_file, 'map', 'living', 'group', ROOM_ID, '--mood', '1')
        assert result.exit_code == 2
        assert stored(config_file) == []

    def test_invalid_resource_type(self, config_file):
        result = invoke(config_file, 'map', 'kitchen', 'sensor', 'x')
        assert result.exit_code == 2

    def test_env_credentials_not_persisted(self, config_file, monkeypatch):
        monkeypatch.setenv('HUE_APPLICATION_KEY', 'secret')
        invoke(config_file, 'map', 'kitchen', 'light', LIGHT_ID)
        assert 'secret' not in config_file.read_text()


class TestMappingCommands:
    """Test listing, removing, enabling and disabling mappings."""

    def test_list_hides_disabled(self, configured):
        result = invoke(configured, 'mappings')
        assert result.exit_code == 0
        assert 'kitchen' in result.output
        assert 'hall' not in result.output

    def test_list_all(self, configured):
        result = invoke(configured, 'mappings', '--all')
        assert 'hall' in result.output

    def test_list_empty(self, config_file):
        result = invoke(config_file, 'mappings')
        assert 'No mappings configured yet.' in result.output

    def test_unmap_by_external_id(self, configured):
        result = invoke(configured, 'unmap', 'kitchen')
        assert result.exit_code == 0
        assert 'kitchen' not in [m.external_id for m in stored(configured)]

    def test_unmap_unknown_suggests(self, configured):
        result = invoke(configured, 'unmap', 'kitchn')
        assert result.exit_code == 1
        assert "Mapping 'kitchn' not found" in result.output
        assert 'kitchen' in result.output

    def test_disable_and_enable(self, configured):
        assert invoke(configured, 'disable', 'm1').exit_code == 0
        assert not next(m for m in stored(configured) if m.id == 'm1').enabled

        assert invoke(configured, 'enable', 'kitchen').exit_code == 0
        assert next(m for m in stored(configured) if m.id == 'm1').enabled

    def test_enable_conflicting_mapping(self, configured):
        invoke(configured, 'map', 'hall', 'light', 'light-new')
        result = invoke(configured, 'enable', 'm6')
        assert result.exit_code == 1
        assert 'already mapped' in result.output


class TestBackupCommands:
    """Test export and import of mapping backups."""

    def test_export_to_stdout(self, configured):
        result = invoke(configured, 'export-mappings')
        document = json.loads(result.output)
        assert document['version'] == '1.0'
        assert len(document['mappings']) == 6

    def test_export_legacy_keys(self, configured, tmp_path):
        backup = tmp_path / 'old-gateway.json'

        invoke(configured, 'export-mappings', '--legacy-keys', str(backup))

        entries = json.loads(backup.read_text())['mappings']
        assert {'loxone_id', 'hue_id', 'hue_type'} <= set(entries[0])
        assert 'external_id' not in entries[0]

        target = tmp_path / 'restored.json'
        result = invoke(target, 'import-mappings', str(backup), '--mode', 'replace')
        assert result.exit_code == 0
        assert stored(target) == stored(configured)

    def test_export_help_mentions_key_names(self, configured):
        result = invoke(configured, 'export-mappings', '--help')
        assert '--legacy-keys' in result.output
        assert 'loxone_id' in result.output

    def test_export_then_import_replace(self, configured, tmp_path):
        backup = tmp_path / 'backup.json'
        invoke(configured, 'export-mappings', str(backup))
        target = tmp_path / 'other.json'

        result = invoke(target, 'import-mappings', str(backup), '--mode', 'replace')

        assert result.exit_code == 0
        assert stored(target) == stored(configured)

    def test_import_merge_dry_run(self, configured, tmp_path):
        backup = tmp_path / 'backup.json'
        backup.write_text(json.dumps({'version': '1.0', 'mappings': [
            {'external_id': 'garden', 'resource_id': 'light-garden', 'resource_type': 'light'},
        ]}))

        result = invoke(configured, 'import-mappings', str(backup), '--dry-run')

        assert 'Would import 1 new, 0 updated' in result.output
        assert len(stored(configured)) == 6

    def test_replace_asks_first(self, configured, tmp_path):
        backup = tmp_path / 'backup.json'
        backup.write_text(json.dumps({'version': '1.0', 'mappings': []}))

        result = invoke(configured, 'import-mappings', str(backup), '--mode', 'replace', input='n\n')

        assert 'Import cancelled.' in result.output
        assert len(stored(configured)) == 6

    def test_invalid_backup(self, configured, tmp_path):
        backup = tmp_path / 'backup.json'
        backup.write_text(json.dumps({'mappings': []}))

        result = invoke(configured, 'import-mappings', str(backup))

        assert result.exit_code == 1
        assert 'Import rejected' in result.output


class TestSendCommand:
    """Test one-shot command execution."""

    @patch('commands.control.get_bridge')
    def test_send_executes(self, mock_get_bridge, configured):
        bridge = MagicMock()
        mock_get_bridge.return_value = bridge

        result = invoke(configured, 'send', 'SET', 'kitchen', 'ON')

        assert result.exit_code == 0
        assert f'light {LIGHT_ID}' in result.output
        bridge.set_light_state.assert_called_once()

    @patch('commands.control.get_bridge')
    def test_send_unmapped(self, mock_get_bridge, configured):
        mock_get_bridge.return_value = MagicMock()
        result = invoke(configured, 'send', 'SET', 'garage', 'ON')
        assert result.exit_code == 1
        assert 'no mapping found for target: garage' in result.output

    def test_send_without_bridge(self, config_file):
        result = invoke(config_file, 'send', 'SET', 'kitchen', 'ON')
        assert result.exit_code == 1
        assert 'not configured' in result.output


class TestResourceCommands:
    """Test bridge listing commands."""

    def test_lights_without_bridge(self, config_file):
        result = invoke(config_file, 'lights')
        assert result.exit_code == 0
        assert 'not configured' in result.output
