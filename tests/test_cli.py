"""Tests for the command line interface."""
import json

import pytest
from click.testing import CliRunner

from main import cli


@pytest.fixture
def components_dir(tmp_path):
    root = tmp_path / 'components'
    (root / 'alpha').mkdir(parents=True)
    (root / 'broken').mkdir()
    (root / 'broken' / 'component.json').write_text('{"name": "Broken", ')
    (root / 'gamma').mkdir()
    (root / 'gamma' / 'component.json').write_text(json.dumps({'name': 'Gamma', 'main': 'main.py'}))
    return root


def invoke(components_dir, tmp_path, *args):
    base = ['--components-dir', str(components_dir), '--data-dir', str(tmp_path / 'data'), '--api-key', '']
    return CliRunner().invoke(cli, base + list(args))


def test_components(components_dir, tmp_path):
    result = invoke(components_dir, tmp_path, 'components')
    assert result.exit_code == 0
    assert 'Gamma (gamma/main.py)' in result.output
    assert '3 components' in result.output


def test_scan_finds_broken_component(components_dir, tmp_path):
    result = invoke(components_dir, tmp_path, 'scan')

    assert result.exit_code == 0, result.output
    assert 'Left disabled: broken/broken.py' in result.output
    assert (components_dir / 'alpha').is_dir()
    assert (components_dir / 'broken.disabled-rescuescan').is_dir()
    # Probing stopped at the conflict; gamma was still restored
    assert (components_dir / 'gamma').is_dir()

    status = invoke(components_dir, tmp_path, 'status')
    assert 'No snapshot pending.' in status.output
    assert 'broken/broken.py' in status.output


def test_scan_skip(components_dir, tmp_path):
    result = invoke(components_dir, tmp_path, 'scan', '--skip', 'broken/broken.py')
    assert result.exit_code == 0, result.output
    assert 'No conflicts found.' in result.output
    assert (components_dir / 'broken.disabled-rescuescan').is_dir()


def test_restore_without_snapshot(components_dir, tmp_path):
    result = invoke(components_dir, tmp_path, 'restore')
    assert result.exit_code == 0
    assert 'No snapshot found.' in result.output


def test_invalid_timeout_is_rejected(components_dir, tmp_path):
    result = invoke(components_dir, tmp_path, '--timeout', 'soon', 'components')
    assert result.exit_code != 0
