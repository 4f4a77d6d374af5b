"""Tests for registry normalization and the folder-based registry."""
import json

import pytest

from registry import (
    FolderRegistry, InMemoryRegistry, EnableError, RegistryError, normalize_entry,
)


def make_component(root, slug, manifest=None, disabled=False):
    folder = root / (slug + (FolderRegistry.DISABLED_SUFFIX if disabled else ''))
    folder.mkdir(parents=True)
    if manifest is not None:
        (folder / FolderRegistry.MANIFEST).write_text(
            manifest if isinstance(manifest, str) else json.dumps(manifest))
    return folder


class TestNormalizeEntry:

    def test_missing_name_falls_back_to_file(self):
        entry = normalize_entry({'file': 'a/a.php', 'enabled': True})
        assert entry.name == 'a/a.php'

    def test_blank_name_falls_back_to_file(self):
        assert normalize_entry({'file': 'a/a.php', 'name': '  '}).name == 'a/a.php'

    def test_is_active_alias(self):
        assert normalize_entry({'file': 'a/a.php', 'is_active': 1}).enabled is True
        assert normalize_entry({'file': 'a/a.php'}).enabled is False

    def test_entry_without_file_is_rejected(self):
        with pytest.raises(RegistryError):
            normalize_entry({'name': 'Nameless'})


class TestFolderRegistry:

    def test_lists_folders_with_manifest_names(self, tmp_path):
        make_component(tmp_path, 'alpha', {'name': 'Alpha', 'main': 'alpha.php'})
        make_component(tmp_path, 'beta', disabled=True)

        entries = FolderRegistry(str(tmp_path)).list_components()

        assert [(e.file, e.name, e.enabled) for e in entries] == [
            ('alpha/alpha.php', 'Alpha', True),
            ('beta/beta.py', 'beta/beta.py', False),
        ]

    def test_missing_directory_raises(self, tmp_path):
        with pytest.raises(RegistryError):
            FolderRegistry(str(tmp_path / 'missing')).list_components()

    def test_disable_then_enable_renames_folder(self, tmp_path):
        make_component(tmp_path, 'alpha')
        registry = FolderRegistry(str(tmp_path))

        assert registry.disable(['alpha/alpha.py']) == []
        assert (tmp_path / ('alpha' + FolderRegistry.DISABLED_SUFFIX)).is_dir()
        assert not (tmp_path / 'alpha').exists()

        registry.enable('alpha/alpha.py')
        assert (tmp_path / 'alpha').is_dir()

    def test_enable_is_idempotent(self, tmp_path):
        make_component(tmp_path, 'alpha')
        FolderRegistry(str(tmp_path)).enable('alpha/alpha.py')
        assert (tmp_path / 'alpha').is_dir()

    def test_disable_already_disabled_is_not_a_failure(self, tmp_path):
        make_component(tmp_path, 'alpha', disabled=True)
        assert FolderRegistry(str(tmp_path)).disable(['alpha/alpha.py']) == []

    def test_broken_manifest_fails_to_enable(self, tmp_path):
        make_component(tmp_path, 'broken', '{not json', disabled=True)
        registry = FolderRegistry(str(tmp_path))

        # Still listed so it can be probed
        assert [e.file for e in registry.list_components()] == ['broken/broken.py']
        with pytest.raises(EnableError):
            registry.enable('broken/broken.py')
        assert not (tmp_path / 'broken').exists()

    def test_enable_unknown_component(self, tmp_path):
        with pytest.raises(EnableError):
            FolderRegistry(str(tmp_path)).enable('ghost/ghost.py')


class TestInMemoryRegistry:

    def test_broken_component_raises_on_enable(self):
        registry = InMemoryRegistry([{'file': 'a/a.php', 'enabled': False}], broken={'a/a.php': 'boom'})
        with pytest.raises(EnableError, match='boom'):
            registry.enable('a/a.php')
        assert registry.enabled_files() == []

    def test_disable_reports_unknown_files(self):
        registry = InMemoryRegistry([{'file': 'a/a.php', 'enabled': True}])
        assert registry.disable(['a/a.php', 'x/x.php']) == ['x/x.php']
        assert registry.enabled_files() == []
