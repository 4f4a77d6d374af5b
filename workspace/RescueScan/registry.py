"""
Component registry adapters for RescueScan

The scanner only talks to the host through ComponentRegistry. Raw
entries are normalized here so the rest of the code sees strict types.
"""
import json
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional


class RegistryError(Exception):
    """The registry could not be reached or refused an operation"""


class EnableError(RegistryError):
    """A component failed to enable (missing, or broken at load time)"""


@dataclass
class RegistryEntry:
    file: str
    name: str
    enabled: bool


def normalize_entry(raw: Dict[str, Any]) -> RegistryEntry:
    """Turn a loosely typed registry record into a RegistryEntry"""
    file = str(raw.get('file') or '').strip()
    if not file:
        raise RegistryError(f"Registry entry without a file: {raw!r}")

    name = raw.get('name')
    name = str(name).strip() if name is not None else ''

    if 'enabled' in raw:
        enabled = raw['enabled']
    else:
        enabled = raw.get('is_active', False)

    return RegistryEntry(file=file, name=name or file, enabled=bool(enabled))


class ComponentRegistry(ABC):
    """What the scanner needs from the host application"""

    @abstractmethod
    def list_components(self) -> List[RegistryEntry]:
        """All installed components, in the host's order"""

    @abstractmethod
    def enable(self, file: str) -> None:
        """Enable one component; raise EnableError when it cannot be loaded"""

    @abstractmethod
    def disable(self, files: Iterable[str]) -> List[str]:
        """Disable components; return the files that could not be disabled"""


class FolderRegistry(ComponentRegistry):
    """
    Components are sub-directories of components_dir.

    A disabled component's folder carries DISABLED_SUFFIX. An optional
    component.json manifest provides "name" and "main"; the component's
    file is "<folder>/<main>".
    """

    DISABLED_SUFFIX = '.disabled-rescuescan'
    MANIFEST = 'component.json'

    def __init__(self, components_dir: str):
        self.components_dir = Path(components_dir)

    def list_components(self) -> List[RegistryEntry]:
        if not self.components_dir.is_dir():
            raise RegistryError(f"Components directory not found: {self.components_dir}")

        entries = []
        try:
            folders = sorted(p for p in self.components_dir.iterdir() if p.is_dir())
        except OSError as e:
            raise RegistryError(f"Cannot read components directory: {e}") from e

        for folder in folders:
            slug = folder.name
            enabled = not slug.endswith(self.DISABLED_SUFFIX)
            if not enabled:
                slug = slug[:-len(self.DISABLED_SUFFIX)]

            try:
                manifest = self._read_manifest(folder)
            except ValueError:
                # Broken manifests still show up so they can be probed
                manifest = {}

            main = manifest.get('main') or f"{slug}.py"
            entries.append(normalize_entry({
                'file': f"{slug}/{main}",
                'name': manifest.get('name'),
                'enabled': enabled,
            }))
        return entries

    def enable(self, file: str) -> None:
        slug = self._slug(file)
        active = self.components_dir / slug
        disabled = self.components_dir / (slug + self.DISABLED_SUFFIX)

        if active.is_dir():
            return
        if not disabled.is_dir():
            raise EnableError(f"Component folder not found: {slug}")

        try:
            self._read_manifest(disabled)
        except ValueError as e:
            raise EnableError(f"{slug}: {e}") from e

        try:
            os.rename(disabled, active)
        except OSError as e:
            raise EnableError(f"Failed to enable {slug}: {e}") from e

    def disable(self, files: Iterable[str]) -> List[str]:
        failed = []
        for file in files:
            slug = self._slug(file)
            active = self.components_dir / slug
            disabled = self.components_dir / (slug + self.DISABLED_SUFFIX)

            if not active.is_dir():
                # Already disabled, or gone
                continue
            if disabled.exists():
                failed.append(file)
                continue
            try:
                os.rename(active, disabled)
            except OSError:
                failed.append(file)
        return failed

    def _slug(self, file: str) -> str:
        slug = file.split('/', 1)[0].strip()
        if not slug or slug in ('.', '..'):
            raise EnableError(f"Cannot determine component folder for: {file!r}")
        return slug

    def _read_manifest(self, folder: Path) -> Dict[str, Any]:
        manifest_path = folder / self.MANIFEST
        if not manifest_path.exists():
            return {}
        try:
            with open(manifest_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ValueError(f"Invalid manifest: {e}") from e
        if not isinstance(data, dict):
            raise ValueError("Invalid manifest: expected an object")
        return data


class InMemoryRegistry(ComponentRegistry):
    """Registry backed by a list of dicts; used for dry runs and tests"""

    def __init__(self, entries: Iterable[Dict[str, Any]], broken: Optional[Dict[str, str]] = None):
        self._entries = [normalize_entry(e) for e in entries]
        self.broken = dict(broken or {})
        self.calls = []

    def list_components(self) -> List[RegistryEntry]:
        self.calls.append(('list',))
        return [RegistryEntry(e.file, e.name, e.enabled) for e in self._entries]

    def enable(self, file: str) -> None:
        self.calls.append(('enable', file))
        entry = self._find(file)
        if entry is None:
            raise EnableError(f"Unknown component: {file}")
        if file in self.broken:
            raise EnableError(self.broken[file])
        entry.enabled = True

    def disable(self, files: Iterable[str]) -> List[str]:
        files = list(files)
        self.calls.append(('disable', tuple(files)))
        failed = []
        for file in files:
            entry = self._find(file)
            if entry is None:
                failed.append(file)
            else:
                entry.enabled = False
        return failed

    def enabled_files(self) -> List[str]:
        return [e.file for e in self._entries if e.enabled]

    def _find(self, file: str) -> Optional[RegistryEntry]:
        for entry in self._entries:
            if entry.file == file:
                return entry
        return None
