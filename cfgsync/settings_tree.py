"""Reading and writing the live configuration tree and its exported copy."""

import json
import logging
import shutil
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol

from .errors import ValidationError


# Settings document key -> file name inside a configuration root
SETTINGS_FILES = {
    "app": "app.json",
    "appearance": "appearance.json",
    "hotkeys": "hotkeys.json",
    "core_plugins": "core-plugins.json",
    "community_plugins": "community-plugins.json",
}
THEMES_INDEX = "themes.json"
SNIPPETS_INDEX = "snippets.json"
PLUGIN_DATA_FILE = "data.json"


class SettingsIO(Protocol):
    """Collaborator that moves settings between the live tree and the repository."""

    def export_settings(self) -> List[str]:
        ...

    def import_settings(self) -> List[str]:
        ...

    def read_settings(self) -> Dict[str, Any]:
        ...

    def write_settings(self, settings: Dict[str, Any]) -> List[str]:
        ...


def strip_sensitive(value: Any, sensitive_keys: Iterable[str]) -> Any:
    """Remove every dictionary key whose name matches a sensitive key (case-insensitive)."""
    keys = {key.lower() for key in sensitive_keys}

    def _strip(item: Any) -> Any:
        if isinstance(item, dict):
            return {k: _strip(v) for k, v in item.items() if k.lower() not in keys}
        if isinstance(item, list):
            return [_strip(v) for v in item]
        return item

    return _strip(value)


def restore_sensitive(incoming: Any, existing: Any, sensitive_keys: Iterable[str]) -> Any:
    """Carry sensitive keys from the existing local document into an incoming one."""
    keys = {key.lower() for key in sensitive_keys}

    def _restore(new: Any, old: Any) -> Any:
        if not isinstance(new, dict) or not isinstance(old, dict):
            return new
        merged = {k: _restore(v, old.get(k)) for k, v in new.items()}
        for k, v in old.items():
            if k.lower() in keys and k not in merged:
                merged[k] = v
        return merged

    return _restore(incoming, existing)


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON in {path}: {e}") from e


def _write_json(path: Path, data: Any) -> bool:
    """Write ``data`` as JSON; False if the file already had that content."""
    content = json.dumps(data, indent=2, ensure_ascii=False) + "\n"
    if path.exists() and path.read_text(encoding="utf-8") == content:
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return True


class SettingsTree:
    """
    Default settings collaborator for a directory of JSON settings files.

    The live root holds ``app.json``, ``appearance.json``, ``hotkeys.json``,
    ``core-plugins.json``, ``community-plugins.json``,
    ``plugins/<id>/data.json`` and the ``themes/`` and ``snippets/`` folders.
    The export root inside the repository mirrors the JSON files and adds
    ``themes.json`` and ``snippets.json`` listing installed themes and snippets.
    """

    def __init__(self, settings_root: Optional[Path], export_root: Path,
                 sensitive_keys: Iterable[str] = (), excluded_files: Iterable[str] = ()):
        self.settings_root = Path(settings_root) if settings_root else None
        self.export_root = Path(export_root)
        self.sensitive_keys = list(sensitive_keys)
        self.excluded_files = set(excluded_files)
        self.logger = logging.getLogger('cfgsync.settings_tree')

    @classmethod
    def from_config(cls, config) -> "SettingsTree":
        return cls(config.settings_root, config.export_dir,
                   sensitive_keys=config.sensitive_keys, excluded_files=config.excluded_files)

    def _read_tree(self, root: Path, live: bool) -> Dict[str, Any]:
        settings: Dict[str, Any] = {"plugins": {}, "themes": [], "snippets": []}

        for key, filename in SETTINGS_FILES.items():
            path = root / filename
            if path.is_file():
                settings[key] = _read_json(path)

        plugins_dir = root / "plugins"
        if plugins_dir.is_dir():
            for plugin_dir in sorted(plugins_dir.iterdir()):
                data_file = plugin_dir / PLUGIN_DATA_FILE
                if data_file.is_file():
                    settings["plugins"][plugin_dir.name] = _read_json(data_file)

        if live:
            themes_dir = root / "themes"
            if themes_dir.is_dir():
                settings["themes"] = sorted(p.name for p in themes_dir.iterdir() if p.is_dir())
            snippets_dir = root / "snippets"
            if snippets_dir.is_dir():
                settings["snippets"] = sorted(p.stem for p in snippets_dir.glob("*.css"))
        else:
            for key, filename in (("themes", THEMES_INDEX), ("snippets", SNIPPETS_INDEX)):
                path = root / filename
                if path.is_file():
                    settings[key] = _read_json(path)

        return settings

    def read_settings(self) -> Dict[str, Any]:
        """Live settings with sensitive keys removed."""
        if self.settings_root is None or not self.settings_root.is_dir():
            return {"plugins": {}, "themes": [], "snippets": []}
        return strip_sensitive(self._read_tree(self.settings_root, live=True), self.sensitive_keys)

    def export_settings(self) -> List[str]:
        """
        Write the live settings into the export root.

        Returns:
            Relative paths of the files that changed
        """
        if self.settings_root is None:
            return []

        settings = self.read_settings()
        written: List[str] = []

        for key, filename in SETTINGS_FILES.items():
            if key in settings and _write_json(self.export_root / filename, settings[key]):
                written.append(filename)

        for plugin_id, data in settings["plugins"].items():
            relative = f"plugins/{plugin_id}/{PLUGIN_DATA_FILE}"
            if _write_json(self.export_root / relative, data):
                written.append(relative)

        exported_plugins = self.export_root / "plugins"
        if exported_plugins.is_dir():
            for plugin_dir in exported_plugins.iterdir():
                if plugin_dir.is_dir() and plugin_dir.name not in settings["plugins"]:
                    shutil.rmtree(plugin_dir)
                    written.append(f"plugins/{plugin_dir.name}/{PLUGIN_DATA_FILE}")

        if _write_json(self.export_root / THEMES_INDEX, settings["themes"]):
            written.append(THEMES_INDEX)
        if _write_json(self.export_root / SNIPPETS_INDEX, settings["snippets"]):
            written.append(SNIPPETS_INDEX)

        if written:
            self.logger.info(f"Exported {len(written)} settings file(s)")
        return written

    def write_settings(self, settings: Dict[str, Any]) -> List[str]:
        """
        Write a settings document into the live root.

        Excluded files are skipped and sensitive keys already present in the
        live files are preserved.

        Returns:
            Relative paths of the files that changed
        """
        if self.settings_root is None:
            return []

        written: List[str] = []

        for key, filename in SETTINGS_FILES.items():
            if key not in settings or filename in self.excluded_files:
                continue
            path = self.settings_root / filename
            existing = _read_json(path) if path.is_file() else None
            data = restore_sensitive(settings[key], existing, self.sensitive_keys)
            if _write_json(path, data):
                written.append(filename)

        for plugin_id, data in (settings.get("plugins") or {}).items():
            relative = f"plugins/{plugin_id}/{PLUGIN_DATA_FILE}"
            if relative in self.excluded_files or plugin_id in self.excluded_files:
                continue
            path = self.settings_root / relative
            existing = _read_json(path) if path.is_file() else None
            if _write_json(path, restore_sensitive(data, existing, self.sensitive_keys)):
                written.append(relative)

        if written:
            self.logger.info(f"Applied {len(written)} settings file(s) to {self.settings_root}")
        return written

    def import_settings(self) -> List[str]:
        """Apply the exported settings from the repository to the live root."""
        if not self.export_root.is_dir():
            return []
        return self.write_settings(self._read_tree(self.export_root, live=False))
