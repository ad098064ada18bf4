"""Settings profile lifecycle: create, update, delete, import, export and apply."""

import copy
import json
import logging
import os
import threading
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ..errors import ConfigurationError, ValidationError
from .merger import ProfileMerger
from .models import CommunitySettings, PluginEntry, ProfileDiff, ProfileSettings, SettingsProfile

_UNSET = object()


def generate_profile_id() -> str:
    return f"profile-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


def profile_settings_from_tree(tree: Dict[str, Any]) -> ProfileSettings:
    """Convert a settings document read from a configuration tree into profile settings."""
    enabled_plugins = list(tree.get("community_plugins") or [])
    plugin_data = tree.get("plugins") or {}

    plugin_ids = enabled_plugins + [pid for pid in plugin_data if pid not in enabled_plugins]
    plugins = [
        PluginEntry(id=pid, enabled=pid in enabled_plugins, settings=copy.deepcopy(plugin_data.get(pid) or {}))
        for pid in plugin_ids
    ]

    core = tree.get("core_plugins") or {}
    if isinstance(core, list):
        core_plugins = {pid: {"enabled": True} for pid in core}
    else:
        core_plugins = {
            pid: value if isinstance(value, dict) else {"enabled": bool(value)}
            for pid, value in core.items()
        }

    return ProfileSettings(
        plugins=plugins,
        appearance=copy.deepcopy(tree.get("appearance") or {}),
        hotkeys=copy.deepcopy(tree.get("hotkeys") or {}),
        core_plugins=core_plugins,
        community=CommunitySettings(plugins=enabled_plugins, themes=list(tree.get("themes") or []))
    )


def tree_from_profile_settings(settings: ProfileSettings) -> Dict[str, Any]:
    """Convert profile settings back into a settings document for the configuration tree."""
    known = {plugin.id for plugin in settings.plugins}
    enabled = [plugin.id for plugin in settings.plugins if plugin.enabled]
    enabled += [pid for pid in settings.community.plugins if pid not in known]

    return {
        "appearance": copy.deepcopy(settings.appearance),
        "hotkeys": copy.deepcopy(settings.hotkeys),
        "core_plugins": {
            pid: bool(value.get("enabled", True)) if isinstance(value, dict) else bool(value)
            for pid, value in settings.core_plugins.items()
        },
        "community_plugins": enabled,
        "plugins": {plugin.id: copy.deepcopy(plugin.settings) for plugin in settings.plugins if plugin.settings},
    }


class ProfileStore:
    """JSON file holding every profile and the active profile id."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Dict[str, Any]:
        if not self.path.is_file():
            return {"active_profile": None, "profiles": []}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ValidationError(f"Profile store {self.path} is corrupted: {e}") from e
        return {
            "active_profile": data.get("active_profile"),
            "profiles": data.get("profiles") or [],
        }

    def save(self, data: Dict[str, Any]) -> None:
        """Write through a temporary file so a crash never leaves a partial document."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(".tmp")
        temp_path.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        os.replace(temp_path, self.path)


class ProfileManager:
    """
    Manages settings profiles persisted in a ProfileStore.

    Inheritance is validated on every create, update and import so that the
    stored profiles never contain a self-reference, a cycle or an unknown
    parent.
    """

    def __init__(self, store: ProfileStore, settings_io=None, cloud_client=None,
                 merger: Optional[ProfileMerger] = None, clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.settings_io = settings_io
        self.cloud_client = cloud_client
        self.merger = merger or ProfileMerger()
        self._clock = clock
        self._lock = threading.RLock()
        self.logger = logging.getLogger('cfgsync.profiles')

        data = self.store.load()
        self._active_profile: Optional[str] = data["active_profile"]
        self._profiles: Dict[str, SettingsProfile] = {}
        for item in data["profiles"]:
            profile = SettingsProfile.from_dict(item)
            self._profiles[profile.id] = profile

    def _save(self) -> None:
        self.store.save({
            "active_profile": self._active_profile,
            "profiles": [profile.to_dict() for profile in self._profiles.values()],
        })

    @property
    def active_profile_id(self) -> Optional[str]:
        return self._active_profile

    def list_profiles(self) -> List[SettingsProfile]:
        return list(self._profiles.values())

    def get_profile(self, profile_id: str) -> SettingsProfile:
        try:
            return self._profiles[profile_id]
        except KeyError:
            raise KeyError(f"Profile not found: {profile_id}") from None

    def _validate(self, profile: SettingsProfile) -> None:
        candidates = {**self._profiles, profile.id: profile}
        self.merger.lineage(profile, candidates)

    def _snapshot_settings(self) -> ProfileSettings:
        if self.settings_io is None:
            return ProfileSettings()
        return profile_settings_from_tree(self.settings_io.read_settings())

    def create_profile(self, name: str, description: str = "", inherit_from: Optional[str] = None,
                       settings: Optional[ProfileSettings] = None) -> SettingsProfile:
        """
        Create a profile, snapshotting the live settings when ``settings`` is omitted.

        Raises:
            ValueError: Empty name
            ValidationError: Unknown parent profile
        """
        if not name or not name.strip():
            raise ValueError("Profile name must not be empty")

        with self._lock:
            now = self._clock()
            profile = SettingsProfile(
                id=generate_profile_id(),
                name=name.strip(),
                description=description,
                settings=settings if settings is not None else self._snapshot_settings(),
                inherit_from=inherit_from,
                created_at=now,
                updated_at=now
            )
            self._validate(profile)
            self._profiles[profile.id] = profile
            self._save()

        self.logger.info(f"Created profile '{profile.name}' ({profile.id})")
        return profile

    def update_profile(self, profile_id: str, name: Optional[str] = None, description: Optional[str] = None,
                       settings: Optional[ProfileSettings] = None, inherit_from: Any = _UNSET) -> SettingsProfile:
        """Update fields of a profile; pass ``inherit_from=None`` to detach it from its parent."""
        with self._lock:
            current = self.get_profile(profile_id)
            updated = copy.deepcopy(current)
            if name is not None:
                if not name.strip():
                    raise ValueError("Profile name must not be empty")
                updated.name = name.strip()
            if description is not None:
                updated.description = description
            if settings is not None:
                updated.settings = settings
            if inherit_from is not _UNSET:
                updated.inherit_from = inherit_from
            updated.updated_at = self._clock()

            self._validate(updated)
            self._profiles[profile_id] = updated
            self._save()

        self.logger.info(f"Updated profile '{updated.name}' ({profile_id})")
        return updated

    def delete_profile(self, profile_id: str) -> None:
        """
        Delete a profile; clears the active profile if it was active.

        Raises:
            KeyError: Unknown profile
            ValidationError: Other profiles still inherit from it
        """
        with self._lock:
            profile = self.get_profile(profile_id)
            children = [p.name for p in self._profiles.values() if p.inherit_from == profile_id]
            if children:
                raise ValidationError(
                    f"Profile '{profile.name}' is inherited by: {', '.join(children)}"
                )

            del self._profiles[profile_id]
            if self._active_profile == profile_id:
                self._active_profile = None
            self._save()

        self.logger.info(f"Deleted profile '{profile.name}' ({profile_id})")

    def resolve_settings(self, profile_id: str) -> ProfileSettings:
        """Effective settings of a profile after applying its inheritance chain."""
        return self.merger.resolve(self.get_profile(profile_id), self._profiles)

    def apply_profile(self, profile_id: str) -> List[str]:
        """
        Write a profile's effective settings into the live configuration and mark it active.

        Returns:
            Relative paths of the settings files that changed
        """
        if self.settings_io is None:
            raise ConfigurationError("No settings tree configured; cannot apply profiles")

        with self._lock:
            settings = self.resolve_settings(profile_id)
            written = self.settings_io.write_settings(tree_from_profile_settings(settings))
            self._active_profile = profile_id
            self._save()

        self.logger.info(f"Applied profile {profile_id} ({len(written)} file(s) changed)")
        return written

    def export_profile(self, profile_id: str) -> str:
        return json.dumps(self.get_profile(profile_id).to_dict(), indent=2, ensure_ascii=False)

    def import_profile(self, profile_json: str) -> SettingsProfile:
        """
        Import a profile exported elsewhere under a freshly generated id.

        A parent reference that does not exist locally is dropped.

        Raises:
            ValidationError: Invalid JSON or missing id, name or settings
        """
        try:
            data = json.loads(profile_json)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Invalid profile JSON: {e}") from e

        imported = SettingsProfile.from_dict(data)

        with self._lock:
            now = self._clock()
            imported.id = generate_profile_id()
            imported.created_at = now
            imported.updated_at = now
            if imported.inherit_from and imported.inherit_from not in self._profiles:
                self.logger.warning(
                    f"Imported profile '{imported.name}' referenced unknown parent {imported.inherit_from}; detached"
                )
                imported.inherit_from = None

            self._validate(imported)
            self._profiles[imported.id] = imported
            self._save()

        self.logger.info(f"Imported profile '{imported.name}' as {imported.id}")
        return imported

    def compare_profiles(self, profile_a: str, profile_b: str) -> ProfileDiff:
        return self.merger.diff(self.resolve_settings(profile_a), self.resolve_settings(profile_b))

    def _require_cloud(self):
        if self.cloud_client is None:
            raise ConfigurationError("Cloud profile store is not configured")
        return self.cloud_client

    def upload_profile(self, profile_id: str) -> SettingsProfile:
        return self._require_cloud().upload_profile(self.get_profile(profile_id))

    def list_cloud_profiles(self) -> List[SettingsProfile]:
        return self._require_cloud().list_profiles()

    def download_profile(self, remote_id: str) -> SettingsProfile:
        """Fetch a profile from the cloud store and import it locally."""
        remote = self._require_cloud().get_profile(remote_id)
        return self.import_profile(json.dumps(remote.to_dict()))
