"""Settings profile data structures and their JSON form."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..errors import ValidationError


def default_appearance() -> Dict[str, Any]:
    return {
        "theme": "default",
        "cssSnippets": [],
        "baseFontSize": 16,
        "interfaceFontFamily": "",
        "textFontFamily": "",
        "monospaceFontFamily": "",
    }


@dataclass
class PluginEntry:
    id: str
    enabled: bool = True
    settings: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "enabled": self.enabled, "settings": self.settings}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PluginEntry":
        if not isinstance(data, dict) or not data.get("id"):
            raise ValidationError(f"Invalid plugin entry: {data!r}")
        return cls(
            id=str(data["id"]),
            enabled=bool(data.get("enabled", True)),
            settings=dict(data.get("settings") or {})
        )


@dataclass
class CommunitySettings:
    plugins: List[str] = field(default_factory=list)
    themes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, List[str]]:
        return {"plugins": list(self.plugins), "themes": list(self.themes)}


@dataclass
class ProfileSettings:
    """The settings a profile carries, grouped by category."""
    plugins: List[PluginEntry] = field(default_factory=list)
    appearance: Dict[str, Any] = field(default_factory=dict)
    hotkeys: Dict[str, Any] = field(default_factory=dict)
    core_plugins: Dict[str, Any] = field(default_factory=dict)
    community: CommunitySettings = field(default_factory=CommunitySettings)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "plugins": [plugin.to_dict() for plugin in self.plugins],
            "appearance": self.appearance,
            "hotkeys": self.hotkeys,
            "corePlugins": self.core_plugins,
            "community": self.community.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProfileSettings":
        if not isinstance(data, dict):
            raise ValidationError("Profile settings must be an object")

        for key in ("appearance", "hotkeys", "corePlugins"):
            if key in data and not isinstance(data[key], dict):
                raise ValidationError(f"Profile settings field '{key}' must be an object")

        plugins = data.get("plugins") or []
        if not isinstance(plugins, list):
            raise ValidationError("Profile settings field 'plugins' must be a list")

        community = data.get("community") or {}
        return cls(
            plugins=[PluginEntry.from_dict(entry) for entry in plugins],
            appearance=dict(data.get("appearance") or {}),
            hotkeys=dict(data.get("hotkeys") or {}),
            core_plugins=dict(data.get("corePlugins") or {}),
            community=CommunitySettings(
                plugins=list(community.get("plugins") or []),
                themes=list(community.get("themes") or [])
            )
        )


@dataclass
class SettingsProfile:
    id: str
    name: str
    description: str = ""
    settings: ProfileSettings = field(default_factory=ProfileSettings)
    inherit_from: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "settings": self.settings.to_dict(),
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }
        if self.inherit_from:
            result["inheritFrom"] = self.inherit_from
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SettingsProfile":
        """
        Parse the JSON form of a profile.

        Raises:
            ValidationError: Missing id, name or settings, or malformed fields
        """
        if not isinstance(data, dict):
            raise ValidationError("Invalid profile format: expected an object")

        missing = [key for key in ("id", "name", "settings") if not data.get(key)]
        if missing:
            raise ValidationError(f"Invalid profile format: missing {', '.join(missing)}")

        try:
            created_at = datetime.fromisoformat(data["createdAt"]) if data.get("createdAt") else datetime.now()
            updated_at = datetime.fromisoformat(data["updatedAt"]) if data.get("updatedAt") else created_at
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid profile timestamp: {e}") from e

        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            description=str(data.get("description") or ""),
            settings=ProfileSettings.from_dict(data["settings"]),
            inherit_from=data.get("inheritFrom") or None,
            created_at=created_at,
            updated_at=updated_at
        )


@dataclass
class ProfileDiff:
    added: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    modified: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.modified)

    def to_dict(self) -> Dict[str, List[str]]:
        return {"added": self.added, "removed": self.removed, "modified": self.modified}
