"""Hierarchical settings profiles."""

from .models import PluginEntry, CommunitySettings, ProfileSettings, SettingsProfile, ProfileDiff
from .merger import ProfileMerger
from .manager import ProfileManager, ProfileStore

__all__ = [
    'PluginEntry',
    'CommunitySettings',
    'ProfileSettings',
    'SettingsProfile',
    'ProfileDiff',
    'ProfileMerger',
    'ProfileManager',
    'ProfileStore'
]
