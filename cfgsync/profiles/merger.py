"""Pure merge and diff of settings profiles."""

import copy
import json
from typing import Any, Dict, List, Mapping

from ..errors import ValidationError
from .models import ProfileDiff, ProfileSettings, SettingsProfile


def _union(base: List[Any], extra: List[Any]) -> List[Any]:
    """Ordered union: items of ``base`` first, then unseen items of ``extra``."""
    result: List[Any] = []
    for item in list(base) + list(extra):
        if item not in result:
            result.append(copy.deepcopy(item))
    return result


def _overwrite(base: Dict[str, Any], override: Dict[str, Any], union_lists: bool = False) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if union_lists and isinstance(merged.get(key), list) and isinstance(value, list):
            merged[key] = _union(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _serialize(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


class ProfileMerger:
    """
    Right-biased merge of a parent and child profile.

    Scalars from the child win; set-like lists (community plugins, community
    themes, list-valued appearance fields such as CSS snippets) are ordered
    unions with parent entries first; plugin entries are keyed by id, keep
    the parent's order and take the child's entry where both define one.
    Merging is idempotent: merge(merge(p, c), c) == merge(p, c).
    """

    @staticmethod
    def merge(parent: ProfileSettings, child: ProfileSettings) -> ProfileSettings:
        plugins: Dict[str, Any] = {plugin.id: copy.deepcopy(plugin) for plugin in parent.plugins}
        for plugin in child.plugins:
            plugins[plugin.id] = copy.deepcopy(plugin)

        result = copy.deepcopy(parent)
        result.plugins = list(plugins.values())
        result.appearance = _overwrite(parent.appearance, child.appearance, union_lists=True)
        result.hotkeys = _overwrite(parent.hotkeys, child.hotkeys)
        result.core_plugins = _overwrite(parent.core_plugins, child.core_plugins)
        result.community.plugins = _union(parent.community.plugins, child.community.plugins)
        result.community.themes = _union(parent.community.themes, child.community.themes)
        return result

    @staticmethod
    def diff(a: ProfileSettings, b: ProfileSettings) -> ProfileDiff:
        """Category-level differences going from ``a`` to ``b``."""
        ids_a = [plugin.id for plugin in a.plugins]
        ids_b = [plugin.id for plugin in b.plugins]

        result = ProfileDiff(
            added=[plugin_id for plugin_id in ids_b if plugin_id not in ids_a],
            removed=[plugin_id for plugin_id in ids_a if plugin_id not in ids_b]
        )

        categories = (
            ("appearance", a.appearance, b.appearance),
            ("hotkeys", a.hotkeys, b.hotkeys),
            ("corePlugins", a.core_plugins, b.core_plugins),
            ("community", a.community.to_dict(), b.community.to_dict()),
        )
        for name, left, right in categories:
            if _serialize(left) != _serialize(right):
                result.modified.append(name)

        shared_a = {p.id: p.to_dict() for p in a.plugins if p.id in ids_b}
        shared_b = {p.id: p.to_dict() for p in b.plugins if p.id in ids_a}
        if _serialize(shared_a) != _serialize(shared_b):
            result.modified.append("plugins")

        return result

    @staticmethod
    def lineage(profile: SettingsProfile, profiles: Mapping[str, SettingsProfile]) -> List[SettingsProfile]:
        """
        The inheritance chain from ``profile`` up to its root.

        Raises:
            ValidationError: Self-inheritance, a cycle, or an unknown parent
        """
        chain = [profile]
        seen = {profile.id}
        current = profile

        while current.inherit_from:
            parent_id = current.inherit_from
            if parent_id == current.id:
                raise ValidationError(f"Profile '{current.id}' cannot inherit from itself")
            if parent_id in seen:
                path = " -> ".join([p.id for p in chain] + [parent_id])
                raise ValidationError(f"Cyclic profile inheritance: {path}")

            parent = profiles.get(parent_id)
            if parent is None:
                raise ValidationError(f"Profile '{current.id}' inherits from unknown profile '{parent_id}'")

            seen.add(parent_id)
            chain.append(parent)
            current = parent

        return chain

    def resolve(self, profile: SettingsProfile, profiles: Mapping[str, SettingsProfile]) -> ProfileSettings:
        """Effective settings of ``profile`` with every ancestor merged in, root first."""
        chain = self.lineage(profile, profiles)
        merged = copy.deepcopy(chain[-1].settings)
        for descendant in reversed(chain[:-1]):
            merged = self.merge(merged, descendant.settings)
        return merged
