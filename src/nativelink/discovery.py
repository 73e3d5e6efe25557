"""Find native-module candidates among a project's package.json dependencies."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path

logger = logging.getLogger(__name__)

# Framework naming convention: react-native-foo, @scope/react-native-foo and
# anything published under an @react-native* scope.
_FRAMEWORK_PATTERNS = (
    r"^react-native-",
    r"^@[^/]+/react-native-",
    r"^@react-native[^/]*/(?!rnpm-plugin-)",
)

# Deprecated rnpm plugins, except those living under the framework's own
# scopes (those are internal packages, not plugins).
_DEPRECATED_PATTERNS = (
    r"^rnpm-plugin-",
    r"^@(?!react-native)[^/]+/rnpm-plugin-",
)

_PLUGIN_RE = re.compile("|".join(_FRAMEWORK_PATTERNS + _DEPRECATED_PATTERNS))


def is_native_module_name(name: str) -> bool:
    """Return True if *name* follows a native-module naming convention."""
    return _PLUGIN_RE.match(name) is not None


def _read_manifest(root: Path) -> dict | None:
    manifest = root / "package.json"
    try:
        data = json.loads(manifest.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.debug("Could not read %s: %s", manifest, e)
        return None
    if not isinstance(data, dict):
        logger.debug("Ignoring %s: top-level value is not an object", manifest)
        return None
    return data


def find_dependencies(root: Path) -> list[str]:
    """Return native-module dependency names of the project at *root*.

    Names come from ``dependencies`` then ``devDependencies``, in manifest
    order.  A missing or malformed manifest yields an empty list.
    """
    data = _read_manifest(root)
    if data is None:
        return []

    names: dict[str, None] = {}
    for section in ("dependencies", "devDependencies"):
        deps = data.get(section)
        if not isinstance(deps, dict):
            continue
        for name in deps:
            names.setdefault(name, None)

    found = [name for name in names if is_native_module_name(name)]
    logger.debug("Discovered %d native dependencies in %s", len(found), root)
    return found


discover = find_dependencies
