"""Resolve the host project and its dependencies into per-platform configs."""

from __future__ import annotations

import json
import logging
import tomllib
from collections.abc import Mapping, Sequence
from pathlib import Path
from types import MappingProxyType
from typing import Any

from nativelink.errors import ConfigError, DependencyNotFoundError, NativeLinkError
from nativelink.model import Dependency, Param, Platform, Project
from nativelink.platforms.base import PlatformAdapter

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".nativelink.toml"


def read_user_config(folder: Path) -> dict[str, Any]:
    """Read overrides from .nativelink.toml or the ``rnpm`` key of package.json."""
    # Try .nativelink.toml first
    toml_path = folder / CONFIG_FILENAME
    if toml_path.exists():
        try:
            with open(toml_path, "rb") as f:
                return tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.warning("Could not parse %s: %s", toml_path, e)
            return {}

    # Fall back to the legacy "rnpm" key in package.json
    package_json = folder / "package.json"
    if package_json.exists():
        try:
            data = json.loads(package_json.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Could not parse %s: %s", package_json, e)
            return {}
        if isinstance(data, dict) and isinstance(data.get("rnpm"), dict):
            return data["rnpm"]

    return {}


def _platform_section(
    user_config: Mapping[str, Any], platform: Platform
) -> Mapping[str, Any] | None:
    """Return the platform's overrides; None when the platform is opted out."""
    if platform.value not in user_config:
        return {}
    section = user_config[platform.value]
    if section is None or section is False:
        return None
    if not isinstance(section, Mapping):
        logger.warning(
            "Ignoring '%s' settings: expected a table, got %r", platform.value, section
        )
        return {}
    return section


def load_project(
    root: Path, adapters: Mapping[Platform, PlatformAdapter]
) -> Project:
    """Resolve project configs for every adapter.

    Raises :class:`~nativelink.errors.ConfigError` when a native project
    exists but cannot be parsed.
    """
    user_config = read_user_config(root)
    platforms: dict[Platform, Any] = {}
    for platform, adapter in adapters.items():
        section = _platform_section(user_config, platform)
        if section is None:
            platforms[platform] = None
            continue
        platforms[platform] = adapter.project_config(root, section)
        logger.debug(
            "%s project config: %s", platform.label, platforms[platform] or "none"
        )
    return Project(root=root, platforms=MappingProxyType(platforms))


def load_dependency(
    root: Path, name: str, adapters: Mapping[Platform, PlatformAdapter]
) -> Dependency:
    """Resolve the dependency *name* installed under ``root/node_modules``."""
    folder = root / "node_modules" / name
    if not folder.is_dir():
        raise DependencyNotFoundError(name, str(folder))

    user_config = read_user_config(folder)
    platforms: dict[Platform, Any] = {}
    for platform, adapter in adapters.items():
        section = _platform_section(user_config, platform)
        if section is None:
            platforms[platform] = None
            continue
        platforms[platform] = adapter.dependency_config(folder, section)

    params: list[Param] = []
    for raw in user_config.get("params", []) or []:
        if isinstance(raw, Mapping) and raw.get("name"):
            params.append(Param.from_dict(raw))
        else:
            logger.warning("Ignoring malformed param %r in %s", raw, folder)

    return Dependency(
        name=name,
        root=folder,
        platforms=MappingProxyType(platforms),
        params=tuple(params),
    )


def load_dependencies(
    root: Path,
    names: Sequence[str],
    adapters: Mapping[Platform, PlatformAdapter],
) -> tuple[list[Dependency], dict[str, NativeLinkError]]:
    """Load every name; failures are returned per name, not raised."""
    dependencies: list[Dependency] = []
    failed: dict[str, NativeLinkError] = {}
    for name in names:
        try:
            dependencies.append(load_dependency(root, name, adapters))
        except NativeLinkError as e:
            failed[name] = e
        except OSError as e:
            failed[name] = ConfigError(
                f"Could not resolve '{name}': {e}", details={"name": name}
            )
    return dependencies, failed
