"""Register native modules in a Gradle-based Android app."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from pathlib import Path

from nativelink.errors import AnchorError
from nativelink.model import Dependency
from nativelink.patch import Patch, apply_patch, is_patch_applied, read_text, revert_patch
from nativelink.platforms.android.config import AndroidDependencyConfig, AndroidProjectConfig
from nativelink.platforms.android.patches import (
    build_install_pattern,
    camel_case,
    make_build_patch,
    make_import_patch,
    make_package_patch,
    make_settings_patch,
    make_strings_patch,
    read_module_params,
)

logger = logging.getLogger(__name__)


def make_patches(
    name: str,
    dependency: AndroidDependencyConfig,
    params: Mapping[str, str],
    project: AndroidProjectConfig,
) -> list[tuple[Path, Patch]]:
    """The patches for *name*, in the order they are applied."""
    prefix = camel_case(name)
    return [
        (project.settings_gradle_path, make_settings_patch(name, dependency, project)),
        (project.build_gradle_path, make_build_patch(name)),
        (project.strings_path, make_strings_patch(params, prefix)),
        (
            project.main_file_path,
            make_package_patch(dependency.package_instance, params, prefix),
        ),
        (project.main_file_path, make_import_patch(dependency.package_import_path)),
    ]


class AndroidLinkConfig:
    """Link capability set for Android."""

    def is_installed(self, project_config: AndroidProjectConfig, name: str,
                     dependency_config: AndroidDependencyConfig) -> bool:
        try:
            content = read_text(project_config.build_gradle_path)
        except FileNotFoundError:
            return False
        return build_install_pattern(name).search(content) is not None

    def has_registration(self, project_config: AndroidProjectConfig, name: str,
                         dependency_config: AndroidDependencyConfig) -> bool:
        if self.is_installed(project_config, name, dependency_config):
            return True
        params = read_module_params(project_config.strings_path, camel_case(name))
        return any(
            patch.text and is_patch_applied(path, patch)
            for path, patch in make_patches(name, dependency_config, params, project_config)
        )

    def register(self, name: str, dependency_config: AndroidDependencyConfig,
                 params: Mapping[str, str],
                 project_config: AndroidProjectConfig) -> list[str]:
        manual: list[str] = []
        for path, patch in make_patches(name, dependency_config, params, project_config):
            if not patch.text:
                continue
            if not path.is_file():
                manual.append(f"add the following to {path} (file not found):\n{patch.text.strip()}")
                continue
            try:
                apply_patch(path, patch)
            except AnchorError as e:
                logger.debug("%s", e)
                manual.append(e.instructions())
        return manual

    def unregister(self, name: str, dependency_config: AndroidDependencyConfig,
                   project_config: AndroidProjectConfig,
                   other_dependencies: Sequence[Dependency]) -> list[str]:
        params = read_module_params(project_config.strings_path, camel_case(name))
        patches = make_patches(name, dependency_config, params, project_config)
        for path, patch in reversed(patches):
            revert_patch(path, patch)
        return []
