"""Android support: Gradle settings, build scripts, resources and MainApplication."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

from nativelink.model import Platform
from nativelink.platforms.android import config
from nativelink.platforms.android.config import AndroidDependencyConfig, AndroidProjectConfig
from nativelink.platforms.android.link import AndroidLinkConfig


class AndroidPlatform:
    platform = Platform.ANDROID

    def project_config(
        self, root: Path, user_config: Mapping[str, Any]
    ) -> AndroidProjectConfig | None:
        return config.project_config(root, user_config)

    def dependency_config(
        self, folder: Path, user_config: Mapping[str, Any]
    ) -> AndroidDependencyConfig | None:
        return config.dependency_config(folder, user_config)

    def link_config(self) -> AndroidLinkConfig:
        return AndroidLinkConfig()


__all__ = [
    "AndroidDependencyConfig",
    "AndroidLinkConfig",
    "AndroidPlatform",
    "AndroidProjectConfig",
]
