"""iOS support: Xcode projects, CocoaPods and the project.pbxproj graph."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

from nativelink.model import Platform
from nativelink.platforms.ios.config import IOSConfig, resolve_config
from nativelink.platforms.ios.link import IOSLinkConfig


class IOSPlatform:
    platform = Platform.IOS

    def project_config(self, root: Path, user_config: Mapping[str, Any]) -> IOSConfig | None:
        return resolve_config(root, user_config, is_project=True)

    def dependency_config(self, folder: Path, user_config: Mapping[str, Any]) -> IOSConfig | None:
        return resolve_config(folder, user_config, is_project=False)

    def link_config(self) -> IOSLinkConfig:
        return IOSLinkConfig()


__all__ = ["IOSConfig", "IOSLinkConfig", "IOSPlatform"]
