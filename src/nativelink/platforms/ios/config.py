"""Locate Xcode projects, Podfiles and podspecs for the app and its dependencies."""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from nativelink.platforms.ios.pbxproj import ProjectGraph

logger = logging.getLogger(__name__)

_SKIP_DIRS = {
    "node_modules",
    "Pods",
    "Carthage",
    "build",
    "Examples",
    "examples",
    ".git",
}

_TEST_PROJECT_RE = re.compile(r"test|example|sample", re.I)


@dataclass(frozen=True)
class IOSConfig:
    """Xcode project metadata, shared by the app and its dependencies."""

    source_dir: Path
    folder: Path
    project_path: Path | None
    pbxproj_path: Path | None
    project_name: str | None
    library_folder: str = "Libraries"
    shared_libraries: tuple[str, ...] = ()
    podfile: Path | None = None
    podspec_path: Path | None = None

    @property
    def pod_name(self) -> str | None:
        return self.podspec_path.stem if self.podspec_path else None

    @property
    def target_name(self) -> str | None:
        return self.project_name.removesuffix(".xcodeproj") if self.project_name else None


def find_project(folder: Path) -> Path | None:
    """Return the xcodeproj under *folder*, preferring ``ios/``."""
    found: list[Path] = []
    for dirpath, dirnames, _ in os.walk(folder):
        projects = [d for d in dirnames if d.endswith(".xcodeproj")]
        found.extend(Path(dirpath, d) for d in projects)
        dirnames[:] = sorted(
            d for d in dirnames if d not in _SKIP_DIRS and not d.endswith((".xcodeproj", ".xcworkspace"))
        )

    candidates = []
    for project in found:
        rel = project.relative_to(folder)
        in_ios = rel.parent == Path("ios")
        if not in_ios and _TEST_PROJECT_RE.search(str(rel)):
            continue
        candidates.append((not in_ios, str(rel), project))
    if not candidates:
        return None
    return sorted(candidates)[0][2]


def find_podspec(folder: Path) -> Path | None:
    for base in (folder, folder / "ios"):
        specs = sorted(base.glob("*.podspec")) if base.is_dir() else []
        if specs:
            return specs[0]
    return None


def map_shared_libraries(names: list[str]) -> tuple[str, ...]:
    """Give bare framework names their ``.framework`` extension."""
    return tuple(name if Path(name).suffix else f"{name}.framework" for name in names)


def resolve_config(
    folder: Path, user_config: Mapping[str, Any], *, is_project: bool
) -> IOSConfig | None:
    """Build the iOS config of *folder*, or None if it has no iOS sources."""
    project_override = user_config.get("project")
    if project_override:
        project_path: Path | None = folder / project_override
    else:
        project_path = find_project(folder)

    podspec_path = None
    if not is_project:
        override = user_config.get("podspecPath")
        podspec_path = folder / override if override else find_podspec(folder)

    if project_path is None and podspec_path is None:
        return None
    if project_path is None and is_project:
        return None

    source_dir = project_path.parent if project_path else folder
    pbxproj_path = project_path / "project.pbxproj" if project_path else None

    podfile = None
    if is_project:
        candidate = source_dir / "Podfile"
        podfile = candidate if candidate.exists() else None
        # Raises ProjectFileError when the project file cannot be parsed.
        graph = ProjectGraph.load(pbxproj_path)
        logger.debug(
            "Xcode project %s: %d targets", project_path.name, len(graph.targets())
        )

    return IOSConfig(
        source_dir=source_dir,
        folder=folder,
        project_path=project_path,
        pbxproj_path=pbxproj_path,
        project_name=project_path.name if project_path else None,
        library_folder=user_config.get("libraryFolder", "Libraries"),
        shared_libraries=map_shared_libraries(list(user_config.get("sharedLibraries", []))),
        podfile=podfile,
        podspec_path=podspec_path,
    )
