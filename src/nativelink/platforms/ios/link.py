"""Register native modules in an Xcode project, either via CocoaPods or the project file."""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping, Sequence
from pathlib import Path

from nativelink.errors import AnchorError
from nativelink.model import Dependency, Platform
from nativelink.patch import Patch, Relation, apply_patch, read_text, revert_patch
from nativelink.platforms.ios.config import IOSConfig
from nativelink.platforms.ios.pbxproj import Atom, PbxObject, ProjectGraph, stable_id

logger = logging.getLogger(__name__)

_HEADER_SKIP_DIRS = {"node_modules", "Examples", "examples", "Pods", "sdks", "build"}


def _posix_relpath(path: Path, start: Path) -> str:
    return Path(os.path.relpath(path, start)).as_posix()


# ---------------------------------------------------------------------------
# CocoaPods
# ---------------------------------------------------------------------------


def _uses_pods(project: IOSConfig, dependency: IOSConfig) -> bool:
    return project.podfile is not None and dependency.podspec_path is not None


def make_pod_patch(project: IOSConfig, dependency: IOSConfig) -> Patch:
    target = re.escape(project.target_name or "")
    path = _posix_relpath(dependency.folder, project.podfile.parent)
    return Patch(
        name="podfile",
        anchor=re.compile(rf"^[ \t]*target[ \t]+['\"]{target}['\"][ \t]+do[ \t]*\r?\n", re.M),
        text=f"  pod '{dependency.pod_name}', :path => '{path}'\n",
        relation=Relation.AFTER,
    )


def is_pod_installed(podfile: Path, pod_name: str) -> bool:
    content = read_text(podfile)
    return re.search(rf"^\s*pod\s+['\"]{re.escape(pod_name)}['\"]", content, re.M) is not None


# ---------------------------------------------------------------------------
# Project file
# ---------------------------------------------------------------------------


def find_headers(folder: Path) -> list[Path]:
    """All ``.h`` files a dependency ships, outside examples and vendored pods."""
    headers: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(folder):
        dirnames[:] = sorted(d for d in dirnames if d not in _HEADER_SKIP_DIRS)
        headers.extend(Path(dirpath, f) for f in sorted(filenames) if f.endswith(".h"))
    return headers


def header_search_path(source_dir: Path, headers: Sequence[Path]) -> str:
    """Return the ``$(SRCROOT)``-relative search path covering *headers*."""
    directories = sorted({h.parent for h in headers})
    if len(directories) == 1:
        return f"$(SRCROOT)/{_posix_relpath(directories[0], source_dir)}"
    common = Path(os.path.commonpath(directories))
    return f"$(SRCROOT)/{_posix_relpath(common, source_dir)}/**"


def _library_group(graph: ProjectGraph, name: str, *, create: bool) -> PbxObject | None:
    group = graph.find_group(name)
    if group is not None or not create:
        return group
    main = graph.main_group
    if main is None:
        return None
    group = graph.add_object(
        "PBXGroup",
        {"children": [], "name": name, "sourceTree": "<group>"},
        name,
        seed=f"group:{name}",
    )
    graph.append_ref(main, "children", group.id, name)
    return group


def _drop_group_if_created(graph: ProjectGraph, group: PbxObject | None, name: str) -> None:
    """Remove *group* when it is empty and carries the id a link would give it."""
    if group is None or group.refs("children") or group.id != stable_id(f"group:{name}"):
        return
    main = graph.main_group
    if main is not None:
        graph.remove_ref(main, "children", group.id)
    graph.remove_object(group.id)


def _frameworks_phase(graph: ProjectGraph, target: PbxObject) -> PbxObject | None:
    return graph.build_phase(target, "PBXFrameworksBuildPhase")


def _product_file_ref(graph: ProjectGraph, product: str) -> PbxObject | None:
    for ref in graph.objects_of("PBXFileReference"):
        if ref.get("path") == product and ref.get("sourceTree") == "BUILT_PRODUCTS_DIR":
            return ref
    return None


def _remove_build_files(graph: ProjectGraph, file_ref: PbxObject) -> None:
    for build_file in graph.referrers("PBXBuildFile", "fileRef", file_ref.id):
        for phase_isa in ("PBXFrameworksBuildPhase", "PBXSourcesBuildPhase",
                          "PBXResourcesBuildPhase", "PBXHeadersBuildPhase"):
            for phase in graph.objects_of(phase_isa):
                graph.remove_ref(phase, "files", build_file.id)
        graph.remove_object(build_file.id)


def _add_static_libraries(
    graph: ProjectGraph, name: str, products: Sequence[str]
) -> list[str]:
    manual: list[str] = []
    for target in graph.application_targets():
        tvos = graph.is_tvos(target)
        phase = _frameworks_phase(graph, target)
        for product in products:
            if product.endswith("-tvOS.a") != tvos:
                continue
            if phase is None:
                manual.append(
                    f"add {product} to the 'Link Binary With Libraries' phase "
                    f"of target {target.get('name')}"
                )
                continue
            file_ref = _product_file_ref(graph, product) or graph.add_object(
                "PBXFileReference",
                {
                    "explicitFileType": "archive.ar",
                    "includeInIndex": "0",
                    "path": product,
                    "sourceTree": "BUILT_PRODUCTS_DIR",
                },
                product,
                seed=f"{name}:product:{product}",
            )
            seed = f"{name}:build:{product}:{target.id}"
            if stable_id(seed) in graph.objects:
                continue
            build_file = graph.add_object(
                "PBXBuildFile",
                {"fileRef": Atom(file_ref.id, product)},
                f"{product} in Frameworks",
                seed=seed,
            )
            graph.append_ref(phase, "files", build_file.id, f"{product} in Frameworks")
    return manual


def _remove_static_library(graph: ProjectGraph, name: str, product: str) -> None:
    """Undo :func:`_add_static_libraries` for one product of *name*.

    A product reference the project already had is reused by a link, so only
    the build files are removed from it.
    """
    for target in graph.application_targets():
        build_id = stable_id(f"{name}:build:{product}:{target.id}")
        if graph.get(build_id) is None:
            continue
        phase = _frameworks_phase(graph, target)
        if phase is not None:
            graph.remove_ref(phase, "files", build_id)
        graph.remove_object(build_id)

    file_ref = graph.get(stable_id(f"{name}:product:{product}"))
    if file_ref is not None and not graph.referrers("PBXBuildFile", "fileRef", file_ref.id):
        graph.remove_object(file_ref.id)


def _shared_library_fields(library: str) -> dict:
    if library.endswith(".framework"):
        return {
            "lastKnownFileType": "wrapper.framework",
            "name": library,
            "path": f"System/Library/Frameworks/{library}",
            "sourceTree": "SDKROOT",
        }
    return {
        "lastKnownFileType": "sourcecode.text-based-dylib-definition",
        "name": library,
        "path": f"usr/lib/{library}",
        "sourceTree": "SDKROOT",
    }


def _has_file_named(graph: ProjectGraph, library: str) -> bool:
    return any(
        (ref.get("name") or (ref.get("path") or "").rsplit("/", 1)[-1]) == library
        for ref in graph.objects_of("PBXFileReference")
    )


def _add_shared_libraries(graph: ProjectGraph, libraries: Sequence[str]) -> None:
    targets = graph.application_targets()
    if not libraries or not targets:
        return
    phase = _frameworks_phase(graph, targets[0])
    for library in libraries:
        if _has_file_named(graph, library):
            continue
        group = _library_group(graph, "Frameworks", create=True)
        file_ref = graph.add_object(
            "PBXFileReference", _shared_library_fields(library), library,
            seed=f"shared:{library}",
        )
        if group is not None:
            graph.append_ref(group, "children", file_ref.id, library)
        if phase is not None:
            build_file = graph.add_object(
                "PBXBuildFile",
                {"fileRef": Atom(file_ref.id, library)},
                f"{library} in Frameworks",
                seed=f"shared:{library}:build",
            )
            graph.append_ref(phase, "files", build_file.id, f"{library} in Frameworks")


def _remove_shared_libraries(graph: ProjectGraph, libraries: Sequence[str]) -> None:
    group = graph.find_group("Frameworks")
    for library in libraries:
        file_ref = graph.get(stable_id(f"shared:{library}"))
        if file_ref is None:
            continue
        _remove_build_files(graph, file_ref)
        if group is not None:
            graph.remove_ref(group, "children", file_ref.id)
        graph.remove_object(file_ref.id)
    _drop_group_if_created(graph, graph.find_group("Frameworks"), "Frameworks")


def _header_configurations(graph: ProjectGraph) -> list[PbxObject]:
    return [
        configuration
        for target in graph.application_targets()
        for configuration in graph.build_configurations(target)
    ]


class IOSLinkConfig:
    """Link capability set for iOS."""

    def is_installed(self, project_config: IOSConfig, name: str,
                     dependency_config: IOSConfig) -> bool:
        if _uses_pods(project_config, dependency_config):
            return is_pod_installed(project_config.podfile, dependency_config.pod_name)
        if dependency_config.project_name is None:
            return False
        graph = ProjectGraph.load(project_config.pbxproj_path)
        group = graph.find_group(project_config.library_folder)
        if group is None:
            return False
        return any(
            atom.comment == dependency_config.project_name
            for atom in group.ref_atoms("children")
        )

    def has_registration(self, project_config: IOSConfig, name: str,
                         dependency_config: IOSConfig) -> bool:
        # A link writes the Podfile or the project file in one step.
        return self.is_installed(project_config, name, dependency_config)

    def register(self, name: str, dependency_config: IOSConfig,
                 params: Mapping[str, str], project_config: IOSConfig) -> list[str]:
        if _uses_pods(project_config, dependency_config):
            patch = make_pod_patch(project_config, dependency_config)
            try:
                apply_patch(project_config.podfile, patch)
            except AnchorError as e:
                logger.debug("%s", e)
                return [e.instructions()]
            return []

        if dependency_config.project_path is None:
            return [
                f"add pod '{dependency_config.pod_name}' to a Podfile; "
                f"{project_config.project_name} does not use CocoaPods"
            ]

        graph = ProjectGraph.load(project_config.pbxproj_path)
        dependency_graph = ProjectGraph.load(dependency_config.pbxproj_path)

        libraries = _library_group(graph, project_config.library_folder, create=True)
        if libraries is None:
            return [f"{project_config.project_name} has no main group"]
        file_ref = graph.add_object(
            "PBXFileReference",
            {
                "lastKnownFileType": "wrapper.pb-project",
                "name": dependency_config.project_name,
                "path": _posix_relpath(dependency_config.project_path, project_config.source_dir),
                "sourceTree": "<group>",
            },
            dependency_config.project_name,
            seed=f"{name}:project",
        )
        graph.append_ref(libraries, "children", file_ref.id, dependency_config.project_name)

        manual = _add_static_libraries(graph, name, dependency_graph.products())
        _add_shared_libraries(graph, dependency_config.shared_libraries)

        headers = find_headers(dependency_config.folder)
        if headers:
            path = header_search_path(project_config.source_dir, headers)
            for configuration in _header_configurations(graph):
                graph.add_setting_value(configuration, "HEADER_SEARCH_PATHS", path)

        graph.write(project_config.pbxproj_path)
        return manual

    def unregister(self, name: str, dependency_config: IOSConfig,
                   project_config: IOSConfig,
                   other_dependencies: Sequence[Dependency]) -> list[str]:
        if _uses_pods(project_config, dependency_config):
            revert_patch(project_config.podfile, make_pod_patch(project_config, dependency_config))
            return []
        if dependency_config.project_path is None:
            return []

        graph = ProjectGraph.load(project_config.pbxproj_path)
        dependency_graph = ProjectGraph.load(dependency_config.pbxproj_path)

        libraries = graph.find_group(project_config.library_folder)
        if libraries is not None:
            for atom in libraries.ref_atoms("children"):
                if atom.comment == dependency_config.project_name:
                    graph.remove_ref(libraries, "children", atom.value)
                    graph.remove_object(atom.value)
            _drop_group_if_created(graph, libraries, project_config.library_folder)

        for product in dependency_graph.products():
            _remove_static_library(graph, name, product)

        still_used = {
            library
            for other in other_dependencies
            if isinstance(other.config_for(Platform.IOS), IOSConfig)
            for library in other.config_for(Platform.IOS).shared_libraries
        }
        _remove_shared_libraries(
            graph, [lib for lib in dependency_config.shared_libraries if lib not in still_used]
        )

        headers = find_headers(dependency_config.folder)
        if headers:
            path = header_search_path(project_config.source_dir, headers)
            for configuration in _header_configurations(graph):
                graph.remove_setting_value(configuration, "HEADER_SEARCH_PATHS", path)

        graph.write(project_config.pbxproj_path)
        return []
