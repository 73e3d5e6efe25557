"""Locate the Gradle project, manifest and ReactPackage class of an Android folder."""

from __future__ import annotations

import logging
import os
import re
import xml.etree.ElementTree as ET
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from nativelink.errors import ConfigError

logger = logging.getLogger(__name__)

_MANIFEST_SKIP_DIRS = {"build", "debug", "node_modules"}

_NAMESPACE_RE = re.compile(r"""^\s*namespace\s*=?\s*["']([\w.]+)["']""", re.M)
_JAVA_PACKAGE_RE = re.compile(r"^\s*package\s+([\w.]+)\s*;?", re.M)

# Regex fallback for Kotlin sources and Java files javalang cannot parse.
_PACKAGE_CLASS_RE = re.compile(
    r"class\s+(\w+)[^{]*?"
    r"(?:implements\s+[\w.,\s<>]*\bReactPackage\b"
    r"|extends\s+(?:[\w.]+\.)?(?:TurboReactPackage|BaseReactPackage)\b"
    r"|:\s*[\w.(),\s<>]*\b(?:ReactPackage|TurboReactPackage|BaseReactPackage)\b)"
)

_PACKAGE_BASES = {"TurboReactPackage", "BaseReactPackage"}


@dataclass(frozen=True)
class AndroidProjectConfig:
    source_dir: Path
    folder: Path
    is_flat: bool
    manifest_path: Path
    package_name: str
    package_folder: str
    main_file_path: Path
    strings_path: Path
    settings_gradle_path: Path
    build_gradle_path: Path
    app_name: str = "app"


@dataclass(frozen=True)
class AndroidDependencyConfig:
    source_dir: Path
    folder: Path
    manifest_path: Path
    package_name: str
    package_class_name: str
    package_import_path: str
    package_instance: str


# ---------------------------------------------------------------------------
# Lookup helpers
# ---------------------------------------------------------------------------


def find_android_app_folder(folder: Path) -> str | None:
    """Return ``android/app`` for nested layouts, ``android`` for flat ones."""
    android = folder / "android"
    if not android.is_dir():
        return None
    if (android / "app").is_dir():
        return "android/app"
    return "android"


def find_manifest(source_dir: Path) -> Path | None:
    default = source_dir / "src" / "main" / "AndroidManifest.xml"
    if default.is_file():
        return default
    for dirpath, dirnames, filenames in os.walk(source_dir):
        dirnames[:] = sorted(d for d in dirnames if d not in _MANIFEST_SKIP_DIRS)
        if "AndroidManifest.xml" in filenames:
            return Path(dirpath, "AndroidManifest.xml")
    return None


def _manifest_path(source_dir: Path, user_config: Mapping[str, Any]) -> Path | None:
    """An explicit ``manifestPath`` must exist; otherwise search *source_dir*."""
    override = user_config.get("manifestPath")
    if not override:
        return find_manifest(source_dir)
    path = source_dir / override
    if not path.is_file():
        raise ConfigError(
            f"manifestPath {path} does not exist", details={"path": str(path)}
        )
    return path


def read_manifest_package(manifest_path: Path) -> str | None:
    """Return the manifest's ``package`` attribute.

    Raises ``ET.ParseError`` when the manifest is not well-formed XML.
    """
    root = ET.parse(manifest_path).getroot()
    return root.get("package") or None


def read_gradle_namespace(source_dir: Path) -> str | None:
    for name in ("build.gradle", "build.gradle.kts"):
        path = source_dir / name
        if not path.is_file():
            continue
        match = _NAMESPACE_RE.search(path.read_text(encoding="utf-8", errors="replace"))
        if match:
            return match.group(1)
    return None


def _type_name(ref) -> str:
    """Last component of a possibly qualified javalang ReferenceType."""
    while getattr(ref, "sub_type", None) is not None:
        ref = ref.sub_type
    return ref.name


def _java_package_class(source: str) -> tuple[str | None, str | None]:
    """Return (package, class) of the first ReactPackage class in Java *source*."""
    import javalang

    tree = javalang.parse.parse(source)
    package = tree.package.name if tree.package else None
    for type_decl in tree.types:
        if not isinstance(type_decl, javalang.tree.ClassDeclaration):
            continue
        implements = {_type_name(t) for t in type_decl.implements or []}
        extends = _type_name(type_decl.extends) if type_decl.extends else None
        if "ReactPackage" in implements or extends in _PACKAGE_BASES:
            return package, type_decl.name
    return package, None


def _regex_package_class(source: str) -> tuple[str | None, str | None]:
    package = _JAVA_PACKAGE_RE.search(source)
    match = _PACKAGE_CLASS_RE.search(source)
    return (
        package.group(1) if package else None,
        match.group(1) if match else None,
    )


def find_package_class(source_dir: Path) -> tuple[str | None, str | None]:
    """Find the first class implementing ReactPackage under *source_dir*.

    Returns ``(java_package, class_name)``; both are None when nothing matches.
    """
    import javalang

    sources = sorted(
        p for p in source_dir.rglob("*")
        if p.suffix in (".java", ".kt")
        and not _MANIFEST_SKIP_DIRS.intersection(p.relative_to(source_dir).parts)
    )
    for path in sources:
        try:
            source = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.debug("Could not read %s: %s", path, e)
            continue
        if "ReactPackage" not in source:
            continue

        if path.suffix == ".kt":
            package, class_name = _regex_package_class(source)
        else:
            try:
                package, class_name = _java_package_class(source)
            except (javalang.parser.JavaSyntaxError, javalang.tokenizer.LexerError):
                logger.debug("javalang could not parse %s, using regex fallback", path)
                package, class_name = _regex_package_class(source)

        if class_name:
            logger.debug("Found package class %s in %s", class_name, path)
            return package, class_name
    return None, None


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def _source_dir(folder: Path, user_config: Mapping[str, Any]) -> tuple[Path, bool] | None:
    override = user_config.get("sourceDir")
    if override:
        source_dir = folder / override
        return (source_dir, source_dir.name != "app") if source_dir.is_dir() else None
    app_folder = find_android_app_folder(folder)
    if app_folder is None:
        return None
    return folder / app_folder, app_folder == "android"


def project_config(folder: Path, user_config: Mapping[str, Any]) -> AndroidProjectConfig | None:
    """Resolve the host app's Android project, or None if there is none.

    Raises :class:`ConfigError` when the manifest cannot be read or yields
    no package name.
    """
    found = _source_dir(folder, user_config)
    if found is None:
        logger.debug("No android project under %s", folder)
        return None
    source_dir, is_flat = found

    manifest_path = _manifest_path(source_dir, user_config)
    if manifest_path is None:
        logger.debug("No AndroidManifest.xml under %s", source_dir)
        return None

    package_name = user_config.get("packageName")
    if not package_name:
        try:
            package_name = read_manifest_package(manifest_path)
        except (ET.ParseError, OSError) as e:
            raise ConfigError(
                f"Could not parse {manifest_path}: {e}",
                details={"path": str(manifest_path)},
            ) from e
        package_name = package_name or read_gradle_namespace(source_dir)
    if not package_name:
        raise ConfigError(
            f"No package name in {manifest_path} or the Gradle namespace",
            details={"path": str(manifest_path)},
        )

    package_folder = user_config.get("packageFolder") or package_name.replace(".", "/")

    def _path(key: str, default: Path, base: Path = source_dir) -> Path:
        value = user_config.get(key)
        return base / value if value else default

    return AndroidProjectConfig(
        source_dir=source_dir,
        folder=folder,
        is_flat=is_flat,
        manifest_path=manifest_path,
        package_name=package_name,
        package_folder=package_folder,
        main_file_path=_path(
            "mainFilePath",
            source_dir / "src" / "main" / "java" / package_folder / "MainApplication.java",
        ),
        strings_path=_path(
            "stringsPath", source_dir / "src" / "main" / "res" / "values" / "strings.xml"
        ),
        settings_gradle_path=_path(
            "settingsGradlePath", folder / "android" / "settings.gradle", base=folder
        ),
        build_gradle_path=_path("buildGradlePath", source_dir / "build.gradle"),
        app_name=user_config.get("appName", "app"),
    )


def dependency_config(
    folder: Path, user_config: Mapping[str, Any]
) -> AndroidDependencyConfig | None:
    """Resolve a dependency's Android library, or None if it ships none.

    Raises :class:`ConfigError` when an explicit ``manifestPath`` is missing.
    """
    found = _source_dir(folder, user_config)
    if found is None:
        return None
    source_dir, _ = found

    manifest_path = _manifest_path(source_dir, user_config)
    if manifest_path is None:
        logger.debug("%s: no AndroidManifest.xml", folder.name)
        return None

    package_name = user_config.get("packageName")
    if not package_name:
        try:
            package_name = read_manifest_package(manifest_path)
        except (ET.ParseError, OSError) as e:
            logger.warning("Could not parse %s: %s", manifest_path, e)
            return None
        package_name = package_name or read_gradle_namespace(source_dir)
    if not package_name:
        logger.debug("%s: no Android package name", folder.name)
        return None

    java_package, class_name = find_package_class(source_dir)
    if class_name is None:
        logger.debug("%s: no ReactPackage implementation found", folder.name)
        return None

    return AndroidDependencyConfig(
        source_dir=source_dir,
        folder=folder,
        manifest_path=manifest_path,
        package_name=package_name,
        package_class_name=class_name,
        package_import_path=user_config.get("packageImportPath")
        or f"import {java_package or package_name}.{class_name};",
        package_instance=user_config.get("packageInstance") or f"new {class_name}()",
    )
