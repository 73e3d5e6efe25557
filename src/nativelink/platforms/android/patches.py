"""Text patches that wire an Android library into the host Gradle build."""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path
from xml.sax.saxutils import escape, unescape

from nativelink.patch import Patch, read_text
from nativelink.platforms.android.config import AndroidDependencyConfig, AndroidProjectConfig

_PARAM_RE = re.compile(r"\$\{(\w+)\}")
_WORD_RE = re.compile(r"[A-Z]?[a-z]+|[A-Z]+(?![a-z])|\d+")


def normalize_project_name(name: str) -> str:
    """Gradle project names cannot contain ``/``; scoped names use ``_``."""
    return name.replace("/", "_")


def camel_case(name: str) -> str:
    """``@scope/react-native-foo`` -> ``scopeReactNativeFoo``."""
    words = [w.lower() for w in _WORD_RE.findall(name)]
    if not words:
        return ""
    return words[0] + "".join(w.capitalize() for w in words[1:])


def apply_params(text: str, params: Mapping[str, str], prefix: str) -> str:
    """Replace ``${param}`` with a string-resource lookup, or ``null`` if unset."""

    def _replace(match: re.Match[str]) -> str:
        param = match.group(1)
        if not params.get(param):
            return "null"
        return f"getResources().getString(R.string.{prefix}_{param})"

    return _PARAM_RE.sub(_replace, text)


def make_settings_patch(
    name: str, dependency: AndroidDependencyConfig, project: AndroidProjectConfig
) -> Patch:
    project_name = normalize_project_name(name)
    project_dir = Path(
        os.path.relpath(dependency.source_dir, project.settings_gradle_path.parent)
    ).as_posix()
    app = re.escape(project.app_name)
    return Patch(
        name="settings.gradle",
        anchor=re.compile(rf"^include[ \t]*\(?[ \t]*['\"]:{app}['\"][ \t]*\)?[ \t]*\r?\n", re.M),
        text=(
            f"include ':{project_name}'\n"
            f"project(':{project_name}').projectDir = "
            f"new File(rootProject.projectDir, '{project_dir}')\n"
        ),
    )


def build_install_pattern(name: str) -> re.Pattern[str]:
    project_name = re.escape(normalize_project_name(name))
    return re.compile(
        rf"(implementation|api|compile)\w*\s*\(*project\(['\"]:{project_name}['\"]\)"
    )


def make_build_patch(name: str) -> Patch:
    return Patch(
        name="build.gradle",
        anchor=re.compile(r"^dependencies[ \t]*\{[ \t]*\r?\n", re.M),
        text=f"    implementation project(':{normalize_project_name(name)}')\n",
    )


def make_strings_patch(params: Mapping[str, str], prefix: str) -> Patch:
    lines = [
        f'    <string moduleConfig="true" name="{prefix}_{param}">{escape(value)}</string>\n'
        for param, value in params.items()
    ]
    return Patch(
        name="strings.xml",
        anchor=re.compile(r"<resources\b[^>]*>[ \t]*\r?\n"),
        text="".join(lines),
    )


def make_package_patch(package_instance: str, params: Mapping[str, str], prefix: str) -> Patch:
    return Patch(
        name="package",
        anchor="new MainReactPackage()",
        text=f",\n            {apply_params(package_instance, params, prefix)}",
    )


def make_import_patch(package_import_path: str) -> Patch:
    return Patch(
        name="import",
        anchor="import com.facebook.react.ReactApplication;",
        text=f"\n{package_import_path}",
    )


def read_module_params(strings_path: Path, prefix: str) -> dict[str, str]:
    """Recover the param values a previous link wrote to strings.xml."""
    try:
        content = read_text(strings_path)
    except FileNotFoundError:
        return {}
    pattern = re.compile(
        rf'<string moduleConfig="true" name="{re.escape(prefix)}_(\w+)">(.*?)</string>', re.S
    )
    return {m.group(1): unescape(m.group(2)) for m in pattern.finditer(content)}
