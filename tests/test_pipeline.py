"""Tests for the link/unlink orchestrators and run entry points."""

from __future__ import annotations

import json

import pytest

from conftest import snapshot, write
from nativelink.errors import ConfigError
from nativelink.model import LinkStatus, Platform
from nativelink.params import ParamPrompter
from nativelink.patch import Patch, Relation, apply_patch, read_text, revert_patch
from nativelink.pipeline import run_link, run_unlink

# ---------------------------------------------------------------------------
# Single-patch fake adapters
# ---------------------------------------------------------------------------


class SinglePatchLink:
    """Adds one line per dependency to one file of the project."""

    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.registered = []

    def _patch(self, name):
        return Patch("line", None, f"linked {name}\n", Relation.APPEND)

    def is_installed(self, project_config, name, dependency_config):
        return f"linked {name}\n" in read_text(project_config)

    has_registration = is_installed

    def register(self, name, dependency_config, params, project_config):
        if name in self.fail_on:
            raise RuntimeError(f"cannot register {name}")
        self.registered.append((name, dict(params)))
        apply_patch(project_config, self._patch(name))
        return []

    def unregister(self, name, dependency_config, project_config, other_dependencies):
        revert_patch(project_config, self._patch(name))
        return []


class FakePlatform:
    def __init__(self, platform, filename, fail_on=()):
        self.platform = platform
        self.filename = filename
        self.link = SinglePatchLink(fail_on)

    def project_config(self, root, user_config):
        path = root / self.platform.value / self.filename
        return path if path.exists() else None

    def dependency_config(self, folder, user_config):
        return folder if (folder / self.platform.value).is_dir() else None

    def link_config(self):
        return self.link


@pytest.fixture
def fake_app(tmp_path):
    write(tmp_path / "package.json", '{"dependencies": {}}')
    write(tmp_path / "android" / "settings.gradle", "include ':app'\n")
    write(tmp_path / "ios" / "Podfile", "target 'App' do\nend\n")
    return tmp_path


def _fake_adapters(fail_on=()):
    return {
        Platform.IOS: FakePlatform(Platform.IOS, "Podfile", fail_on),
        Platform.ANDROID: FakePlatform(Platform.ANDROID, "settings.gradle", fail_on),
    }


def _fake_dependency(root, name, platforms, params=None):
    manifest = json.loads((root / "package.json").read_text())
    manifest["dependencies"][name] = "1.0.0"
    (root / "package.json").write_text(json.dumps(manifest))
    folder = root / "node_modules" / name
    package = {"name": name}
    if params:
        package["rnpm"] = {"params": params}
    write(folder / "package.json", json.dumps(package))
    for platform in platforms:
        (folder / platform).mkdir()
    return folder


def _state(root):
    return {
        str(p.relative_to(root)): (p.read_bytes(), p.stat().st_mtime_ns)
        for p in sorted(root.rglob("*"))
        if p.is_file() and "node_modules" not in p.relative_to(root).parts
    }


def _statuses(results):
    return [(r.dependency, r.platform, r.status) for r in results]


# ---------------------------------------------------------------------------
# Scenarios with fake adapters
# ---------------------------------------------------------------------------


def test_android_only_dependency_writes_one_file(fake_app):
    _fake_dependency(fake_app, "react-native-droid", ["android"])
    before = _state(fake_app)

    results = run_link(fake_app, adapters=_fake_adapters())

    assert _statuses(results) == [
        ("react-native-droid", Platform.IOS, LinkStatus.NOT_APPLICABLE),
        ("react-native-droid", Platform.ANDROID, LinkStatus.LINKED),
    ]
    after = _state(fake_app)
    changed = [path for path in after if after[path] != before.get(path)]
    assert changed == ["android/settings.gradle"]


def test_already_linked_performs_no_writes(fake_app):
    _fake_dependency(fake_app, "react-native-foo", ["android", "ios"])
    adapters = _fake_adapters()
    run_link(fake_app, adapters=adapters)
    before = _state(fake_app)

    results = run_link(fake_app, adapters=adapters)

    assert {r.status for r in results} == {LinkStatus.ALREADY_LINKED}
    assert _state(fake_app) == before


def test_failure_aborts_remaining_platforms_and_continues(fake_app):
    _fake_dependency(fake_app, "react-native-bad", ["android", "ios"])
    _fake_dependency(fake_app, "react-native-good", ["android", "ios"])

    results = run_link(fake_app, adapters=_fake_adapters(fail_on={"react-native-bad"}))

    assert _statuses(results) == [
        ("react-native-bad", Platform.IOS, LinkStatus.FAILED),
        ("react-native-good", Platform.IOS, LinkStatus.LINKED),
        ("react-native-good", Platform.ANDROID, LinkStatus.LINKED),
    ]
    assert "cannot register react-native-bad" in results[0].detail


def test_unknown_dependency_is_failed_and_skipped(fake_app):
    _fake_dependency(fake_app, "react-native-foo", ["android"])

    results = run_link(
        fake_app, ["react-native-missing", "react-native-foo"], adapters=_fake_adapters()
    )

    assert results[0].dependency == "react-native-missing"
    assert results[0].platform is None
    assert results[0].status is LinkStatus.FAILED
    assert results[-1].status is LinkStatus.LINKED


def test_params_are_asked_once_per_run(fake_app):
    param = [{"name": "apiKey", "message": "API key?"}]
    _fake_dependency(fake_app, "react-native-a", ["android", "ios"], params=param)
    _fake_dependency(fake_app, "react-native-b", ["android"], params=param)
    asked = []

    def ask(p):
        asked.append(p.name)
        return "secret"

    adapters = _fake_adapters()
    run_link(fake_app, adapters=adapters, prompter=ParamPrompter(ask))

    assert asked == ["apiKey"]
    registered = adapters[Platform.ANDROID].link.registered
    assert registered == [("react-native-a", {"apiKey": "secret"}),
                          ("react-native-b", {"apiKey": "secret"})]


def test_unlink_statuses(fake_app):
    _fake_dependency(fake_app, "react-native-foo", ["android", "ios"])
    adapters = _fake_adapters()
    before = _state(fake_app)
    run_link(fake_app, adapters=adapters)

    results = run_unlink(fake_app, ["react-native-foo"], adapters=adapters)
    assert {r.status for r in results} == {LinkStatus.UNLINKED}
    assert {k: v[0] for k, v in _state(fake_app).items()} == {
        k: v[0] for k, v in before.items()
    }

    results = run_unlink(fake_app, ["react-native-foo"], adapters=adapters)
    assert {r.status for r in results} == {LinkStatus.NOT_LINKED}


# ---------------------------------------------------------------------------
# End to end with the real adapters
# ---------------------------------------------------------------------------


def test_link_unlink_round_trip(app, add_dependency):
    add_dependency(app, "react-native-foo")
    before = {k: v[0] for k, v in _state(app).items()}

    results = run_link(app, prompter=ParamPrompter(interactive=False))
    assert _statuses(results) == [
        ("react-native-foo", Platform.IOS, LinkStatus.LINKED),
        ("react-native-foo", Platform.ANDROID, LinkStatus.LINKED),
    ]
    linked = _state(app)

    again = run_link(app, prompter=ParamPrompter(interactive=False))
    assert {r.status for r in again} == {LinkStatus.ALREADY_LINKED}
    assert _state(app) == linked

    results = run_unlink(app, ["react-native-foo"])
    assert {r.status for r in results} == {LinkStatus.UNLINKED}
    assert {k: v[0] for k, v in _state(app).items()} == before


def test_platform_filter_leaves_other_platform_untouched(app, add_dependency):
    add_dependency(app, "react-native-foo")
    pbxproj = app / "ios" / "HelloWorld.xcodeproj" / "project.pbxproj"
    original = pbxproj.read_bytes()

    results = run_link(app, platforms=[Platform.ANDROID], prompter=ParamPrompter(interactive=False))

    assert _statuses(results) == [
        ("react-native-foo", Platform.ANDROID, LinkStatus.LINKED),
    ]
    assert pbxproj.read_bytes() == original


def test_unresolvable_project_raises(android_app):
    write(android_app / "android" / "app" / "src" / "main" / "AndroidManifest.xml", "<manifest")
    with pytest.raises(ConfigError):
        run_link(android_app)


def _indent_dependencies_block(root):
    build_gradle = root / "android" / "app" / "build.gradle"
    build_gradle.write_text(build_gradle.read_text().replace("dependencies {", "  dependencies {"))


def _package_overrides(prefix):
    return {
        "android": {
            "packageInstance": f"new {prefix}Package()",
            "packageImportPath": f"import com.foo.{prefix}Package;",
        }
    }


def test_relink_after_manual_result_changes_nothing(android_app, add_dependency):
    _indent_dependencies_block(android_app)
    add_dependency(android_app, "react-native-a", ios=False, rnpm=_package_overrides("A"))
    add_dependency(android_app, "react-native-b", ios=False, rnpm=_package_overrides("B"))
    prompter = ParamPrompter(interactive=False)

    first = run_link(android_app, platforms=[Platform.ANDROID], prompter=prompter)
    assert {r.status for r in first} == {LinkStatus.NEEDS_MANUAL}
    linked = snapshot(android_app)

    second = run_link(android_app, platforms=[Platform.ANDROID], prompter=prompter)
    assert {r.status for r in second} == {LinkStatus.NEEDS_MANUAL}
    assert snapshot(android_app) == linked
    settings = (android_app / "android" / "settings.gradle").read_text()
    assert settings.count("include ':react-native-a'") == 1
    assert settings.count("include ':react-native-b'") == 1


def test_unlink_after_partial_link_restores_files(android_app, add_dependency):
    _indent_dependencies_block(android_app)
    add_dependency(android_app, "react-native-a", ios=False)
    before = snapshot(android_app)

    results = run_link(
        android_app, platforms=[Platform.ANDROID], prompter=ParamPrompter(interactive=False)
    )
    assert _statuses(results) == [("react-native-a", Platform.ANDROID, LinkStatus.NEEDS_MANUAL)]
    assert "include ':react-native-a'" in (android_app / "android" / "settings.gradle").read_text()

    results = run_unlink(android_app, ["react-native-a"], platforms=[Platform.ANDROID])
    assert _statuses(results) == [("react-native-a", Platform.ANDROID, LinkStatus.UNLINKED)]
    assert snapshot(android_app) == before

    results = run_unlink(android_app, ["react-native-a"], platforms=[Platform.ANDROID])
    assert _statuses(results) == [("react-native-a", Platform.ANDROID, LinkStatus.NOT_LINKED)]


def test_unresolvable_dependency_fails_alone(android_app, add_dependency):
    add_dependency(
        android_app, "react-native-bad", ios=False,
        rnpm={"android": {"manifestPath": "nope.xml"}},
    )
    add_dependency(android_app, "react-native-good", ios=False)

    results = run_link(
        android_app, platforms=[Platform.ANDROID], prompter=ParamPrompter(interactive=False)
    )

    assert _statuses(results) == [
        ("react-native-bad", None, LinkStatus.FAILED),
        ("react-native-good", Platform.ANDROID, LinkStatus.LINKED),
    ]
    assert "nope.xml" in results[0].detail


def test_android_only_dependency_leaves_ios_files_untouched(app, add_dependency):
    add_dependency(app, "react-native-droid", ios=False)
    before = _state(app)

    results = run_link(app, prompter=ParamPrompter(interactive=False))

    assert _statuses(results) == [
        ("react-native-droid", Platform.IOS, LinkStatus.NOT_APPLICABLE),
        ("react-native-droid", Platform.ANDROID, LinkStatus.LINKED),
    ]
    after = _state(app)
    changed = sorted(path for path in after if after[path] != before.get(path))
    assert changed
    assert all(path.startswith("android/") for path in changed)
