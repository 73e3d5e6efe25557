"""Shared fixtures: a HelloWorld app with Android and iOS projects, and native libraries."""

from __future__ import annotations

import json
import shutil
from pathlib import Path

import pytest

FIXTURES = Path(__file__).parent / "fixtures"

SETTINGS_GRADLE = """\
rootProject.name = 'HelloWorld'

include ':app'
"""

BUILD_GRADLE = """\
apply plugin: "com.android.application"

android {
    compileSdkVersion 28
}

dependencies {
    implementation fileTree(dir: "libs", include: ["*.jar"])
    implementation "com.facebook.react:react-native:+"
}
"""

APP_MANIFEST = """\
<manifest xmlns:android="http://schemas.android.com/apk/res/android"
    package="com.helloworld">
    <application android:name=".MainApplication" />
</manifest>
"""

STRINGS_XML = """\
<resources>
    <string name="app_name">HelloWorld</string>
</resources>
"""

MAIN_APPLICATION = """\
package com.helloworld;

import android.app.Application;

import com.facebook.react.ReactApplication;
import com.facebook.react.ReactNativeHost;
import com.facebook.react.ReactPackage;
import com.facebook.react.shell.MainReactPackage;

import java.util.Arrays;
import java.util.List;

public class MainApplication extends Application implements ReactApplication {

  private final ReactNativeHost mReactNativeHost = new ReactNativeHost(this) {
    @Override
    protected List<ReactPackage> getPackages() {
      return Arrays.<ReactPackage>asList(
          new MainReactPackage()
      );
    }
  };
}
"""

PODFILE = """\
platform :ios, '9.0'

target 'HelloWorld' do
  pod 'React', :path => '../node_modules/react-native'
end
"""

PACKAGE_CLASS = """\
package {package};

import com.facebook.react.ReactPackage;
import com.facebook.react.bridge.NativeModule;
import com.facebook.react.bridge.ReactApplicationContext;
import com.facebook.react.uimanager.ViewManager;

import java.util.Collections;
import java.util.List;

public class {name} implements ReactPackage {{
    @Override
    public List<NativeModule> createNativeModules(ReactApplicationContext reactContext) {{
        return Collections.emptyList();
    }}

    @Override
    public List<ViewManager> createViewManagers(ReactApplicationContext reactContext) {{
        return Collections.emptyList();
    }}
}}
"""


def write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def snapshot(root: Path) -> dict[str, bytes]:
    """Contents of every file under *root* outside node_modules."""
    return {
        str(p.relative_to(root)): p.read_bytes()
        for p in sorted(root.rglob("*"))
        if p.is_file() and "node_modules" not in p.relative_to(root).parts
    }


@pytest.fixture
def android_app(tmp_path: Path) -> Path:
    """An app with only an Android project."""
    write(tmp_path / "package.json", json.dumps({"name": "HelloWorld", "dependencies": {}}))
    android = tmp_path / "android"
    write(android / "settings.gradle", SETTINGS_GRADLE)
    write(android / "app" / "build.gradle", BUILD_GRADLE)
    main = android / "app" / "src" / "main"
    write(main / "AndroidManifest.xml", APP_MANIFEST)
    write(main / "res" / "values" / "strings.xml", STRINGS_XML)
    write(main / "java" / "com" / "helloworld" / "MainApplication.java", MAIN_APPLICATION)
    return tmp_path


@pytest.fixture
def ios_app(tmp_path: Path) -> Path:
    """An app with only an iOS project (no Podfile)."""
    write(tmp_path / "package.json", json.dumps({"name": "HelloWorld", "dependencies": {}}))
    project = tmp_path / "ios" / "HelloWorld.xcodeproj"
    project.mkdir(parents=True)
    shutil.copy(FIXTURES / "HelloWorld.pbxproj", project / "project.pbxproj")
    return tmp_path


@pytest.fixture
def app(android_app: Path, ios_app: Path) -> Path:
    """An app with both Android and iOS projects."""
    assert android_app == ios_app
    return android_app


@pytest.fixture
def add_dependency():
    """Factory installing a native library under ``node_modules``.

    ``android`` / ``ios`` select which native sources the library ships;
    ``rnpm`` becomes the ``rnpm`` key of its package.json.
    """

    def _add(
        root: Path,
        name: str,
        *,
        android: bool = True,
        ios: bool = True,
        podspec: bool = False,
        rnpm: dict | None = None,
        dev: bool = False,
    ) -> Path:
        manifest_path = root / "package.json"
        manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
        manifest.setdefault("devDependencies" if dev else "dependencies", {})[name] = "1.0.0"
        manifest_path.write_text(json.dumps(manifest, indent=2), encoding="utf-8")

        folder = root / "node_modules" / name
        package: dict = {"name": name, "version": "1.0.0"}
        if rnpm is not None:
            package["rnpm"] = rnpm
        write(folder / "package.json", json.dumps(package))

        if android:
            src = folder / "android" / "src" / "main"
            write(
                src / "AndroidManifest.xml",
                '<manifest xmlns:android="http://schemas.android.com/apk/res/android"\n'
                '    package="com.foo" />\n',
            )
            write(
                src / "java" / "com" / "foo" / "FooPackage.java",
                PACKAGE_CLASS.format(package="com.foo", name="FooPackage"),
            )
        if ios:
            project = folder / "ios" / "RCTFoo.xcodeproj"
            project.mkdir(parents=True)
            shutil.copy(FIXTURES / "RCTFoo.pbxproj", project / "project.pbxproj")
            write(folder / "ios" / "RCTFoo.h", "#import <React/RCTBridgeModule.h>\n")
            write(folder / "ios" / "RCTFoo.m", '#import "RCTFoo.h"\n')
        if podspec:
            write(folder / "RNFoo.podspec", "Pod::Spec.new do |s|\n  s.name = 'RNFoo'\nend\n")
        return folder

    return _add


@pytest.fixture
def podfile(ios_app: Path) -> Path:
    return write(ios_app / "ios" / "Podfile", PODFILE)
