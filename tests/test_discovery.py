"""Tests for native-module discovery from package.json."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from nativelink.discovery import find_dependencies, is_native_module_name


def _manifest(tmp_path: Path, data) -> Path:
    (tmp_path / "package.json").write_text(
        data if isinstance(data, str) else json.dumps(data), encoding="utf-8"
    )
    return tmp_path


def test_filters_and_keeps_manifest_order(tmp_path):
    root = _manifest(
        tmp_path,
        {
            "dependencies": {
                "react-native-foo": "1.0",
                "lodash": "4",
                "@scope/react-native-bar": "1.0",
                "rnpm-plugin-baz": "1.0",
                "@react-native-community/qux": "1.0",
            }
        },
    )
    assert find_dependencies(root) == [
        "react-native-foo",
        "@scope/react-native-bar",
        "rnpm-plugin-baz",
        "@react-native-community/qux",
    ]


def test_dev_dependencies_follow_dependencies_without_duplicates(tmp_path):
    root = _manifest(
        tmp_path,
        {
            "dependencies": {"react-native-a": "1", "react-native-b": "1"},
            "devDependencies": {"react-native-b": "1", "react-native-c": "1"},
        },
    )
    assert find_dependencies(root) == ["react-native-a", "react-native-b", "react-native-c"]


@pytest.mark.parametrize(
    "name, expected",
    [
        ("react-native-maps", True),
        ("@mapbox/react-native-mapbox-gl", True),
        ("@react-native-community/async-storage", True),
        ("rnpm-plugin-windows", True),
        ("@acme/rnpm-plugin-thing", True),
        ("@react-native-community/rnpm-plugin-thing", False),
        ("react-native", False),
        ("react", False),
        ("my-react-native-lib", False),
    ],
)
def test_is_native_module_name(name, expected):
    assert is_native_module_name(name) is expected


def test_missing_manifest_is_empty(tmp_path):
    assert find_dependencies(tmp_path) == []


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        "[1, 2, 3]",
        '{"dependencies": ["react-native-foo"]}',
    ],
)
def test_malformed_manifest_is_empty(tmp_path, content):
    root = _manifest(tmp_path, content)
    assert find_dependencies(root) == []
