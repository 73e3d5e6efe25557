"""Platform-agnostic data model for dependencies, projects and link results."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any


class Platform(str, Enum):
    """Native platforms, in the order they are processed."""

    IOS = "ios"
    ANDROID = "android"

    @property
    def label(self) -> str:
        return {"ios": "iOS", "android": "Android"}[self.value]


class LinkStatus(str, Enum):
    """Terminal state of one (dependency, platform) entry."""

    NOT_APPLICABLE = "not-applicable"
    ALREADY_LINKED = "already-linked"
    LINKED = "linked"
    NEEDS_MANUAL = "needs-manual"
    FAILED = "failed"
    NOT_LINKED = "not-linked"
    UNLINKED = "unlinked"


@dataclass(frozen=True)
class Param:
    """An interactive value a dependency needs before it can be registered."""

    name: str
    message: str = ""
    default: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Param:
        default = data.get("default")
        return cls(
            name=str(data["name"]),
            message=str(data.get("message") or data["name"]),
            default=None if default is None else str(default),
        )


@dataclass(frozen=True)
class Dependency:
    """A native dependency found in ``node_modules``."""

    name: str
    root: Path
    platforms: Mapping[Platform, Any] = field(
        default_factory=lambda: MappingProxyType({})
    )
    params: tuple[Param, ...] = ()

    def config_for(self, platform: Platform) -> Any:
        return self.platforms.get(platform)


@dataclass(frozen=True)
class Project:
    """The host app and its per-platform project configs."""

    root: Path
    platforms: Mapping[Platform, Any] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def config_for(self, platform: Platform) -> Any:
        return self.platforms.get(platform)


@dataclass
class LinkResult:
    """Outcome reported for one dependency on one platform."""

    dependency: str
    platform: Platform | None
    status: LinkStatus
    detail: str = ""
