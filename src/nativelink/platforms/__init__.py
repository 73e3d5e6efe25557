"""Platform adapter registry."""

from __future__ import annotations

from collections.abc import Iterable

from nativelink.errors import ConfigError
from nativelink.model import Platform
from nativelink.platforms.android import AndroidPlatform
from nativelink.platforms.base import LinkConfig, PlatformAdapter
from nativelink.platforms.ios import IOSPlatform

_ADAPTERS: dict[Platform, type] = {
    Platform.IOS: IOSPlatform,
    Platform.ANDROID: AndroidPlatform,
}


def parse_platforms(names: Iterable[str]) -> list[Platform]:
    """Map platform names to :class:`Platform` members.

    Raises :class:`ConfigError` for an unknown name.
    """
    selected: list[Platform] = []
    for name in names:
        try:
            platform = Platform(name.strip().lower())
        except ValueError:
            known = ", ".join(p.value for p in Platform)
            raise ConfigError(
                f"Unknown platform '{name}' (expected one of: {known})",
                details={"platform": name},
            ) from None
        if platform not in selected:
            selected.append(platform)
    return selected


def get_adapters(
    selected: Iterable[Platform] | None = None,
) -> dict[Platform, PlatformAdapter]:
    """Return adapters keyed by platform, in declaration order."""
    wanted = set(selected) if selected is not None else set(Platform)
    return {p: _ADAPTERS[p]() for p in Platform if p in wanted}


__all__ = ["LinkConfig", "PlatformAdapter", "get_adapters", "parse_platforms"]
