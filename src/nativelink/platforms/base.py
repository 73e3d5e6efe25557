"""Protocols every platform adapter conforms to."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, Protocol

from nativelink.model import Dependency, Platform


class LinkConfig(Protocol):
    """Capability set a platform exposes to take part in linking."""

    def is_installed(
        self, project_config: Any, name: str, dependency_config: Any
    ) -> bool:
        """Return True if *name* is already registered in the project."""
        ...

    def has_registration(
        self, project_config: Any, name: str, dependency_config: Any
    ) -> bool:
        """Return True if any edit :meth:`register` makes for *name* is present.

        Differs from :meth:`is_installed` after a partial link.
        """
        ...

    def register(
        self,
        name: str,
        dependency_config: Any,
        params: Mapping[str, str],
        project_config: Any,
    ) -> list[str]:
        """Register *name*; return instructions for steps left to the user."""
        ...

    def unregister(
        self,
        name: str,
        dependency_config: Any,
        project_config: Any,
        other_dependencies: Sequence[Dependency],
    ) -> list[str]:
        """Remove what :meth:`register` added; absent entries are ignored."""
        ...


class PlatformAdapter(Protocol):
    """Resolves configs for one platform and hands out its link config."""

    platform: Platform

    def project_config(self, root: Path, user_config: Mapping[str, Any]) -> Any:
        """Return the host project's config, or None if the platform is absent."""
        ...

    def dependency_config(
        self, folder: Path, user_config: Mapping[str, Any]
    ) -> Any:
        """Return a dependency's config, or None if it ships no native code."""
        ...

    def link_config(self) -> LinkConfig | None:
        """Return the link capability set, or None to opt out of linking."""
        ...
