"""Orchestrator: discover → resolve → link/unlink.

Dependencies are processed one after another, platforms in
:class:`~nativelink.model.Platform` order.  Runs touch native project files
in place without locking and without rollback, so two runs against the
same project must never overlap.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from pathlib import Path

from nativelink.config import load_dependencies, load_project
from nativelink.discovery import find_dependencies
from nativelink.errors import RegistrationError
from nativelink.model import Dependency, LinkResult, LinkStatus, Platform, Project
from nativelink.params import ParamPrompter
from nativelink.platforms import get_adapters
from nativelink.platforms.base import PlatformAdapter

logger = logging.getLogger(__name__)


class _Orchestrator:
    action = ""

    def __init__(
        self, project: Project, adapters: Mapping[Platform, PlatformAdapter]
    ) -> None:
        self.project = project
        self.adapters = adapters
        self.results: list[LinkResult] = []

    def _record(self, dependency: Dependency, platform: Platform | None,
                status: LinkStatus, detail: str = "") -> LinkResult:
        result = LinkResult(dependency.name, platform, status, detail)
        self.results.append(result)
        return result

    def _configs(self, dependency: Dependency, platform: Platform):
        """Return (project config, dependency config, link config) or None."""
        project_config = self.project.config_for(platform)
        dependency_config = dependency.config_for(platform)
        if project_config is None or dependency_config is None:
            return None
        link_config = self.adapters[platform].link_config()
        if link_config is None:
            return None
        return project_config, dependency_config, link_config

    def process(self, dependency: Dependency) -> None:
        for platform in self.adapters:
            configs = self._configs(dependency, platform)
            if configs is None:
                logger.debug("%s: %s not applicable", dependency.name, platform.label)
                self._record(dependency, platform, LinkStatus.NOT_APPLICABLE)
                continue
            try:
                self._process_platform(dependency, platform, *configs)
            except Exception as e:
                raise RegistrationError(
                    dependency.name, platform.value, self.action, str(e)
                ) from e

    def _process_platform(self, dependency, platform, project_config,
                          dependency_config, link_config) -> None:
        raise NotImplementedError

    def run(self, dependencies: Sequence[Dependency]) -> list[LinkResult]:
        for dependency in dependencies:
            try:
                self.process(dependency)
            except RegistrationError as e:
                logger.error("%s", e, exc_info=logger.isEnabledFor(logging.DEBUG))
                platform = Platform(e.platform)
                self._record(dependency, platform, LinkStatus.FAILED, str(e.__cause__ or e))
        return self.results


class LinkOrchestrator(_Orchestrator):
    """Register dependencies that are not installed yet."""

    action = "link"

    def __init__(self, project: Project, adapters: Mapping[Platform, PlatformAdapter],
                 prompter: ParamPrompter | None = None) -> None:
        super().__init__(project, adapters)
        self.prompter = prompter or ParamPrompter()

    def _process_platform(self, dependency, platform, project_config,
                          dependency_config, link_config) -> None:
        params = self.prompter.resolve(dependency.params)
        if link_config.is_installed(project_config, dependency.name, dependency_config):
            logger.info("%s is already linked on %s", dependency.name, platform.label)
            self._record(dependency, platform, LinkStatus.ALREADY_LINKED)
            return

        logger.info("Linking %s (%s)", dependency.name, platform.label)
        manual = link_config.register(
            dependency.name, dependency_config, params, project_config
        )
        if manual:
            for instruction in manual:
                logger.warning(
                    "%s (%s) needs manual linking: %s",
                    dependency.name, platform.label, instruction,
                )
            self._record(dependency, platform, LinkStatus.NEEDS_MANUAL, "\n".join(manual))
        else:
            self._record(dependency, platform, LinkStatus.LINKED)


class UnlinkOrchestrator(_Orchestrator):
    """Remove previously registered dependencies."""

    action = "unlink"

    def __init__(self, project: Project, adapters: Mapping[Platform, PlatformAdapter],
                 other_dependencies: Sequence[Dependency] = ()) -> None:
        super().__init__(project, adapters)
        self.other_dependencies = list(other_dependencies)

    def _process_platform(self, dependency, platform, project_config,
                          dependency_config, link_config) -> None:
        if not link_config.has_registration(project_config, dependency.name, dependency_config):
            logger.info("%s is not linked on %s", dependency.name, platform.label)
            self._record(dependency, platform, LinkStatus.NOT_LINKED)
            return

        logger.info("Unlinking %s (%s)", dependency.name, platform.label)
        others = [d for d in self.other_dependencies if d.name != dependency.name]
        manual = link_config.unregister(
            dependency.name, dependency_config, project_config, others
        )
        for instruction in manual:
            logger.warning(
                "%s (%s) needs manual unlinking: %s",
                dependency.name, platform.label, instruction,
            )
        self._record(dependency, platform, LinkStatus.UNLINKED, "\n".join(manual))


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def _prepare(root: Path, names: Sequence[str], platforms, adapters):
    root = root.resolve()
    adapters = adapters if adapters is not None else get_adapters(platforms)
    project = load_project(root, adapters)
    dependencies, unresolved = load_dependencies(root, names, adapters)
    failed = []
    for name, error in unresolved.items():
        logger.error("%s", error)
        failed.append(LinkResult(name, None, LinkStatus.FAILED, str(error)))
    return root, adapters, project, dependencies, failed


def run_link(
    root: Path,
    names: Sequence[str] | None = None,
    platforms: Sequence[Platform] | None = None,
    prompter: ParamPrompter | None = None,
    *,
    adapters: Mapping[Platform, PlatformAdapter] | None = None,
) -> list[LinkResult]:
    """Link *names* (default: every discovered native dependency) into *root*.

    Raises :class:`~nativelink.errors.ConfigError` when the project itself
    cannot be resolved.
    """
    if not names:
        names = find_dependencies(root)
        logger.debug("Discovered dependencies: %s", names)
    root, adapters, project, dependencies, failed = _prepare(root, names, platforms, adapters)

    orchestrator = LinkOrchestrator(project, adapters, prompter)
    return failed + orchestrator.run(dependencies)


def run_unlink(
    root: Path,
    names: Sequence[str] | None = None,
    platforms: Sequence[Platform] | None = None,
    *,
    adapters: Mapping[Platform, PlatformAdapter] | None = None,
) -> list[LinkResult]:
    """Unlink *names* (default: every discovered native dependency) from *root*.

    Shared pieces still used by the dependencies that stay are kept.
    """
    discovered = find_dependencies(root)
    if not names:
        names = discovered
        logger.debug("Discovered dependencies: %s", names)
    root, adapters, project, dependencies, failed = _prepare(root, names, platforms, adapters)

    targets = set(names)
    others, _ = load_dependencies(root, [n for n in discovered if n not in targets], adapters)

    orchestrator = UnlinkOrchestrator(project, adapters, others)
    return failed + orchestrator.run(dependencies)
