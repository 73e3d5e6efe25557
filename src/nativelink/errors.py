"""
Exception hierarchy for nativelink.

Only conditions that stop work are raised.  Missing platform configs,
unreadable manifests and anchors that cannot be located are reported
through results and log lines instead; see ``nativelink.pipeline``.
"""

from __future__ import annotations


class NativeLinkError(Exception):
    """Base exception for all nativelink errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


# --- Configuration ---

class ConfigError(NativeLinkError):
    """The host project cannot be resolved; nothing can be linked."""
    pass


class ProjectFileError(ConfigError):
    """A native project file exists but cannot be read or parsed."""

    def __init__(self, path: str, reason: str, line: int | None = None):
        where = f"{path}:{line}" if line is not None else path
        super().__init__(
            f"Could not parse {where}: {reason}",
            details={"path": path, "reason": reason, "line": line},
        )


class DependencyNotFoundError(NativeLinkError):
    """A dependency named on the command line is not installed."""

    def __init__(self, name: str, folder: str):
        super().__init__(
            f"Unknown dependency '{name}'. Make sure it is installed in "
            f"node_modules and listed in package.json ({folder} not found)",
            details={"name": name, "folder": folder},
        )


# --- Patching ---

class AnchorError(NativeLinkError):
    """A patch anchor does not identify exactly one insertion point."""

    def __init__(self, message: str, path: str, patch_name: str, text: str):
        super().__init__(
            message, details={"path": path, "patch": patch_name, "text": text}
        )
        self.path = path
        self.patch_name = patch_name
        self.text = text

    def instructions(self) -> str:
        """Describe the edit the user has to make by hand."""
        return f"add the following to {self.path}:\n{self.text.strip()}"


class MissingAnchorError(AnchorError):
    """The anchor does not occur in the target file."""

    def __init__(self, path: str, patch_name: str, anchor: str, text: str):
        super().__init__(
            f"Anchor {anchor!r} for patch '{patch_name}' not found in {path}",
            path,
            patch_name,
            text,
        )


class AmbiguousAnchorError(AnchorError):
    """The anchor occurs more than once in the target file."""

    def __init__(
        self, path: str, patch_name: str, anchor: str, text: str, count: int
    ):
        super().__init__(
            f"Anchor {anchor!r} for patch '{patch_name}' matches {count} times "
            f"in {path}",
            path,
            patch_name,
            text,
        )
        self.details["count"] = count


# --- Registration ---

class RegistrationError(NativeLinkError):
    """A platform adapter failed while linking or unlinking a dependency."""

    def __init__(self, dependency: str, platform: str, action: str, reason: str):
        super().__init__(
            f"Failed to {action} '{dependency}' on {platform}: {reason}",
            details={
                "dependency": dependency,
                "platform": platform,
                "action": action,
                "reason": reason,
            },
        )
        self.dependency = dependency
        self.platform = platform
