"""Pattern-anchored text patches for build scripts and source files.

A :class:`Patch` inserts ``text`` next to the single occurrence of an
``anchor`` in a file.  Files are read and written as raw bytes so that line
endings and every byte outside the insertion survive unchanged, which makes
:func:`revert_patch` an exact inverse of :func:`apply_patch`.

Anchors are matched against the current file content, so two processes
patching the same file at once can corrupt it.  Callers run patches strictly
one after another.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from nativelink.errors import AmbiguousAnchorError, MissingAnchorError

logger = logging.getLogger(__name__)


class Relation(str, Enum):
    BEFORE = "before"
    AFTER = "after"
    APPEND = "append"


@dataclass(frozen=True)
class Patch:
    """A named insertion of *text* relative to an anchor.

    *anchor* is either a literal string or a compiled regular expression.
    It is ignored for ``Relation.APPEND``, which adds *text* at the end of
    the file.
    """

    name: str
    anchor: str | re.Pattern[str] | None
    text: str
    relation: Relation = Relation.AFTER

    def pattern(self) -> re.Pattern[str]:
        if isinstance(self.anchor, re.Pattern):
            return self.anchor
        if self.anchor is None:
            raise ValueError(f"patch '{self.name}' has no anchor")
        return re.compile(re.escape(self.anchor))

    def describe_anchor(self) -> str:
        if isinstance(self.anchor, re.Pattern):
            return self.anchor.pattern
        return str(self.anchor)


def read_text(path: Path) -> str:
    """Read *path* verbatim (no newline translation)."""
    return path.read_bytes().decode("utf-8")


def write_text(path: Path, content: str) -> None:
    path.write_bytes(content.encode("utf-8"))


def _anchor_matches(content: str, patch: Patch) -> list[re.Match[str]]:
    return list(patch.pattern().finditer(content))


def _is_adjacent(content: str, match: re.Match[str], patch: Patch) -> bool:
    if patch.relation is Relation.AFTER:
        return content.startswith(patch.text, match.end())
    return content[: match.start()].endswith(patch.text)


def is_patch_applied(path: Path, patch: Patch) -> bool:
    """Return True if *path* already contains the text *patch* inserts."""
    if not patch.text:
        return True
    try:
        return patch.text in read_text(path)
    except FileNotFoundError:
        return False


def apply_patch(path: Path, patch: Patch) -> bool:
    """Insert *patch* into *path*; return True if the file was written.

    A file that already contains the text anywhere is left alone, so other
    insertions after the same anchor do not hide an earlier one.  Raises :class:`MissingAnchorError` or :class:`AmbiguousAnchorError`
    without touching the file when the anchor does not match exactly once.
    """
    if not patch.text:
        return False

    content = read_text(path)
    if patch.text in content:
        logger.debug("Patch '%s' already present in %s", patch.name, path)
        return False

    if patch.relation is Relation.APPEND:
        write_text(path, content + patch.text)
        logger.debug("Applied patch '%s' to %s", patch.name, path)
        return True

    matches = _anchor_matches(content, patch)
    if not matches:
        raise MissingAnchorError(
            str(path), patch.name, patch.describe_anchor(), patch.text
        )
    if len(matches) > 1:
        raise AmbiguousAnchorError(
            str(path), patch.name, patch.describe_anchor(), patch.text, len(matches)
        )

    match = matches[0]
    offset = match.end() if patch.relation is Relation.AFTER else match.start()
    write_text(path, content[:offset] + patch.text + content[offset:])
    logger.debug("Applied patch '%s' to %s", patch.name, path)
    return True


def _locate(content: str, patch: Patch) -> int | None:
    """Return the offset of the block *patch* inserted, or None."""
    count = content.count(patch.text)
    if count == 0:
        return None

    if patch.relation is Relation.APPEND:
        if content.endswith(patch.text):
            return len(content) - len(patch.text)
    else:
        # Prefer the copy sitting right next to its anchor.
        for match in _anchor_matches(content, patch):
            if _is_adjacent(content, match, patch):
                if patch.relation is Relation.AFTER:
                    return match.end()
                return match.start() - len(patch.text)

    if count == 1:
        return content.index(patch.text)
    return None


def revert_patch(path: Path, patch: Patch) -> bool:
    """Remove the block *patch* inserted into *path*; return True if removed.

    A missing file or block is not an error.
    """
    if not patch.text:
        return False
    try:
        content = read_text(path)
    except FileNotFoundError:
        logger.debug("Nothing to revert: %s does not exist", path)
        return False

    offset = _locate(content, patch)
    if offset is None:
        if patch.text in content:
            logger.warning(
                "Patch '%s' occurs several times in %s; leaving it in place",
                patch.name,
                path,
            )
        return False

    write_text(path, content[:offset] + content[offset + len(patch.text) :])
    logger.debug("Reverted patch '%s' in %s", patch.name, path)
    return True
