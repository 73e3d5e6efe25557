"""Ask for the interactive values a dependency declares, once per run."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from nativelink.model import Param

logger = logging.getLogger(__name__)


def ask_stdin(param: Param) -> str:
    """Prompt on the terminal; an empty answer selects the default."""
    suffix = f" [{param.default}]" if param.default else ""
    try:
        answer = input(f"{param.message}{suffix}: ").strip()
    except EOFError:
        answer = ""
    return answer or (param.default or "")


class ParamPrompter:
    """Resolve params, caching answers by name for the whole session.

    Every call to :meth:`resolve` blocks until all requested values are
    known, so registration code only ever sees final strings.
    """

    def __init__(
        self,
        ask: Callable[[Param], str] | None = None,
        *,
        interactive: bool = True,
    ) -> None:
        self._ask = ask or ask_stdin
        self._interactive = interactive
        self._answers: dict[str, str] = {}

    def resolve(self, params: Iterable[Param]) -> dict[str, str]:
        resolved: dict[str, str] = {}
        for param in params:
            if param.name not in self._answers:
                if self._interactive:
                    value = self._ask(param)
                else:
                    value = param.default or ""
                    logger.debug("Using default for param '%s'", param.name)
                self._answers[param.name] = value
            resolved[param.name] = self._answers[param.name]
        return resolved
