"""Linear undo/redo history.

The history owns an ordered log of commands and a cursor. Everything left of
the cursor can be undone, everything right of it can be redone. Pushing a new
command discards the redo tail.

The history never inspects commands. Replaying one is delegated to the
``apply(command, direction)`` callable given at construction, where
direction is "undo" or "redo".
"""

from __future__ import annotations

import logging
from typing import Any, Callable

logger = logging.getLogger("blockflow.editor.history")

Applier = Callable[[Any, str], None]


class CommandHistory:
    def __init__(self, apply: Applier) -> None:
        self._apply = apply
        self._log: list[Any] = []
        self._cursor = 0

    def __len__(self) -> int:
        return len(self._log)

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def commands(self) -> tuple[Any, ...]:
        """Read-only view of the log, oldest first."""
        return tuple(self._log)

    def push(self, command: Any) -> None:
        del self._log[self._cursor:]
        self._log.append(command)
        self._cursor = len(self._log)
        logger.debug("history push %s (size=%d)", getattr(command, "kind", command), self._cursor)

    def undo(self) -> bool:
        """Revert the command left of the cursor. Returns False at the start."""
        if not self.can_undo():
            return False
        command = self._log[self._cursor - 1]
        self._apply(command, "undo")
        self._cursor -= 1
        return True

    def redo(self) -> bool:
        """Replay the command right of the cursor. Returns False at the end."""
        if not self.can_redo():
            return False
        command = self._log[self._cursor]
        self._apply(command, "redo")
        self._cursor += 1
        return True

    def can_undo(self) -> bool:
        return self._cursor > 0

    def can_redo(self) -> bool:
        return self._cursor < len(self._log)

    def clear(self) -> None:
        self._log.clear()
        self._cursor = 0

    def rewrite(self, transform: Callable[[Any], Any]) -> None:
        """Replace every stored command with ``transform(command)``."""
        self._log = [transform(command) for command in self._log]
