"""Editor behaviour settings."""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class EditorSettings:
    """Immutable editor settings loaded from environment variables.

    min_move_before_log:  Minimum drag distance (canvas units) before a move is
                          recorded in the history. Clicking into a field inside
                          a node jitters its position by a few pixels.
    paste_offset:         x/y offset applied to pasted copies.
    default_name:         Graph name used when the user left it blank.
    default_description:  Graph description used when the user left it blank.
    """

    min_move_before_log: float = 50.0
    paste_offset: float = 20.0
    default_name: str = "Agent Name"
    default_description: str = "Agent Description"

    @classmethod
    def from_env(cls) -> EditorSettings:
        return cls(
            min_move_before_log=float(os.getenv("BLOCKFLOW_MIN_MOVE", "50")),
            paste_offset=float(os.getenv("BLOCKFLOW_PASTE_OFFSET", "20")),
        )
