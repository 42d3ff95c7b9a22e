# src/taskboard_sync/tasks/status_machine.py

from __future__ import annotations

"""
Status transitions of board tasks.

The board allows arbitrary reassignment: any of the three statuses can move to
any other (Done -> To Do included). The only thing rejected is a value outside
the enum. Nothing here is time- or record-driven; every move is a user action.
"""

import re
from typing import Any

from ..core.errors import InvalidStatusError
from .task_models import TaskStatus

_SEPARATORS = re.compile(r"[\s_\-]+")

# Collapsed spelling -> status ("In Progress", "in_progress", "InProgress" -> "inprogress").
_SPELLINGS: dict[str, TaskStatus] = {
    "todo": TaskStatus.TODO,
    "inprogress": TaskStatus.IN_PROGRESS,
    "done": TaskStatus.DONE,
}


class TaskStatusMachine:
    def normalize(self, raw: Any) -> TaskStatus:
        """Map any accepted spelling to a TaskStatus or raise InvalidStatusError."""
        if isinstance(raw, TaskStatus):
            return raw
        if not isinstance(raw, str):
            raise InvalidStatusError(raw)
        key = _SEPARATORS.sub("", raw.strip().lower())
        status = _SPELLINGS.get(key)
        if status is None:
            raise InvalidStatusError(raw)
        return status

    def allowed_targets(self, current: TaskStatus | None) -> frozenset[TaskStatus]:
        return frozenset(TaskStatus)

    def validate_transition(self, current: TaskStatus | None, target: Any) -> TaskStatus:
        """
        Validate a move and return the normalized target.

        `current` is None when the task is not in the local mirror; the remote
        store stays authoritative, so the move is still allowed.
        """
        status = self.normalize(target)
        if status not in self.allowed_targets(current):
            raise InvalidStatusError(target)
        return status
