# src/taskboard_sync/tasks/partition.py

from __future__ import annotations

from collections.abc import Iterable

from .task_models import TaskRecord, TaskStatus

BoardColumns = dict[TaskStatus, list[TaskRecord]]


def partition_board(mirror: Iterable[TaskRecord]) -> BoardColumns:
    """
    Group the mirror into the three board columns.

    Pure and rebuilt from scratch on each call: every column is present (maybe
    empty) and keeps the mirror's newest-first order.
    """
    columns: BoardColumns = {status: [] for status in TaskStatus}
    for record in mirror:
        columns[record.status].append(record)
    return columns
