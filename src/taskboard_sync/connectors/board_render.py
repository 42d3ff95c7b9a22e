# src/taskboard_sync/connectors/board_render.py

"""Plain-text rendering of the three board columns for the console connector."""

from __future__ import annotations

import shutil
import textwrap
from datetime import datetime

from ..sync.engine import BoardState, SyncPhase
from ..tasks.partition import BoardColumns
from ..tasks.task_models import TaskRecord, TaskStatus

MIN_COL_WIDTH = 18
SEP = " | "
NO_ASSIGNEE = "—"


def numbered_cards(columns: BoardColumns) -> list[tuple[int, TaskRecord]]:
    """Board numbers (#1, #2, ...) in display order: column by column, top to bottom."""
    out: list[tuple[int, TaskRecord]] = []
    n = 1
    for status in TaskStatus:
        for record in columns[status]:
            out.append((n, record))
            n += 1
    return out


def _fmt_local(dt: datetime) -> str:
    return dt.astimezone().strftime("%Y-%m-%d %H:%M")


def _card_lines(number: int, record: TaskRecord, width: int) -> list[str]:
    lines = textwrap.wrap(f"#{number} {record.name}", width=width) or [f"#{number}"]
    meta = f"  {record.assigned_to or NO_ASSIGNEE} · {record.priority.value}"
    lines.extend(textwrap.wrap(meta, width=width, subsequent_indent="  "))
    if record.due_at is not None:
        lines.append(f"  due {_fmt_local(record.due_at)}"[:width])
    return lines


def _column_width(term_width: int) -> int:
    count = len(TaskStatus)
    usable = term_width - len(SEP) * (count - 1)
    return max(MIN_COL_WIDTH, usable // count)


def _status_line(state: BoardState) -> str | None:
    if state.phase == SyncPhase.LOADING:
        return "Loading board..."
    if state.phase == SyncPhase.IDLE:
        return "Not connected."
    if state.phase == SyncPhase.STALE:
        reason = str(state.error) if state.error else "connection lost"
        return f"[STALE] Showing last known board ({reason})."
    if state.is_empty:
        return "No tasks yet. Use /add <name> to create one."
    return None


def render_board(state: BoardState, *, term_width: int | None = None) -> str:
    if term_width is None:
        term_width = shutil.get_terminal_size((120, 30)).columns
    width = _column_width(term_width)

    cells: dict[TaskStatus, list[str]] = {status: [] for status in TaskStatus}
    for number, record in numbered_cards(state.columns):
        cells[record.status].extend(_card_lines(number, record, width))
        cells[record.status].append("")

    headers = [f"{status.value} ({len(state.columns[status])})".ljust(width) for status in TaskStatus]
    out = [SEP.join(headers).rstrip(), SEP.join("-" * width for _ in TaskStatus)]

    rows = max((len(c) for c in cells.values()), default=0)
    for i in range(rows):
        row = []
        for status in TaskStatus:
            col = cells[status]
            row.append((col[i] if i < len(col) else "").ljust(width))
        out.append(SEP.join(row).rstrip())

    status_line = _status_line(state)
    if status_line:
        out.append(status_line)
    return "\n".join(out).rstrip("\n")
