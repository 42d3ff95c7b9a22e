# tests/test_board_render.py

from __future__ import annotations

from taskboard_sync.connectors.board_render import numbered_cards, render_board
from taskboard_sync.connectors.console_connector import BoardPrinter
from taskboard_sync.core.errors import SubscriptionError
from taskboard_sync.sync.engine import BoardState, SyncPhase
from taskboard_sync.tasks.partition import partition_board
from taskboard_sync.tasks.task_models import TaskPriority, TaskRecord, TaskStatus

from .fakes import ts


def _board(records: list[TaskRecord], phase: SyncPhase = SyncPhase.LIVE, error=None) -> BoardState:
    return BoardState(phase=phase, columns=partition_board(records), total=len(records), error=error)


RECORDS = [
    TaskRecord(id="c", name="Deploy", status=TaskStatus.DONE, created_at=ts(3)),
    TaskRecord(
        id="b",
        name="Review the sync engine",
        status=TaskStatus.IN_PROGRESS,
        created_at=ts(2),
        assigned_to="Bob",
        priority=TaskPriority.HIGH,
    ),
    TaskRecord(id="a", name="Write spec", status=TaskStatus.TODO, created_at=ts(1), due_at=ts(600)),
]


def test_numbering_follows_columns() -> None:
    numbered = numbered_cards(partition_board(RECORDS))
    assert [(n, r.id) for n, r in numbered] == [(1, "a"), (2, "b"), (3, "c")]


def test_render_shows_headers_cards_and_meta() -> None:
    text = render_board(_board(RECORDS), term_width=90)
    lines = text.splitlines()

    assert lines[0].startswith("To Do (1)")
    assert "In Progress (1)" in lines[0] and "Done (1)" in lines[0]
    assert "#1 Write spec" in text
    assert "#2 Review the sync" in text
    assert "Bob · High" in text
    assert "due " in text
    assert all(len(line) <= 90 for line in lines)


def test_status_lines_for_each_phase() -> None:
    assert "Loading board..." in render_board(_board([], SyncPhase.LOADING), term_width=90)
    assert "No tasks yet" in render_board(_board([]), term_width=90)
    assert "Not connected." in render_board(_board([], SyncPhase.IDLE), term_width=90)

    stale = render_board(_board(RECORDS, SyncPhase.STALE, SubscriptionError("tasks: offline")), term_width=90)
    assert "[STALE] Showing last known board (tasks: offline)." in stale
    assert "#1 Write spec" in stale


def test_board_printer_skips_identical_frames(capsys) -> None:
    printer = BoardPrinter(term_width=90)
    board = _board(RECORDS)

    printer(board)
    printer(board)
    printer(_board([]))

    out = capsys.readouterr().out
    assert out.count("Board (live):") == 2
