# src/taskboard_sync/cli/commands.py

from __future__ import annotations

import logging
import shlex
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from ..connectors.board_render import numbered_cards, render_board
from ..core.errors import RemoteWriteError, ValidationError
from ..core.state import AppState
from ..tasks.task_models import F_ASSIGNED_TO, F_DUE_AT, F_NAME, F_PRIORITY, F_STATUS, TaskDraft

CommandEmitter = Callable[[str], None]
CommandHandler = Callable[[AppState, list[str], CommandEmitter | None], Awaitable[str]]

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Slash-command registry used by the console connector (/add, /mv, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.

        Local rejections and store write failures become replies; anything
        else propagates to the connector.
        """
        if not line.startswith("/"):
            return None

        name, _, rest = line[1:].strip().partition(" ")
        if not name:
            return "Empty command. Use /help to list available commands."

        handler = self._handlers.get(name.lower())
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            return await handler(state, split_args(rest), emit)
        except ValidationError as e:
            return f"Rejected: {e}"
        except RemoteWriteError as e:
            logger.info("Store rejected command /%s: %s", name, e)
            return f"Store error: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def notify(emit: CommandEmitter | None, text: str) -> None:
    if emit is not None:
        emit(text)


def split_args(rest: str) -> list[str]:
    try:
        return shlex.split(rest)
    except ValueError:
        # Unbalanced quotes ("Bob's task"): plain whitespace split.
        return rest.split()


def parse_due(raw: str) -> datetime | None:
    """Console date input: '', 'none', 'YYYY-MM-DD' or 'YYYY-MM-DD HH:MM' in local time."""
    s = raw.strip()
    if not s or s.lower() in ("none", "-"):
        return None
    try:
        dt = datetime.fromisoformat(s)
    except ValueError as e:
        raise ValidationError(f"Invalid due date: {raw!r} (use YYYY-MM-DD or YYYY-MM-DD HH:MM)") from e
    if dt.tzinfo is None:
        dt = dt.astimezone()
    return dt


def resolve_ref(state: AppState, ref: str) -> str:
    """
    Turn a console reference into a task id.

    Accepted: full id, board number ("#3" or "3"), or unique id prefix.
    A bare number that is also a task id resolves to that task.
    An unknown reference is passed through as an id; the store decides.
    """
    ref = ref.strip()
    if not ref:
        raise ValidationError("Task reference is required")

    mirror = state.engine.mirror
    if any(r.id == ref for r in mirror):
        return ref

    number = ref[1:] if ref.startswith("#") else ref
    if number.isdigit():
        cards = dict(numbered_cards(state.engine.board().columns))
        record = cards.get(int(number))
        if record is None:
            raise ValidationError(f"No card #{number} on the board")
        return record.id

    matches = [r.id for r in mirror if r.id.startswith(ref)]
    if len(matches) > 1:
        raise ValidationError(f"Reference {ref!r} is ambiguous ({len(matches)} tasks)")
    return matches[0] if matches else ref


_EDIT_KEYS = {
    "name": F_NAME,
    "assignee": F_ASSIGNED_TO,
    "assigned": F_ASSIGNED_TO,
    "assignedto": F_ASSIGNED_TO,
    "priority": F_PRIORITY,
    "due": F_DUE_AT,
    "status": F_STATUS,
}


async def cmd_help(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return registry.build_help()


async def cmd_board(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return render_board(state.engine.board())


async def cmd_status(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    engine = state.engine
    board = engine.board()
    backend = getattr(state.settings, "store_backend", "?")
    counts = ", ".join(f"{status.value}: {len(cards)}" for status, cards in board.columns.items())
    lines = [
        "Status:",
        f"  Store: {backend} (collection {engine.collection})",
        f"  Sync: {board.phase.value}",
        f"  Tasks: {board.total} ({counts})",
    ]
    if engine.last_error is not None:
        lines.append(f"  Last stream error: {engine.last_error}")
    return "\n".join(lines)


async def cmd_add(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /add name | assignee | priority | due
    Only the name is required; empty segments keep the defaults.
    """
    parts = [p.strip() for p in " ".join(args).split("|")]
    if len(parts) > 4:
        return "Usage: /add name | assignee | priority | due"

    fields: dict[str, Any] = {F_NAME: parts[0]}
    if len(parts) > 1:
        fields[F_ASSIGNED_TO] = parts[1]
    if len(parts) > 2 and parts[2]:
        fields[F_PRIORITY] = parts[2]
    if len(parts) > 3:
        fields[F_DUE_AT] = parse_due(parts[3])

    draft = TaskDraft.from_fields(fields)
    notify(emit, f"Sending create for {draft.name!r}...")
    task_id = await state.engine.create(draft)
    return f"Create sent (id={task_id}). The card shows up once the store confirms it."


async def cmd_move(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if len(args) < 2:
        return "Usage: /mv <ref> <status>   (status: todo | in progress | done)"
    task_id = resolve_ref(state, args[0])
    target = " ".join(args[1:])
    notify(emit, f"Sending move of {task_id} to {target!r}...")
    await state.engine.change_status(task_id, target)
    return f"Move sent for {task_id}."


async def cmd_edit(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if len(args) < 2:
        return "Usage: /edit <ref> field=value ...   (fields: name, assignee, priority, due, status)"
    task_id = resolve_ref(state, args[0])

    changes: dict[str, Any] = {}
    for token in args[1:]:
        key, sep, value = token.partition("=")
        field = _EDIT_KEYS.get(key.strip().lower())
        if not sep or field is None:
            return f"Cannot edit {token!r}. Use field=value with: {', '.join(sorted(_EDIT_KEYS))}"
        changes[field] = parse_due(value) if field == F_DUE_AT else value

    notify(emit, f"Sending edit for {task_id}...")
    await state.engine.edit(task_id, changes)
    return f"Edit sent for {task_id}."


async def cmd_remove(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if len(args) != 1:
        return "Usage: /rm <ref>"
    task_id = resolve_ref(state, args[0])
    notify(emit, f"Sending delete for {task_id}...")
    await state.engine.remove(task_id)
    return f"Delete sent for {task_id}."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("board", cmd_board, help_text="Redraw the board.", aliases=["b"])
registry.register("status", cmd_status, help_text="Show store, sync phase and task counts.")
registry.register("add", cmd_add, help_text="Create a task: /add name | assignee | priority | due.")
registry.register("mv", cmd_move, help_text="Move a task: /mv <ref> <todo|in progress|done>.", aliases=["move"])
registry.register("edit", cmd_edit, help_text="Edit fields: /edit <ref> name=... assignee=... priority=... due=...")
registry.register("rm", cmd_remove, help_text="Delete a task: /rm <ref>.", aliases=["remove", "del"])
