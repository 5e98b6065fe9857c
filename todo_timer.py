#!/usr/bin/env python3
# todo_timer: Terminal todo lists with per-item work timers
#
# Hotkeys (defaults; remap them under `keys:` in the config file)
#   up/down          move the selection
#   right/left       open the selected group / back to the group list
#   shift-up/down    reorder the selected group or item
#   ctrl-n           new group (or new item while a group is open)
#   ctrl-e           edit the selected item
#   ctrl-d           delete the selected group or item
#   ctrl-s           start the timer (again: reset it and clear the finish mark)
#   ctrl-f           toggle finished
#   ctrl-p           toggle pause
#   tab              switch dialog field; enter saves, esc cancels
#   ctrl-q           save and quit
#
# Config highlights (YAML, default ~/.todo_timer.config.yml)
#   db: ~/.todo_timer.yml      # where groups and items are stored
#   tick_ms: 500               # how often running timers advance
#   keys: {toggle_start: c-t}  # command -> prompt_toolkit key name
#
# Notes
# - Timers only advance while the app runs. Each tick adds the measured elapsed
#   time to every running item (started, not finished, not paused).
# - A missing or unreadable state file starts an empty board.

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import datetime as dt
import enum
import logging
import os
import sys
import tempfile
import time
import unicodedata
from dataclasses import dataclass, field
from logging.handlers import RotatingFileHandler
from typing import Callable, Dict, FrozenSet, Generic, Iterable, Iterator, List, Optional, Tuple, TypeVar, Union

import yaml
from prompt_toolkit import Application
from prompt_toolkit.application.current import get_app
from prompt_toolkit.filters import Condition
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.keys import Keys
from prompt_toolkit.layout import HSplit, VSplit, Layout, Window
from prompt_toolkit.layout.containers import ConditionalContainer, Float, FloatContainer
from prompt_toolkit.layout.controls import FormattedTextControl
from prompt_toolkit.layout.dimension import Dimension
from prompt_toolkit.styles import Style
from prompt_toolkit.utils import get_cwidth
from prompt_toolkit.widgets import Frame

DEFAULT_TITLE = "Todo-Timer"
DEFAULT_DB_PATH = os.path.expanduser("~/.todo_timer.yml")
DEFAULT_CONFIG_PATH = os.path.expanduser("~/.todo_timer.config.yml")
DEFAULT_LOG_PATH = os.path.expanduser("~/.todo_timer.log")
DEFAULT_TICK_MS = 500

logger = logging.getLogger('todo_timer')

Fragments = List[Tuple[str, str]]
ClockFn = Callable[[], dt.datetime]


def _now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc).astimezone()


# -----------------------------
# Selectable list
# -----------------------------
T = TypeVar('T')


class Direction(enum.Enum):
    UP = "up"        # toward index 0
    DOWN = "down"    # toward the end


class SelectableList(Generic[T]):
    """Ordered items plus at most one selected index.

    Insertion order is display order. ``selected`` is either ``None`` or a valid
    index into ``items``; removing an element always clears the selection.
    """

    def __init__(self, items: Optional[Iterable[T]] = None) -> None:
        self.items: List[T] = list(items or [])
        self.selected: Optional[int] = None

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[T]:
        return iter(self.items)

    def select(self, index: Optional[int]) -> None:
        if index is None or not (0 <= index < len(self.items)):
            self.selected = None
            return
        self.selected = index

    def clear_selection(self) -> None:
        self.selected = None

    def selected_item(self) -> Optional[T]:
        if self.selected is None or not (0 <= self.selected < len(self.items)):
            return None
        return self.items[self.selected]

    def next(self) -> None:
        if not self.items:
            return
        if self.selected is None or self.selected >= len(self.items) - 1:
            self.selected = 0
        else:
            self.selected += 1

    def previous(self) -> None:
        if not self.items:
            return
        if self.selected is None:
            self.selected = 0
        elif self.selected == 0:
            self.selected = len(self.items) - 1
        else:
            self.selected -= 1

    def append(self, item: T) -> None:
        self.items.append(item)

    def move_selected(self, direction: Direction) -> None:
        """Swap the selected element with its neighbour, wrapping at both ends.

        The cursor follows the moved element. One element swaps with itself and
        two elements always trade places.
        """
        index = self.selected
        if index is None or not (0 <= index < len(self.items)):
            return
        last = len(self.items) - 1
        if direction is Direction.UP:
            target = last if index == 0 else index - 1
            self.items[index], self.items[target] = self.items[target], self.items[index]
            self.previous()
        else:
            target = 0 if index == last else index + 1
            self.items[index], self.items[target] = self.items[target], self.items[index]
            self.next()

    def remove_selected(self) -> Optional[T]:
        item = self.selected_item()
        if item is not None:
            del self.items[self.selected]
        self.selected = None
        return item


# -----------------------------
# Items and groups
# -----------------------------
STATUS_DONE = "done"
STATUS_PAUSED = "paused"
STATUS_RUNNING = "running"
STATUS_IDLE = "not started"

STATUS_MARKERS: Dict[str, str] = {
    STATUS_DONE: "[x]",
    STATUS_PAUSED: "[=]",
    STATUS_RUNNING: "[>]",
    STATUS_IDLE: "[ ]",
}


def _fmt_hms(total_seconds: int) -> str:
    s = int(max(0, total_seconds))
    h, r = divmod(s, 3600)
    m, s = divmod(r, 60)
    if h:
        return f"{h:d}:{m:02d}:{s:02d}"
    return f"{m:02d}:{s:02d}"


@dataclass
class Item:
    title: str = ""
    description: str = ""
    started_at: Optional[dt.datetime] = None
    ended_at: Optional[dt.datetime] = None
    accumulated_ms: int = 0
    paused: bool = False

    @property
    def is_started(self) -> bool:
        return self.started_at is not None

    @property
    def is_done(self) -> bool:
        return self.ended_at is not None

    @property
    def is_running(self) -> bool:
        return self.is_started and not self.is_done and not self.paused

    @property
    def status(self) -> str:
        if self.is_done:
            return STATUS_DONE
        if self.paused:
            return STATUS_PAUSED
        if self.is_started:
            return STATUS_RUNNING
        return STATUS_IDLE

    def elapsed_text(self) -> str:
        return _fmt_hms(self.accumulated_ms // 1000)


@dataclass
class Group:
    name: str = ""
    items: SelectableList[Item] = field(default_factory=SelectableList)

    def running_count(self) -> int:
        return sum(1 for item in self.items if item.is_running)


# -----------------------------
# Keys
# -----------------------------
MOD_ALT = "alt"
MOD_CONTROL = "control"
MOD_SHIFT = "shift"

# Terminals deliver these control codes for the named keys.
KEY_ALIASES: Dict[str, str] = {
    'c-m': 'enter',
    'c-j': 'enter',
    'c-i': 'tab',
    'c-h': 'backspace',
}
_PREFIX_MODIFIERS = {'a': MOD_ALT, 'c': MOD_CONTROL, 's': MOD_SHIFT}

COMMANDS: Tuple[str, ...] = (
    'new', 'edit', 'delete',
    'toggle_start', 'toggle_end', 'toggle_pause',
    'move_up', 'move_down', 'previous', 'next',
    'drill_in', 'drill_out',
    'commit', 'cancel', 'switch_field', 'backspace',
    'quit',
)

DEFAULT_KEYMAP: Dict[str, str] = {
    'new': 'c-n',
    'edit': 'c-e',
    'delete': 'c-d',
    'toggle_start': 'c-s',
    'toggle_end': 'c-f',
    'toggle_pause': 'c-p',
    'move_up': 's-up',
    'move_down': 's-down',
    'previous': 'up',
    'next': 'down',
    'drill_in': 'right',
    'drill_out': 'left',
    'commit': 'enter',
    'cancel': 'escape',
    'switch_field': 'tab',
    'backspace': 'backspace',
    'quit': 'c-q',
}


@dataclass(frozen=True)
class KeyEvent:
    """One key press: a key name plus the set of held modifiers."""

    key: str
    modifiers: FrozenSet[str] = frozenset()

    @classmethod
    def parse(cls, name: object) -> "KeyEvent":
        """Build an event from a prompt_toolkit style name such as ``c-n`` or ``s-up``."""
        text = str(getattr(name, 'value', name))
        text = KEY_ALIASES.get(text, text)
        mods = set()
        while len(text) > 2 and text[1] == '-' and text[0] in _PREFIX_MODIFIERS:
            mods.add(_PREFIX_MODIFIERS[text[0]])
            text = text[2:]
        return cls(text, frozenset(mods))

    @property
    def name(self) -> str:
        key = self.key
        prefix = ""
        if MOD_ALT in self.modifiers:
            prefix += "a-"
        if MOD_CONTROL in self.modifiers:
            prefix += "c-"
            if len(key) == 1:
                key = key.lower()
        if MOD_SHIFT in self.modifiers and len(key) > 1:
            prefix += "s-"
        full = prefix + key
        return KEY_ALIASES.get(full, full)

    @property
    def is_printable(self) -> bool:
        if MOD_CONTROL in self.modifiers or MOD_ALT in self.modifiers:
            return False
        return len(self.key) == 1 and self.key.isprintable()


class Keymap:
    """Command <-> key name table. Unknown commands and double bindings are rejected."""

    def __init__(self, overrides: Optional[Dict[str, str]] = None) -> None:
        bindings = dict(DEFAULT_KEYMAP)
        for command, key in (overrides or {}).items():
            if command not in DEFAULT_KEYMAP:
                raise ValueError(f"unknown key command {command!r}")
            bindings[command] = key
        self.bindings: Dict[str, str] = {}
        self._by_key: Dict[str, str] = {}
        for command, key in bindings.items():
            canonical = KeyEvent.parse(key).name
            other = self._by_key.get(canonical)
            if other is not None:
                raise ValueError(f"key {canonical!r} bound to both {other!r} and {command!r}")
            self.bindings[command] = canonical
            self._by_key[canonical] = command

    def command_for(self, event: KeyEvent) -> Optional[str]:
        return self._by_key.get(event.name)

    def key_for(self, command: str) -> str:
        return self.bindings[command]


# -----------------------------
# Dialog
# -----------------------------
class DialogMode(enum.Enum):
    CLOSED = "closed"
    CREATING_NEW = "creating-new"
    EDITING = "editing"


class DialogField(enum.Enum):
    TITLE = "title"
    DESCRIPTION = "description"


class Dialog:
    """Modal text entry for a new group/item or for editing an item.

    ``scratch`` is the working buffer; it is emptied every time the dialog
    closes. Committing is done by the session, which knows where the entry goes.
    """

    def __init__(self) -> None:
        self.mode = DialogMode.CLOSED
        self.scratch = Item()
        self.field = DialogField.TITLE

    @property
    def is_open(self) -> bool:
        return self.mode is not DialogMode.CLOSED

    def open_new(self) -> bool:
        if self.is_open:
            return False
        self.mode = DialogMode.CREATING_NEW
        self.scratch = Item()
        self.field = DialogField.TITLE
        return True

    def open_edit(self, item: Item) -> bool:
        if self.is_open:
            return False
        self.mode = DialogMode.EDITING
        self.scratch = Item(title=item.title, description=item.description)
        self.field = DialogField.TITLE
        return True

    def close(self) -> None:
        self.mode = DialogMode.CLOSED
        self.scratch = Item()
        self.field = DialogField.TITLE

    def toggle_field(self) -> None:
        if self.field is DialogField.TITLE:
            self.field = DialogField.DESCRIPTION
        else:
            self.field = DialogField.TITLE

    def focused_text(self) -> str:
        if self.field is DialogField.TITLE:
            return self.scratch.title
        return self.scratch.description

    def _set_focused_text(self, value: str) -> None:
        if self.field is DialogField.TITLE:
            self.scratch.title = value
        else:
            self.scratch.description = value

    def insert(self, text: str) -> None:
        if not self.is_open or not text:
            return
        self._set_focused_text(self.focused_text() + text)

    def backspace(self) -> None:
        if not self.is_open:
            return
        self._set_focused_text(self.focused_text()[:-1])

    def handle(self, event: KeyEvent, command: Optional[str]) -> None:
        if not self.is_open:
            return
        if command == 'cancel':
            self.close()
        elif command == 'switch_field':
            self.toggle_field()
        elif command == 'backspace':
            self.backspace()
        elif event.is_printable:
            self.insert(event.key)

    def heading(self, drilled_in: bool) -> str:
        if self.mode is DialogMode.EDITING:
            return "Edit Item"
        if self.mode is DialogMode.CREATING_NEW:
            return "New Item" if drilled_in else "New Group"
        return ""


# -----------------------------
# Render snapshot
# -----------------------------
@dataclass(frozen=True)
class ItemView:
    title: str
    status: str
    elapsed: str


@dataclass(frozen=True)
class DialogView:
    mode: DialogMode
    field: DialogField
    heading: str
    title: str
    description: str


@dataclass(frozen=True)
class Snapshot:
    title: str
    groups: Tuple[str, ...]
    group_selected: Optional[int]
    active_group: Optional[int]
    shown_group: Optional[str]
    items: Tuple[ItemView, ...]
    item_selected: Optional[int]
    description: str
    elapsed: str
    status: str
    running: int
    dialog: Optional[DialogView]

    @property
    def drilled_in(self) -> bool:
        return self.active_group is not None


# -----------------------------
# Session
# -----------------------------
def _elapsed_ms(elapsed: Union[dt.timedelta, int, float]) -> int:
    if isinstance(elapsed, dt.timedelta):
        return elapsed // dt.timedelta(milliseconds=1)
    return int(float(elapsed) * 1000)


class Session:
    """Root of all mutable state: groups, the drill-down index and the dialog.

    ``event`` and ``tick`` are the only entry points the outer loop needs; both
    run synchronously and never raise for a missing selection.
    """

    def __init__(
        self,
        title: str = DEFAULT_TITLE,
        groups: Optional[Iterable[Group]] = None,
        clock: Optional[ClockFn] = None,
        keymap: Optional[Keymap] = None,
    ) -> None:
        self.title = title
        self.groups: SelectableList[Group] = SelectableList(groups)
        self.active_group: Optional[int] = None
        self.dialog = Dialog()
        self.clock: ClockFn = clock or _now
        self.keymap = keymap or Keymap()
        self._handlers: Dict[str, Callable[[], None]] = {
            'new': self.open_new_dialog,
            'edit': self.open_edit_dialog,
            'delete': self.delete_selected,
            'toggle_start': self.toggle_start,
            'toggle_end': self.toggle_end,
            'toggle_pause': self.toggle_pause,
            'move_up': lambda: self._current_list().move_selected(Direction.UP),
            'move_down': lambda: self._current_list().move_selected(Direction.DOWN),
            'previous': lambda: self._current_list().previous(),
            'next': lambda: self._current_list().next(),
            'drill_in': self.drill_in,
            'drill_out': self.drill_out,
            'commit': self.commit,
            'cancel': self.cancel,
        }

    # --- lookups -------------------------------------------------------
    def current_group(self) -> Optional[Group]:
        """The drilled-into group, or None at group granularity."""
        if self.active_group is None or not (0 <= self.active_group < len(self.groups.items)):
            return None
        return self.groups.items[self.active_group]

    def shown_group(self) -> Optional[Group]:
        """Group whose items are displayed: the active one, else a preview of the selected one."""
        return self.current_group() or self.groups.selected_item()

    def selected_item(self) -> Optional[Item]:
        group = self.current_group()
        if group is None:
            return None
        return group.items.selected_item()

    def _current_list(self) -> SelectableList:
        group = self.current_group()
        if group is not None:
            return group.items
        return self.groups

    def running_count(self) -> int:
        return sum(group.running_count() for group in self.groups)

    # --- entry points --------------------------------------------------
    def event(self, key: Union[KeyEvent, str], modifiers: Iterable[str] = ()) -> Optional[str]:
        """Dispatch one key press. Returns the command it resolved to, if any."""
        if isinstance(key, KeyEvent):
            ev = key
        elif modifiers:
            ev = KeyEvent(key, frozenset(modifiers))
        else:
            ev = KeyEvent.parse(key)
        command = self.keymap.command_for(ev)
        if self.dialog.is_open:
            if command == 'commit':
                self.commit()
            else:
                self.dialog.handle(ev, command)
            return command
        handler = self._handlers.get(command) if command else None
        if handler is not None:
            handler()
        return command

    def tick(self, elapsed: Union[dt.timedelta, int, float]) -> None:
        """Add ``elapsed`` to every running item. Never reads the wall clock."""
        ms = _elapsed_ms(elapsed)
        if ms <= 0:
            return
        for group in self.groups:
            for item in group.items:
                if item.is_running:
                    item.accumulated_ms += ms

    # --- commands ------------------------------------------------------
    def open_new_dialog(self) -> None:
        self.dialog.open_new()

    def open_edit_dialog(self) -> None:
        item = self.selected_item()
        if item is None:
            return
        self.dialog.open_edit(item)

    def delete_selected(self) -> None:
        group = self.current_group()
        if group is not None:
            removed = group.items.remove_selected()
            if removed is not None:
                logger.info("Deleted item %r from %r", removed.title, group.name)
            return
        if self.active_group is not None:
            return
        removed_group = self.groups.remove_selected()
        if removed_group is not None:
            logger.info("Deleted group %r (%d items)", removed_group.name, len(removed_group.items))

    def toggle_start(self) -> None:
        item = self.selected_item()
        if item is None:
            return
        if item.is_started:
            item.started_at = None
            item.ended_at = None
            item.accumulated_ms = 0
            logger.info("Reset timer for %r", item.title)
        else:
            item.started_at = self.clock()
            logger.info("Started timer for %r", item.title)

    def toggle_end(self) -> None:
        item = self.selected_item()
        if item is None:
            return
        item.ended_at = None if item.is_done else self.clock()
        logger.debug("Finished=%s for %r", item.is_done, item.title)

    def toggle_pause(self) -> None:
        item = self.selected_item()
        if item is None:
            return
        item.paused = not item.paused
        logger.debug("Paused=%s for %r", item.paused, item.title)

    def drill_in(self) -> None:
        if self.active_group is None:
            self.active_group = self.groups.selected

    def drill_out(self) -> None:
        group = self.current_group()
        if group is not None:
            group.items.clear_selection()
        self.active_group = None

    def commit(self) -> None:
        dialog = self.dialog
        if not dialog.is_open:
            return
        scratch = dialog.scratch
        if dialog.mode is DialogMode.CREATING_NEW:
            group = self.current_group()
            if self.active_group is None:
                self.groups.append(Group(name=scratch.title))
                logger.info("Created group %r", scratch.title)
            elif group is not None:
                group.items.append(dataclasses.replace(scratch))
                logger.info("Created item %r in %r", scratch.title, group.name)
        elif dialog.mode is DialogMode.EDITING:
            target = self.selected_item()
            if target is not None:
                target.title = scratch.title
                target.description = scratch.description
                logger.debug("Edited item %r", target.title)
        dialog.close()

    def cancel(self) -> None:
        if self.dialog.is_open:
            self.dialog.close()

    # --- rendering -----------------------------------------------------
    def snapshot(self) -> Snapshot:
        shown = self.shown_group()
        items: Tuple[ItemView, ...] = ()
        item_selected: Optional[int] = None
        description = elapsed = status = ""
        if shown is not None:
            items = tuple(ItemView(i.title, i.status, i.elapsed_text()) for i in shown.items)
            item_selected = shown.items.selected
            current = shown.items.selected_item()
            if current is not None:
                description = current.description
                elapsed = current.elapsed_text()
                status = current.status
        dialog_view = None
        if self.dialog.is_open:
            dialog_view = DialogView(
                mode=self.dialog.mode,
                field=self.dialog.field,
                heading=self.dialog.heading(self.active_group is not None),
                title=self.dialog.scratch.title,
                description=self.dialog.scratch.description,
            )
        return Snapshot(
            title=self.title,
            groups=tuple(g.name for g in self.groups),
            group_selected=self.groups.selected,
            active_group=self.active_group,
            shown_group=shown.name if shown is not None else None,
            items=items,
            item_selected=item_selected,
            description=description,
            elapsed=elapsed,
            status=status,
            running=self.running_count(),
            dialog=dialog_view,
        )


# -----------------------------
# Persistence
# -----------------------------
def _ts_text(value: Optional[dt.datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_ts(raw: object) -> Optional[dt.datetime]:
    if raw is None or raw == "":
        return None
    if isinstance(raw, dt.datetime):
        return raw
    if isinstance(raw, str):
        return dt.datetime.fromisoformat(raw)
    raise ValueError(f"Invalid timestamp: {raw!r}")


def item_to_dict(item: Item) -> Dict[str, object]:
    data: Dict[str, object] = {'title': item.title, 'description': item.description}
    if item.started_at is not None:
        data['started_at'] = _ts_text(item.started_at)
    if item.ended_at is not None:
        data['ended_at'] = _ts_text(item.ended_at)
    data['accumulated_ms'] = int(item.accumulated_ms)
    data['paused'] = bool(item.paused)
    return data


def item_from_dict(raw: object) -> Item:
    if not isinstance(raw, dict):
        raise ValueError(f"Item entry must be a mapping: {raw!r}")
    return Item(
        title=str(raw.get('title') or ""),
        description=str(raw.get('description') or ""),
        started_at=_parse_ts(raw.get('started_at')),
        ended_at=_parse_ts(raw.get('ended_at')),
        accumulated_ms=max(0, int(raw.get('accumulated_ms') or 0)),
        paused=bool(raw.get('paused', False)),
    )


def session_to_dict(session: Session) -> Dict[str, object]:
    """Serializable view of the session. Selections, drill-down and dialog are left out."""
    return {
        'title': session.title,
        'groups': [
            {'name': g.name, 'items': [item_to_dict(i) for i in g.items]}
            for g in session.groups
        ],
    }


def session_from_dict(data: object, title: str = DEFAULT_TITLE, clock: Optional[ClockFn] = None,
                      keymap: Optional[Keymap] = None) -> Session:
    if not isinstance(data, dict):
        raise ValueError("State document must be a mapping")
    raw_groups = data.get('groups') or []
    if not isinstance(raw_groups, list):
        raise ValueError("'groups' must be a list")
    groups: List[Group] = []
    for raw in raw_groups:
        if not isinstance(raw, dict):
            raise ValueError(f"Group entry must be a mapping: {raw!r}")
        raw_items = raw.get('items') or []
        if not isinstance(raw_items, list):
            raise ValueError(f"'items' of group {raw.get('name')!r} must be a list")
        groups.append(Group(
            name=str(raw.get('name') or ""),
            items=SelectableList(item_from_dict(i) for i in raw_items),
        ))
    return Session(title=str(data.get('title') or title), groups=groups, clock=clock, keymap=keymap)


def save_session(session: Session, path: str) -> None:
    """Write the session as YAML, replacing ``path`` atomically."""
    path = os.path.expanduser(path)
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    text = yaml.safe_dump(session_to_dict(session), sort_keys=False, allow_unicode=True, default_flow_style=False)
    fd, tmp_path = tempfile.mkstemp(prefix='.todo_timer.', suffix='.tmp', dir=directory)
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(text)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    logger.info("Saved %d groups to %s", len(session.groups), path)


def load_session(path: str, title: str = DEFAULT_TITLE, clock: Optional[ClockFn] = None,
                 keymap: Optional[Keymap] = None) -> Session:
    """Load a session from YAML; any failure yields a fresh, empty session."""
    path = os.path.expanduser(path)
    if not os.path.exists(path):
        logger.info("No state file at %s; starting empty", path)
        return Session(title=title, clock=clock, keymap=keymap)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
        session = session_from_dict(data, title=title, clock=clock, keymap=keymap)
    except (OSError, yaml.YAMLError, ValueError, TypeError) as exc:
        logger.warning("Failed to load state file %s (%s); starting empty", path, exc, exc_info=True)
        return Session(title=title, clock=clock, keymap=keymap)
    logger.info("Loaded %d groups from %s", len(session.groups), path)
    return session


# -----------------------------
# Config
# -----------------------------
@dataclass
class Config:
    title: str = DEFAULT_TITLE
    db_path: str = DEFAULT_DB_PATH
    tick_ms: int = DEFAULT_TICK_MS
    log_level: str = "ERROR"
    log_path: str = DEFAULT_LOG_PATH
    keys: Dict[str, str] = field(default_factory=dict)
    style: Dict[str, str] = field(default_factory=dict)

    def keymap(self) -> Keymap:
        return Keymap(self.keys)


def _str_mapping(raw: object, name: str) -> Dict[str, str]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(f"Config: '{name}' must be a mapping.")
    return {str(k): str(v) for k, v in raw.items() if v is not None}


def load_config(path: Optional[str]) -> Config:
    if not path:
        return Config()
    path = os.path.expanduser(path)
    if not os.path.exists(path):
        return Config()
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ValueError("Config: top level must be a mapping.")
    try:
        tick_ms = int(raw.get("tick_ms", DEFAULT_TICK_MS))
    except (TypeError, ValueError):
        raise ValueError("Config: 'tick_ms' must be an integer.") from None
    if tick_ms <= 0:
        raise ValueError("Config: 'tick_ms' must be positive.")
    keys = _str_mapping(raw.get("keys"), "keys")
    try:
        Keymap(keys)
    except ValueError as exc:
        raise ValueError(f"Config: {exc}") from None
    return Config(
        title=str(raw.get("title") or DEFAULT_TITLE),
        db_path=os.path.expanduser(str(raw.get("db") or DEFAULT_DB_PATH)),
        tick_ms=tick_ms,
        log_level=str(raw.get("log_level") or "ERROR"),
        log_path=os.path.expanduser(str(raw.get("log_file") or DEFAULT_LOG_PATH)),
        keys=keys,
        style=_str_mapping(raw.get("style"), "style"),
    )


# -----------------------------
# Logging
# -----------------------------
def setup_logging(log_path: str, log_level: str = 'ERROR') -> logging.Logger:
    # Always reset handlers; repeated calls must not stack file handlers.
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()
    # keep the logger at DEBUG; the handler filters by level
    logger.setLevel(logging.DEBUG)
    directory = os.path.dirname(os.path.abspath(log_path))
    os.makedirs(directory, exist_ok=True)
    fh = RotatingFileHandler(log_path, maxBytes=2000000, backupCount=2, encoding='utf-8')
    lvl = getattr(logging, str(log_level).upper(), None)
    fh.setLevel(lvl if isinstance(lvl, int) else logging.ERROR)
    fh.setFormatter(logging.Formatter('%(asctime)s %(levelname)s %(message)s'))
    logger.addHandler(fh)
    return logger


# -----------------------------
# Rendering
# -----------------------------
BASE_STYLE: Dict[str, str] = {
    'title': 'bold #ffd75f',
    'pane': 'bg:#1c1c1c #f0f0f0',
    'pane.header': 'bold #ffd75f',
    'pane.dim': '#6c6c6c',
    'empty': 'italic #8a8a8a',
    'entry': '#d0d0d0',
    'entry.selected': 'bold #ffffff bg:#303030',
    'entry.selected.dim': '#ffffff bg:#262626',
    'status.done': '#87ff5f',
    'status.paused': '#ffd75f',
    'status.running': '#87d7ff',
    'status.idle': '#8a8a8a',
    'detail.label': '#ffd787',
    'detail.value': '#f0f0f0',
    'dialog': 'bg:#202020 #ffffff',
    'dialog.label': '#87d7ff',
    'dialog.field': '#d7d7d7',
    'dialog.field.cursor': 'bold #ffffff bg:#444444',
    'dialog.hint': '#5fd7af',
    'statusbar': 'reverse',
}

STATUS_STYLES: Dict[str, str] = {
    STATUS_DONE: 'class:status.done',
    STATUS_PAUSED: 'class:status.paused',
    STATUS_RUNNING: 'class:status.running',
    STATUS_IDLE: 'class:status.idle',
}


def _char_width(ch: str) -> int:
    """Return printable cell width for a single character."""
    if unicodedata.combining(ch) or unicodedata.category(ch) == "Cf":
        return 0
    fallback = 2 if unicodedata.east_asian_width(ch) in ("W", "F") else 1
    width = get_cwidth(ch)
    return width if width > fallback else fallback


def _display_width(text: str) -> int:
    return sum(_char_width(ch) for ch in text)


def _sanitize_cell_text(s: Optional[str]) -> str:
    return (s or "").replace("\n", " ").replace("\r", " ")


def _truncate(s: str, maxlen: int) -> str:
    """Truncate string to a maximum display width, preserving whole glyphs."""
    s = _sanitize_cell_text(s)
    if maxlen <= 0:
        return ""
    if _display_width(s) <= maxlen:
        return s
    ellipsis = "…"
    ell_w = _display_width(ellipsis)
    out: List[str] = []
    width = 0
    for ch in s:
        ch_w = _char_width(ch)
        if width + ch_w + ell_w > maxlen:
            break
        out.append(ch)
        width += ch_w
    if out:
        return "".join(out) + ellipsis
    return ellipsis if maxlen >= ell_w else ""


def _pad_display(text: Optional[str], width: int) -> str:
    """Pad/truncate text to an exact display width using spaces."""
    raw = _truncate(_sanitize_cell_text(text), width)
    return raw + " " * max(0, width - _display_width(raw))


def _entry_style(selected: bool, focused: bool) -> str:
    if not selected:
        return 'class:entry' if focused else 'class:pane.dim'
    return 'class:entry.selected' if focused else 'class:entry.selected.dim'


def build_group_fragments(snap: Snapshot, width: int = 40) -> Fragments:
    """Left pane: group names with the cursor; dimmed while a group is open."""
    frags: Fragments = [('class:pane.header', _pad_display(f" {snap.title} ", width)), ('', '\n')]
    if not snap.groups:
        frags.append(('class:empty', _truncate("  No groups yet.", width)))
        return frags
    focused = not snap.drilled_in
    for idx, name in enumerate(snap.groups):
        selected = idx == snap.group_selected
        marker = "> " if selected else "  "
        frags.append((_entry_style(selected, focused), _pad_display(marker + name, width)))
        frags.append(('', '\n'))
    frags.pop()
    return frags


def build_item_fragments(snap: Snapshot, width: int = 40) -> Fragments:
    """Right pane: items of the shown group with a status marker per row."""
    if snap.shown_group is None:
        return [('class:empty', _truncate("  Select a group to see its items.", width))]
    frags: Fragments = [('class:pane.header', _pad_display(f" {snap.shown_group} ", width)), ('', '\n')]
    if not snap.items:
        frags.append(('class:empty', _truncate("  No items yet.", width)))
        return frags
    focused = snap.drilled_in
    elapsed_w = max(len(i.elapsed) for i in snap.items)
    title_w = max(1, width - elapsed_w - 8)
    for idx, view in enumerate(snap.items):
        selected = idx == snap.item_selected
        marker = "> " if selected else "  "
        frags.append((_entry_style(selected, focused), marker))
        frags.append((STATUS_STYLES.get(view.status, ''), STATUS_MARKERS.get(view.status, "[?]")))
        frags.append((_entry_style(selected, focused), " " + _pad_display(view.title, title_w) + " "))
        frags.append(('class:detail.value', view.elapsed.rjust(elapsed_w)))
        frags.append(('', '\n'))
    frags.pop()
    return frags


def build_detail_fragments(snap: Snapshot, width: int = 40) -> Fragments:
    if snap.item_selected is None or not snap.status:
        return []
    frags: Fragments = [
        ('class:detail.label', "Elapsed: "), ('class:detail.value', snap.elapsed), ('', '  '),
        ('class:detail.label', "Status: "), (STATUS_STYLES.get(snap.status, ''), snap.status), ('', '\n'),
    ]
    if snap.description:
        for line in snap.description.splitlines() or [""]:
            frags.append(('class:detail.value', _truncate(line, width)))
            frags.append(('', '\n'))
        frags.pop()
    else:
        frags.append(('class:empty', "(no description)"))
    return frags


def build_dialog_fragments(snap: Snapshot, width: int = 50) -> Fragments:
    view = snap.dialog
    if view is None:
        return []
    field_w = max(1, width - 14)
    rows = [("Title", DialogField.TITLE, view.title), ("Description", DialogField.DESCRIPTION, view.description)]
    frags: Fragments = []
    for label, which, value in rows:
        focused = which is view.field
        shown = value + ("▏" if focused else "")
        # keep the tail of long input visible while typing
        while _display_width(shown) > field_w:
            shown = shown[1:]
        frags.append(('class:dialog.label', f"{label:<12}: "))
        frags.append(('class:dialog.field.cursor' if focused else 'class:dialog.field', _pad_display(shown, field_w)))
        frags.append(('', '\n'))
    frags.append(('class:dialog.hint', "Enter=save  Esc=cancel  Tab=switch field"))
    return frags


def build_status_bar(snap: Snapshot, keymap: Optional[Keymap] = None, message: str = "") -> str:
    if snap.dialog is not None:
        mode = "DIALOG"
    elif snap.drilled_in:
        mode = "GROUP"
    else:
        mode = "BROWSE"
    km = keymap or Keymap()
    base = f" {mode}  running: {snap.running}  {km.key_for('new')} new  {km.key_for('quit')} quit"
    if message:
        base += "  " + message
    return base


def format_summary(session: Session) -> str:
    """Plain-text board summary used by --no-ui."""
    if not session.groups.items:
        return f"{session.title}: no groups"
    lines = [session.title]
    for group in session.groups:
        lines.append(f"{group.name} ({len(group.items)} items, {group.running_count()} running)")
        for item in group.items:
            lines.append(f"  {STATUS_MARKERS[item.status]} {item.title}  {item.elapsed_text()}")
    return "\n".join(lines)


# -----------------------------
# TUI
# -----------------------------
def _terminal_size() -> Tuple[int, int]:
    try:
        size = get_app().output.get_size()
        return size.columns, size.rows
    except Exception:
        return 120, 40


def build_key_bindings(session: Session, on_quit: Callable[[], None],
                       on_change: Optional[Callable[[Optional[str]], None]] = None) -> KeyBindings:
    """Forward every key press to the session; the quit key (outside the dialog) calls ``on_quit``."""
    kb = KeyBindings()

    @kb.add(Keys.Any)
    def _(event):
        command: Optional[str] = None
        for key_press in event.key_sequence:
            if key_press.key == Keys.BracketedPaste:
                session.dialog.insert(_sanitize_cell_text(key_press.data))
                continue
            ev = KeyEvent.parse(key_press.key)
            if not session.dialog.is_open and session.keymap.command_for(ev) == 'quit':
                on_quit()
                return
            command = session.event(ev)
        if on_change is not None:
            on_change(command)

    return kb


def build_layout(session: Session, status_text: Callable[[], str]) -> Layout:
    def _pane_width() -> int:
        cols, _ = _terminal_size()
        return max(20, cols // 2 - 2)

    def _dialog_width() -> int:
        cols, _ = _terminal_size()
        return max(40, min(72, cols - 8))

    group_control = FormattedTextControl(text=lambda: build_group_fragments(session.snapshot(), _pane_width()))
    item_control = FormattedTextControl(text=lambda: build_item_fragments(session.snapshot(), _pane_width()))
    detail_control = FormattedTextControl(text=lambda: build_detail_fragments(session.snapshot(), _pane_width()))
    dialog_control = FormattedTextControl(text=lambda: build_dialog_fragments(session.snapshot(), _dialog_width() - 2))
    status_control = FormattedTextControl(text=lambda: build_status_bar(session.snapshot(), session.keymap, status_text()))

    right = HSplit([
        Window(content=item_control, wrap_lines=False, always_hide_cursor=True),
        Window(height=1, char='─'),
        Window(content=detail_control, height=Dimension(preferred=5, max=8), wrap_lines=True, always_hide_cursor=True),
    ])
    body = VSplit([
        Window(content=group_control, wrap_lines=False, always_hide_cursor=True),
        Window(width=1, char='│'),
        right,
    ], style='class:pane')
    root = HSplit([body, Window(content=status_control, height=1, style='class:statusbar')])

    dialog_frame = Frame(
        body=Window(content=dialog_control, height=Dimension(min=3, max=5), width=Dimension(preferred=70), always_hide_cursor=True),
        title=lambda: session.dialog.heading(session.active_group is not None),
        style='class:dialog',
    )
    floats = [Float(content=ConditionalContainer(dialog_frame, filter=Condition(lambda: session.dialog.is_open)))]
    return Layout(FloatContainer(content=root, floats=floats))


def run_ui(session: Session, db_path: str, tick_ms: int = DEFAULT_TICK_MS,
           style_overrides: Optional[Dict[str, str]] = None) -> None:
    """Full-screen board. Blocks until the quit key saves the session."""
    status_line = ""
    app: Optional[Application] = None

    def invalidate() -> None:
        if app is not None:
            app.invalidate()

    def on_change(command: Optional[str]) -> None:
        nonlocal status_line
        status_line = ""
        invalidate()

    def quit_app() -> None:
        nonlocal status_line
        try:
            save_session(session, db_path)
        except OSError as exc:
            logger.exception("Save failed for %s", db_path)
            status_line = f"Save failed: {exc}"
            invalidate()
            return
        if app is not None:
            app.exit()

    kb = build_key_bindings(session, on_quit=quit_app, on_change=on_change)
    layout = build_layout(session, lambda: status_line)
    style_dict = dict(BASE_STYLE)
    style_dict.update(style_overrides or {})
    app = Application(layout=layout, key_bindings=kb, full_screen=True, style=Style.from_dict(style_dict))

    # Background ticker: feeds measured elapsed time into the session
    async def _ticker():
        period = tick_ms / 1000.0
        last = time.monotonic()
        while True:
            await asyncio.sleep(period)
            now = time.monotonic()
            try:
                session.tick(dt.timedelta(seconds=now - last))
            except Exception:
                logger.exception("Tick failed")
            last = now
            invalidate()

    def _start_ticker() -> None:
        app.create_background_task(_ticker())

    logger.info("Starting UI with %d groups (tick=%dms)", len(session.groups), tick_ms)
    app.run(pre_run=_start_ticker)


# -----------------------------
# CLI
# -----------------------------
def main(argv: Optional[List[str]] = None) -> None:
    ap = argparse.ArgumentParser(description="Terminal todo lists with work timers")
    ap.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to YAML config")
    ap.add_argument("--db", help="Path to the YAML state file (overrides config)")
    ap.add_argument("--tick-ms", type=int, help="Timer tick period in milliseconds (overrides config)")
    ap.add_argument("--log-level", help="File log level (DEBUG, INFO, WARNING, ERROR)")
    ap.add_argument("--log-file", help="Path to the rotating log file (overrides config)")
    ap.add_argument("--no-ui", action="store_true", help="Print a plain summary and exit")
    args = ap.parse_args(argv)

    try:
        cfg = load_config(args.config)
    except (OSError, yaml.YAMLError, ValueError) as e:
        print(f"Config error: {e}", file=sys.stderr)
        sys.exit(2)
    if args.db:
        cfg.db_path = os.path.expanduser(args.db)
    if args.tick_ms is not None:
        if args.tick_ms <= 0:
            print("Config error: --tick-ms must be positive", file=sys.stderr)
            sys.exit(2)
        cfg.tick_ms = args.tick_ms
    if args.log_level:
        cfg.log_level = args.log_level
    if args.log_file:
        cfg.log_path = os.path.expanduser(args.log_file)

    setup_logging(cfg.log_path, cfg.log_level)
    session = load_session(cfg.db_path, title=cfg.title, keymap=cfg.keymap())

    if args.no_ui:
        print(format_summary(session))
        return

    run_ui(session, cfg.db_path, tick_ms=cfg.tick_ms, style_overrides=cfg.style)


if __name__ == "__main__":
    main()
