"""The application context: the root of the object tree, hooks and the pid file."""

from __future__ import annotations

import os
import sys
from enum import IntEnum
from pathlib import Path
from typing import Callable

from objcore.obj import Object, Options, WaitGroup


class ObjId(IntEnum):
    ROOT = 0
    CORE = 1
    EXECUTOR = 2
    TIMER = 3
    PROFILE = 4


class Hook(IntEnum):
    BEFORE_START = 0
    AFTER_STOP = 1


HookFunc = Callable[[], None]


class Context:
    """Holds the active root object and the core object once it is started."""

    def __init__(self) -> None:
        self.waitgroup = WaitGroup()
        self.root = Object(
            ObjId.ROOT,
            "root",
            Options(max_done=1024, queue_backlog=1024),
            None,
            waitgroup=self.waitgroup,
        )
        self.root.user_data = self
        self.core_obj: Object | None = None
        self.root.activate()


APP_CTX = Context()
_hooks: dict[Hook, list[HookFunc]] = {hook: [] for hook in Hook}


def launch_child(obj: Object) -> None:
    """Launch obj as a child of the root object."""
    APP_CTX.root.launch_child(obj)


def terminate(obj: Object) -> None:
    """Terminate the root object and, with it, obj and the whole tree."""
    APP_CTX.root.terminate()


def core_object() -> Object | None:
    return APP_CTX.core_obj


def _hook(position: int) -> Hook | None:
    try:
        return Hook(position)
    except ValueError:
        return None


def register_hook(position: int, func: HookFunc) -> None:
    """Add func to the hooks run at position; unknown positions are ignored."""
    hook = _hook(position)
    if hook is not None:
        _hooks[hook].append(func)


def execute_hook(position: int) -> None:
    """Run the hooks at position in order; the first one that raises stops the rest."""
    hook = _hook(position)
    if hook is None:
        return
    for func in list(_hooks[hook]):
        func()


def write_pid() -> Path | None:
    """Write the process id to '<program name>.pid' in the working directory."""
    if not sys.argv:
        return None
    program = sys.argv[0]
    path = Path(os.path.basename(program) + ".pid")
    try:
        path.write_text(str(os.getpid()))
    except OSError as exc:
        raise RuntimeError(f"{program} had running") from exc
    return path