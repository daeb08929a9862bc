"""Console commands: parse 'key=value' arguments and run commands read from a stream."""

from __future__ import annotations

import re
import sys
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Sequence, TextIO

from objcore import module
from objcore.loader import Package, register_package
from objcore.obj import Object

_INT_PATTERN = re.compile(r"[+-]?\d+")


@dataclass
class CmdlineConfig(Package):
    """Whether commands are read from standard input."""

    support_cmd_line: bool = False

    def name(self) -> str:
        return "cmdline"

    def init(self) -> None:
        pass

    def close(self) -> None:
        pass


CONFIG = CmdlineConfig()
register_package(CONFIG)


@dataclass
class CmdArg:
    """A named argument; simplify_flag is its short alias."""

    flag: str
    simplify_flag: str = ""
    required: bool = False


class CmdArgParser:
    """Collects 'key=value' arguments; other words are ignored."""

    def __init__(self, args: Sequence[str]) -> None:
        self._values: dict[str, str] = {}
        for arg in args:
            parts = arg.split("=")
            if len(parts) == 2:
                self._values[parts[0]] = parts[1]

    def _lookup(self, arg: CmdArg) -> str | None:
        if arg.simplify_flag in self._values:
            return self._values[arg.simplify_flag]
        if arg.flag in self._values:
            return self._values[arg.flag]
        if arg.required:
            raise ValueError(f"{arg.flag} must be given")
        return None

    def int_arg(self, arg: CmdArg, default: int = 0) -> int:
        """Integer value of arg; default when absent or not an integer."""
        value = self._lookup(arg)
        if value is None or not _INT_PATTERN.fullmatch(value):
            return default
        return int(value)

    def string_arg(self, arg: CmdArg, default: str = "") -> str:
        """String value of arg; default when absent."""
        value = self._lookup(arg)
        return default if value is None else value


class CommandExecutor(ABC):
    """A console command."""

    @abstractmethod
    def execute(self, args: list[str]) -> None:
        """Run the command with the words following its name."""

    @abstractmethod
    def show_usage(self) -> None:
        """Print how to use the command."""


_commands: dict[str, CommandExecutor] = {}


def register_command(name: str, executor: CommandExecutor) -> None:
    """Register executor under name (case-insensitive)."""
    _commands[name.lower()] = executor


class ExitExecutor(CommandExecutor):
    def execute(self, args: list[str]) -> None:
        module.stop()

    def show_usage(self) -> None:
        print("usage: exit")


class HelpExecutor(CommandExecutor):
    def execute(self, args: list[str]) -> None:
        if args:
            executor = _commands.get(args[0])
            if executor is not None:
                executor.show_usage()
            return
        self.show_usage()
        print("The commands are:")
        for name in _commands:
            if name != "help":
                print("\t", name)
        print('Use "help [command]" for more information about a command.')

    def show_usage(self) -> None:
        print("Help is a help command like window or linux shell's command")
        print("Usage:")
        print("\t", "help command")


def post_command(obj: Object, executor: CommandExecutor, args: Sequence[str]) -> bool:
    """Run executor with args on obj's worker thread."""
    arguments = list(args)

    def run(target: Object) -> None:
        try:
            executor.execute(arguments)
        finally:
            target.process_seqnum()

    return obj.send_command(run, True)


class CommandLineReader:
    """Reads command lines from a stream and posts them to an object."""

    def __init__(self, target: Object | None = None, pause: float = 1.0) -> None:
        self.target = target
        self.pause = pause

    def _target(self) -> Object:
        target = self.target if self.target is not None else module.APP_MODULE.obj
        if target is None:
            raise RuntimeError("module manager is not started")
        return target

    def dispatch(self, line: str) -> bool:
        """Post the command named by the first word of line; False if it is unknown."""
        params = line.rstrip("\r\n").split(" ")
        executor = _commands.get(params[0].lower())
        if executor is None:
            return False
        return post_command(self._target(), executor, params[1:])

    def _read(self, stream: TextIO) -> None:
        for line in stream:
            self.dispatch(line)
            if self.pause > 0:
                time.sleep(self.pause)

    def start(self, stream: TextIO | None = None) -> threading.Thread | None:
        """Start reading in a background thread when command-line support is enabled."""
        if not CONFIG.support_cmd_line:
            return None
        source = stream if stream is not None else sys.stdin
        thread = threading.Thread(target=self._read, args=(source,), name="cmdline", daemon=True)
        thread.start()
        return thread


register_command("exit", ExitExecutor())
register_command("help", HelpExecutor())