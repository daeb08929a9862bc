"""Balance queue: spreads elements over fixed groups, one group is run per update."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable

_INITIAL_TABLES = 10


class Element(ABC):
    """Something a BalanceQueue can run."""

    @abstractmethod
    def balance_queue_handler(self) -> None:
        """Called when the element's group is updated."""


class _FunctionElement(Element):
    def __init__(self, func: Callable[[], None]) -> None:
        self.func = func

    def balance_queue_handler(self) -> None:
        self.func()


def element_wrapper(func: Callable[[], None]) -> Element:
    """Wrap a plain callable as an Element."""
    return _FunctionElement(func)


@dataclass(eq=False)
class _Group:
    queue_pos: int
    items: list[Element] = field(default_factory=list)


class BalanceQueue:
    """Keeps group sizes balanced; each update runs the next group in turn."""

    def __init__(self, group_number: int) -> None:
        self._index = 0
        self._groups = [_Group(queue_pos=i) for i in range(group_number)]
        # _tables[k] holds the groups that currently have k elements.
        self._tables: list[list[_Group]] = [[] for _ in range(_INITIAL_TABLES)]
        self._tables[0].extend(self._groups)
        self._pool: dict[int, _Group] = {}

    def __str__(self) -> str:
        lines = ["BalanceQueue:\n", f"分组数量: {len(self._groups)}\n"]
        for count, table in enumerate(self._tables):
            sizes = "".join(f"{len(group.items)} " for group in table)
            lines.append(f"元素数量{count}: 组数量{len(table)} ==>{sizes}\n")
        return "".join(lines)

    def update(self) -> None:
        """Run every element of the next group."""
        if self._index == len(self._groups):
            self._index = 0
        for element in list(self._groups[self._index].items):
            element.balance_queue_handler()
        self._index += 1

    def push(self, element: Element | None) -> None:
        """Add element to one of the smallest groups; duplicates are ignored."""
        if element is None or id(element) in self._pool:
            return
        for count, table in enumerate(self._tables):
            if not table:
                continue
            group = table.pop()
            if count + 1 >= len(self._tables):
                self._tables.append([])
            target = self._tables[count + 1]
            target.append(group)
            group.queue_pos = len(target) - 1
            group.items.append(element)
            self._pool[id(element)] = group
            return

    def pop(self, element: Element) -> None:
        """Remove element if present."""
        group = self._pool.pop(id(element), None)
        if group is None:
            return
        count = len(group.items)
        for position, candidate in enumerate(group.items):
            if candidate is element:
                group.items[position] = group.items[-1]
                group.items.pop()
                table = self._tables[count]
                pos = group.queue_pos
                table[pos] = table[-1]
                table[pos].queue_pos = pos
                table.pop()
                lower = self._tables[count - 1]
                lower.append(group)
                group.queue_pos = len(lower) - 1
                return