"""Skip list based ordered maps and sets with rank lookups and bidirectional iterators."""

from __future__ import annotations

import operator
import random
from typing import Any, Callable, Iterator as _PyIterator

P = 0.25
DEFAULT_MAX_LEVEL = 32

LessThan = Callable[[Any, Any], bool]


class _Node:
    __slots__ = ("forward", "span", "backward", "key", "value")

    def __init__(
        self,
        key: Any = None,
        value: Any = None,
        forward: list[_Node | None] | None = None,
        span: list[int] | None = None,
        backward: _Node | None = None,
    ) -> None:
        self.key = key
        self.value = value
        self.forward: list[_Node | None] = forward if forward is not None else []
        self.span: list[int] = span if span is not None else []
        self.backward = backward

    @property
    def next(self) -> _Node | None:
        return self.forward[0] if self.forward else None


class Iterator:
    """Bidirectional cursor over a skip list."""

    def __init__(self, skiplist: SkipList, current: _Node) -> None:
        self._list: SkipList | None = skiplist
        self._current: _Node | None = current
        self._key = current.key
        self._value = current.value

    def _move_to(self, node: _Node) -> None:
        self._current = node
        self._key = node.key
        self._value = node.value

    def next(self) -> bool:
        """Advance to the following element; return False at the end."""
        if self._current is None or self._current.next is None:
            return False
        self._move_to(self._current.next)
        return True

    def previous(self) -> bool:
        """Step back to the preceding element; return False at the start."""
        if self._current is None or self._current.backward is None:
            return False
        self._move_to(self._current.backward)
        return True

    def key(self) -> Any:
        return self._key

    def value(self) -> Any:
        return self._value

    def seek(self, key: Any) -> bool:
        """Move to the first element whose key is >= key; False if there is none."""
        skiplist = self._list
        if skiplist is None:
            return False
        current = self._current if self._current is not None else skiplist._header
        if current.key is not None and skiplist._less(key, current.key):
            current = skiplist._header
        current = current.backward if current.backward is not None else skiplist._header
        found = skiplist._get_path(current, None, None, key)
        if found is None:
            return False
        self._move_to(found)
        return True

    def close(self) -> None:
        """Release the references held by the iterator."""
        self._key = None
        self._value = None
        self._current = None
        self._list = None


class RangeIterator(Iterator):
    """Iterator limited to keys in [lower, upper)."""

    def __init__(self, skiplist: SkipList, current: _Node, lower: Any, upper: Any) -> None:
        super().__init__(skiplist, current)
        self._lower = lower
        self._upper = upper

    def next(self) -> bool:
        if self._current is None or self._list is None:
            return False
        following = self._current.next
        if following is None or not self._list._less(following.key, self._upper):
            return False
        self._move_to(following)
        return True

    def previous(self) -> bool:
        if self._current is None or self._list is None:
            return False
        preceding = self._current.backward
        if preceding is None or self._list._less(preceding.key, self._lower):
            return False
        self._move_to(preceding)
        return True

    def seek(self, key: Any) -> bool:
        if self._list is None:
            return False
        if self._list._less(key, self._lower) or not self._list._less(key, self._upper):
            return False
        return super().seek(key)

    def close(self) -> None:
        super().close()
        self._lower = None
        self._upper = None


class SkipList:
    """Ordered key/value map with O(log n) insertion, lookup, deletion and rank.

    Keys are ordered by less_than (the < operator by default); None keys are
    not supported.
    """

    def __init__(
        self,
        less_than: LessThan | None = None,
        max_level: int = DEFAULT_MAX_LEVEL,
        *,
        rng: random.Random | None = None,
    ) -> None:
        self._less: LessThan = less_than if less_than is not None else operator.lt
        self._header = _Node(forward=[None], span=[0])
        self._footer: _Node | None = None
        self._length = 0
        self._rng = rng if rng is not None else random.Random()
        self.max_level = max_level

    def __len__(self) -> int:
        return self._length

    def __iter__(self) -> _PyIterator[Any]:
        node = self._header.next
        while node is not None:
            yield node.key
            node = node.next

    def items(self) -> _PyIterator[tuple[Any, Any]]:
        """Yield (key, value) pairs in key order."""
        node = self._header.next
        while node is not None:
            yield node.key, node.value
            node = node.next

    @property
    def _level(self) -> int:
        return len(self._header.forward) - 1

    def _effective_max_level(self) -> int:
        return max(self._level, self.max_level)

    def _random_level(self) -> int:
        level = 0
        limit = self._effective_max_level()
        while level < limit and self._rng.random() < P:
            level += 1
        return level

    def _get_path(
        self,
        current: _Node,
        update: list[_Node] | None,
        rank: list[int] | None,
        key: Any,
    ) -> _Node | None:
        depth = len(current.forward) - 1
        for i in range(depth, -1, -1):
            if rank is not None and i != depth:
                rank[i] = rank[i + 1]
            following = current.forward[i]
            while following is not None and self._less(following.key, key):
                if rank is not None:
                    rank[i] += current.span[i]
                current = following
                following = current.forward[i]
            if update is not None:
                update[i] = current
        return current.next

    def iterator(self) -> Iterator:
        """Return an iterator positioned before the first element."""
        return Iterator(self, self._header)

    def seek(self, key: Any) -> Iterator | None:
        """Iterator at the first element with key >= key, or None."""
        current = self._get_path(self._header, None, None, key)
        if current is None:
            return None
        return Iterator(self, current)

    def seek_to_first(self) -> Iterator | None:
        if self._length == 0:
            return None
        return Iterator(self, self._header.next)

    def seek_to_last(self) -> Iterator | None:
        if self._footer is None:
            return None
        return Iterator(self, self._footer)

    def range(self, start: Any, stop: Any) -> RangeIterator:
        """Iterator over the elements with start <= key < stop."""
        first = self._get_path(self._header, None, None, start)
        anchor = _Node(forward=[first], backward=first)
        return RangeIterator(self, anchor, start, stop)

    def get(self, key: Any, default: Any = None) -> Any:
        """Value stored for key, or default when the key is absent."""
        if key is None:
            return default
        candidate = self._get_path(self._header, None, None, key)
        if candidate is None or candidate.key != key:
            return default
        return candidate.value

    def __contains__(self, key: Any) -> bool:
        if key is None:
            return False
        candidate = self._get_path(self._header, None, None, key)
        return candidate is not None and candidate.key == key

    def get_greater_or_equal(self, minimum: Any) -> tuple[Any, Any] | None:
        """(key, value) of the first element with key >= minimum, or None."""
        candidate = self._get_path(self._header, None, None, minimum)
        if candidate is None:
            return None
        return candidate.key, candidate.value

    def set(self, key: Any, value: Any) -> None:
        """Store value under key, replacing any existing value."""
        if key is None:
            raise ValueError("None keys are not supported")
        level = self._level
        update: list[_Node] = [self._header] * (level + 1)
        rank = [0] * (level + 1)
        candidate = self._get_path(self._header, update, rank, key)
        if candidate is not None and candidate.key == key:
            candidate.value = value
            return

        new_level = self._random_level()
        if new_level > level:
            for _ in range(level + 1, new_level + 1):
                update.append(self._header)
                rank.append(0)
                self._header.forward.append(None)
                self._header.span.append(self._length)

        node = _Node(key, value, [None] * (new_level + 1), [0] * (new_level + 1))
        if update[0].key is not None:
            node.backward = update[0]

        for i in range(new_level + 1):
            node.forward[i] = update[i].forward[i]
            update[i].forward[i] = node
            node.span[i] = update[i].span[i] - (rank[0] - rank[i])
            update[i].span[i] = (rank[0] - rank[i]) + 1

        for i in range(new_level + 1, self._level + 1):
            update[i].span[i] += 1

        self._length += 1

        following = node.forward[0]
        if following is not None:
            following.backward = node

        if self._footer is None or self._less(self._footer.key, key):
            self._footer = node

    def delete(self, key: Any) -> Any:
        """Remove key and return its value; raise KeyError if it is absent."""
        if key is None:
            raise ValueError("None keys are not supported")
        update: list[_Node] = [self._header] * (self._level + 1)
        candidate = self._get_path(self._header, update, None, key)
        if candidate is None or candidate.key != key:
            raise KeyError(key)

        previous = candidate.backward
        if self._footer is candidate:
            self._footer = previous

        following = candidate.next
        if following is not None:
            following.backward = previous

        for i in range(self._level + 1):
            if update[i].forward[i] is candidate:
                update[i].span[i] += candidate.span[i] - 1
                update[i].forward[i] = candidate.forward[i]
            else:
                update[i].span[i] -= 1

        while self._level > 0 and self._header.forward[self._level] is None:
            del self._header.forward[self._level]
            del self._header.span[len(self._header.forward):]

        self._length -= 1
        return candidate.value

    def get_rank(self, key: Any) -> int:
        """1-based rank of key, or 0 when the key is absent."""
        rank = 0
        current = self._header
        for i in range(self._level, -1, -1):
            following = current.forward[i]
            while following is not None and self._less(following.key, key):
                rank += current.span[i]
                current = following
                following = current.forward[i]
        found = current.next
        if found is not None and found.key == key:
            return rank + 1
        return 0

    def get_element_by_rank(self, rank: int) -> Any:
        """Value of the element at the 1-based rank; raise IndexError if out of range."""
        if rank < 1:
            raise IndexError(rank)
        traversed = 0
        current = self._header
        for i in range(self._level, -1, -1):
            following = current.forward[i]
            while following is not None and traversed + current.span[i] <= rank:
                traversed += current.span[i]
                current = following
                following = current.forward[i]
            if traversed == rank:
                return current.value
        raise IndexError(rank)


class SkipSet:
    """Ordered set stored in a skip list."""

    def __init__(
        self,
        less_than: LessThan | None = None,
        max_level: int = DEFAULT_MAX_LEVEL,
        *,
        rng: random.Random | None = None,
    ) -> None:
        self._list = SkipList(less_than, max_level, rng=rng)

    @property
    def max_level(self) -> int:
        return self._list.max_level

    @max_level.setter
    def max_level(self, value: int) -> None:
        self._list.max_level = value

    def add(self, key: Any) -> None:
        self._list.set(key, None)

    def remove(self, key: Any) -> bool:
        """Remove key; return True if it was present."""
        try:
            self._list.delete(key)
        except KeyError:
            return False
        return True

    def __len__(self) -> int:
        return len(self._list)

    def __contains__(self, key: Any) -> bool:
        return key in self._list

    def __iter__(self) -> _PyIterator[Any]:
        return iter(self._list)

    def iterator(self) -> Iterator:
        return self._list.iterator()

    def range(self, start: Any, stop: Any) -> RangeIterator:
        """Iterator over the elements with start <= key < stop."""
        return self._list.range(start, stop)