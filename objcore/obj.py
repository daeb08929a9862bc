"""Objects that own a worker thread and a command queue, arranged in an ownership tree.

Terminating an object first terminates everything it owns; each owned
object acknowledges its termination back to its owner.
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from collections import Counter, deque
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from objcore.cond import Cond
from objcore.containers import SynchronizedMap
from objcore.logger import logger

DEFAULT_QUEUE_BACKLOG = 4
QUEUE_TYPE_LIST = 0
QUEUE_TYPE_CHAN = 1

OLS_MAX_SLOT = 64
COMMAND_ELEMENT_TYPE = 4

Command = Callable[["Object"], Any]
OlsCleanHandler = Callable[[Any], None]


@dataclass
class Options:
    """Object configuration; interval is the heartbeat period in seconds."""

    interval: float = 0.0
    max_done: int = 0
    queue_backlog: int = 0


@dataclass
class CmdStats:
    pending_count: int = 0
    send_count: int = 0
    recv_count: int = 0


class Sinker(ABC):
    """Receives an object's life-cycle callbacks."""

    @abstractmethod
    def on_start(self) -> None:
        """Called when the object is launched by its owner."""

    @abstractmethod
    def on_tick(self) -> None:
        """Called on every heartbeat."""

    @abstractmethod
    def on_stop(self) -> None:
        """Called when termination begins."""


class ObjectMonitor:
    """Counts the life-cycle events it sees, by event and object tree name."""

    def __init__(self) -> None:
        self.counts: Counter[tuple[str, str]] = Counter()
        self._lock = threading.Lock()

    def _record(self, event: str, obj: Object) -> None:
        with self._lock:
            self.counts[(event, obj.tree_name())] += 1

    def on_start(self, obj: Object) -> None:
        self._record("start", obj)

    def on_tick(self, obj: Object) -> None:
        self._record("tick", obj)

    def on_stop(self, obj: Object) -> None:
        self._record("stop", obj)


class StatsWatch(Protocol):
    def stop(self) -> None: ...


class StatsWatchManager(Protocol):
    def watch_start(self, name: str, element_type: int) -> StatsWatch | None: ...


@dataclass
class _Monitoring:
    stats_watch_manager: StatsWatchManager | None = None


_monitoring = _Monitoring()


def set_stats_watch_manager(manager: StatsWatchManager | None) -> None:
    """Install the manager that times command execution (None disables timing)."""
    _monitoring.stats_watch_manager = manager


class WaitGroup:
    """Counts running workers by name; wait blocks until all have finished."""

    def __init__(self) -> None:
        self._counts: dict[str, int] = {}
        self._total = 0
        self._cond = threading.Condition()

    def add(self, name: str, delta: int = 1) -> None:
        with self._cond:
            if self._total + delta < 0:
                raise ValueError("negative wait group counter")
            count = self._counts.get(name, 0) + delta
            if count:
                self._counts[name] = count
            else:
                self._counts.pop(name, None)
            self._total += delta
            if self._total == 0:
                self._cond.notify_all()

    def done(self, name: str) -> None:
        self.add(name, -1)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the count reaches zero; return False on timeout."""
        with self._cond:
            return self._cond.wait_for(lambda: self._total == 0, timeout)


_slot_lock = threading.Lock()
_slot_flags = 0
_slot_handlers: list[OlsCleanHandler | None] = [None] * OLS_MAX_SLOT
_slot_holders = SynchronizedMap()


def ols_alloc() -> int:
    """Reserve a free object-local storage slot."""
    global _slot_flags
    with _slot_lock:
        for slot in range(OLS_MAX_SLOT):
            if not _slot_flags & (1 << slot):
                _slot_flags |= 1 << slot
                return slot
    raise RuntimeError("no free object-local storage slot")


def ols_free(slot: int) -> None:
    """Release a slot, cleaning its value in every object.

    Only slots with an installed clean handler are released.
    """
    global _slot_flags
    if not 0 <= slot < OLS_MAX_SLOT:
        return
    with _slot_lock:
        handler = _slot_handlers[slot]
        if handler is None or not _slot_flags & (1 << slot):
            return
        _slot_flags ^= 1 << slot

        def clean(obj: Any, _: Any) -> None:
            value = obj._ols[slot]
            if value is not None:
                obj._ols[slot] = None
                handler(value)

        _slot_holders.foreach(clean)


def ols_install_clean_handler(slot: int, handler: OlsCleanHandler | None) -> None:
    """Set the function called with a slot value when it is replaced or cleared."""
    if 0 <= slot < OLS_MAX_SLOT:
        _slot_handlers[slot] = handler


class Object:
    """A node of the ownership tree with its own command-processing thread.

    The thread starts waiting and begins work once activate() is called.
    """

    def __init__(
        self,
        obj_id: int,
        name: str,
        options: Options | None = None,
        sinker: Sinker | None = None,
        *,
        waitgroup: WaitGroup | None = None,
    ) -> None:
        self.id = obj_id
        self.name = name
        self.options = options if options is not None else Options()
        self.sinker = sinker
        self.waitgroup = waitgroup
        self.user_data: Any = None
        self._owner: Object | None = None
        self._children = SynchronizedMap()
        self._queue: deque[Command] = deque()
        self._lock = threading.Lock()
        self._counter_lock = threading.Lock()
        self._cond = Cond(1)
        self._activated = threading.Event()
        self._terminating = False
        self._terminated = False
        self._sent_seqnum = 0
        self._processed_seqnum = 0
        self._term_acks = 0
        self._ols: list[Any] = [None] * OLS_MAX_SLOT
        self._send_count = 0
        self._recv_count = 0
        self._thread = threading.Thread(target=self._run, name=f"object-{name}", daemon=True)
        self._thread.start()

    @property
    def owner(self) -> Object | None:
        return self._owner

    def __repr__(self) -> str:
        return f"Object(id={self.id!r}, name={self.name!r})"

    def tree_name(self) -> str:
        """Slash-separated path from the root to this object."""
        names = []
        node: Object | None = self
        while node is not None:
            names.append(node.name)
            node = node._owner
        return "/" + "/".join(reversed(names))

    def activate(self) -> None:
        """Let the worker thread start processing commands."""
        self._activated.set()

    def launch_child(self, child: Object | None) -> None:
        """Start child and take ownership of it."""
        if child is None:
            return
        if child._owner is not None:
            raise RuntimeError("An object can have only one parent node")
        child._owner = self
        child.waitgroup = self.waitgroup
        child.activate()
        child._safe_call("on_start")
        send_own(self, child)

    def get_child(self, child_id: int) -> Object | None:
        child = self._children.get(child_id)
        return child if isinstance(child, Object) else None

    def _inc_seqnum(self) -> None:
        with self._counter_lock:
            self._sent_seqnum += 1

    def process_seqnum(self) -> None:
        """Record that a sequenced command was processed."""
        self._processed_seqnum += 1
        self._check_term_acks()

    def _check_term_acks(self) -> None:
        logger.debug(
            "(%s) object checkTermAcks terminating=%s processedSeqnum=%s sentSeqnum=%s termAcks=%s",
            self.tree_name(), self._terminating, self._processed_seqnum,
            self._sent_seqnum, self._term_acks,
        )
        if (
            self._terminating
            and self._processed_seqnum == self._sent_seqnum
            and self._term_acks == 0
        ):
            if self._owner is not None:
                logger.debug("(%s)->(%s) Object SendTermAck", self.name, self._owner.name)
                send_term_ack(self._owner)
            self._process_destroy()

    def terminate(self) -> None:
        """Start terminating this object (via its owner when it has one)."""
        if self._terminating:
            return
        logger.debug("(%s) object Terminate", self.tree_name())
        if self._owner is None:
            self._process_term()
            return
        send_term_req(self._owner, self)

    def _process_term(self) -> None:
        if self._terminating:
            return
        count = 0
        for child in self._children.items().values():
            if isinstance(child, Object):
                send_term(child)
                count += 1
        self._term_acks += count
        logger.debug("(%s) object processTerm, termAcks=%s", self.tree_name(), self._term_acks)
        self._safe_call("on_stop")
        self._terminating = True
        self._check_term_acks()

    def _process_destroy(self) -> None:
        logger.debug("(%s) object processDestroy", self.tree_name())
        self._terminated = True
        self.ols_clear()
        self._cond.signal()

    def _handle_own(self, child: Object) -> None:
        try:
            if self._terminating:
                self._term_acks += 1
                send_term(child)
                return
            self._children.set(child.id, child)
        finally:
            self.process_seqnum()

    def _handle_term_ack(self) -> None:
        if self._term_acks > 0:
            self._term_acks -= 1
            self._check_term_acks()

    def _handle_term_req(self, child: Object) -> None:
        if self._terminating:
            return
        if child.id in self._children:
            self._term_acks += 1
            send_term(child)
            self._children.delete(child.id)

    def pending_count(self) -> int:
        with self._lock:
            return len(self._queue)

    def send_command(self, command: Command, inc_seq: bool = False) -> bool:
        """Queue command(obj) for the worker thread.

        With inc_seq the command must call obj.process_seqnum() when done.
        """
        if inc_seq:
            self._inc_seqnum()
        with self._lock:
            self._queue.append(command)
        with self._counter_lock:
            self._send_count += 1
        self._cond.signal()
        return True

    def _pop_command(self) -> Command | None:
        with self._lock:
            return self._queue.popleft() if self._queue else None

    def _run(self) -> None:
        self._activated.wait()
        waitgroup = self.waitgroup
        if waitgroup is not None:
            waitgroup.add(self.name, 1)
        try:
            self._loop()
        except Exception:
            logger.exception("(%s) object command loop failed", self.name)
        finally:
            if waitgroup is not None:
                waitgroup.done(self.name)

    def _loop(self) -> None:
        interval = self.options.interval
        tick_mode = interval > 0 and self.sinker is not None
        next_tick = time.monotonic() + interval
        name = self.tree_name()
        logger.debug("(%s) object active", name)
        done_count = 0
        while not self._terminated:
            count = self.pending_count()
            if count == 0:
                if tick_mode:
                    remaining = next_tick - time.monotonic()
                    if remaining <= 0 or self._cond.wait_for_timeout(remaining):
                        self._safe_call("on_tick")
                        next_tick = time.monotonic() + interval
                        done_count = 0
                        continue
                else:
                    self._cond.wait()

            command = self._pop_command()
            if command is not None:
                self._safe_done(command)
                done_count += 1

            if tick_mode:
                if time.monotonic() >= next_tick:
                    self._safe_call("on_tick")
                    next_tick = time.monotonic() + interval
                    done_count = 0
                max_done = self.options.max_done
                if done_count > max_done or count > max_done:
                    logger.warning(
                        "(%s) object queue cmd count(%s) maxdone(%s) this tick process cnt(%s)",
                        name, count, max_done, done_count,
                    )
        logger.debug(
            "(%s) object ProcessCommand done, queue rest cmd count(%s)", name, self.pending_count()
        )

    def _safe_done(self, command: Command) -> None:
        manager = _monitoring.stats_watch_manager
        watch = None
        if manager is not None:
            watch = manager.watch_start(f"/object/{self.name}/cmdone", COMMAND_ELEMENT_TYPE)
        try:
            command(self)
        except Exception:
            logger.exception("(%s) command failed", self.name)
        finally:
            with self._counter_lock:
                self._recv_count += 1
            if watch is not None:
                watch.stop()

    def _safe_call(self, event: str) -> None:
        if self.sinker is None:
            return
        try:
            getattr(self.sinker, event)()
        except Exception:
            logger.exception("(%s) sinker %s failed", self.name, event)

    def is_terminated(self) -> bool:
        return self._terminated

    def stats_self(self) -> CmdStats:
        with self._counter_lock:
            sent, received = self._send_count, self._recv_count
        return CmdStats(self.pending_count(), sent, received)

    def get_stats(self) -> dict[str, CmdStats]:
        """Command statistics of this object and all its descendants, by tree name."""
        stats = {self.tree_name(): self.stats_self()}
        for child in self._children.items().values():
            if isinstance(child, Object):
                stats.update(child.get_stats())
        return stats

    def ols_get(self, slot: int) -> Any:
        if 0 <= slot < OLS_MAX_SLOT:
            return self._ols[slot]
        return None

    def ols_set(self, slot: int, value: Any) -> None:
        """Store value in slot; the replaced value goes to the slot's clean handler."""
        if not 0 <= slot < OLS_MAX_SLOT:
            return
        old = self._ols[slot]
        self._ols[slot] = value
        if old is not None:
            handler = _slot_handlers[slot]
            if handler is not None:
                handler(old)
        _slot_holders.set(self, True)

    def ols_clear(self) -> None:
        """Pass every stored value to its clean handler and empty all slots."""
        for slot, value in enumerate(self._ols):
            if value is None:
                continue
            self._ols[slot] = None
            handler = _slot_handlers[slot]
            if handler is not None:
                handler(value)
        _slot_holders.delete(self)


def send_own(parent: Object, child: Object) -> bool:
    """Ask parent to record child as owned."""
    return parent.send_command(lambda obj: obj._handle_own(child), True)


def send_term(obj: Object) -> bool:
    """Ask obj to terminate."""
    return obj.send_command(lambda target: target._process_term(), False)


def send_term_ack(parent: Object) -> bool:
    """Tell parent that one owned object has finished terminating."""
    return parent.send_command(lambda target: target._handle_term_ack(), False)


def send_term_req(parent: Object, child: Object) -> bool:
    """Ask parent to terminate its owned child."""
    return parent.send_command(lambda target: target._handle_term_req(child), False)