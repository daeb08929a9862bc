"""Module manager: runs registered modules on the core object's heartbeat.

Modules are initialised, updated and shut down in priority order (lower
priority values first). A module confirms that its shutdown is complete
with unregister_module().
"""

from __future__ import annotations

import queue
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import IntEnum

from objcore import ctx
from objcore.ctx import Hook, ObjId, execute_hook
from objcore.loader import Package, is_package_loaded, register_package
from objcore.logger import logger
from objcore.obj import Object, Options, Sinker, WaitGroup
from objcore.profile import TIME_STATISTIC_MANAGER, ElementType

MODULE_NAME_NET = "net-module"
MODULE_NAME_TRANSACT = "dtc-module"
MODULE_MAX_COUNT = 1024

DEFAULT_QUEUE_BACKLOG = 1024
DEFAULT_MAX_DONE = 1024
DEFAULT_INTERVAL = 0.01


@dataclass
class ModuleConfig(Package):
    """Options of the core object; the configured interval is in milliseconds."""

    options: Options = field(default_factory=Options)

    def name(self) -> str:
        return "module"

    def init(self) -> None:
        """Fill in defaults and convert the interval from milliseconds to seconds."""
        if self.options.queue_backlog <= 0:
            self.options.queue_backlog = DEFAULT_QUEUE_BACKLOG
        if self.options.max_done <= 0:
            self.options.max_done = DEFAULT_MAX_DONE
        if self.options.interval <= 0:
            self.options.interval = DEFAULT_INTERVAL
        else:
            self.options.interval = self.options.interval / 1000

    def close(self) -> None:
        pass


CONFIG = ModuleConfig()
register_package(CONFIG)


class Module(ABC):
    """A unit of application logic driven by the module manager."""

    @abstractmethod
    def module_name(self) -> str:
        """Unique name of the module."""

    @abstractmethod
    def init(self) -> None:
        """Called once before the first update."""

    @abstractmethod
    def update(self) -> None:
        """Called on every due tick."""

    @abstractmethod
    def shutdown(self) -> None:
        """Begin shutting down; confirm completion with unregister_module()."""


class PreloadModule(ABC):
    """Started before the core object is created."""

    @abstractmethod
    def start(self) -> None:
        """Start the preload module."""


class ModuleState(IntEnum):
    INVALID = 0
    INIT = 1
    RUN = 2
    SHUTDOWN = 3
    WAIT_SHUTDOWN = 4
    FINI = 5


@dataclass(eq=False)
class _ModuleEntity:
    module: Module
    tick_interval: float
    priority: int
    last_tick: float = field(default_factory=time.monotonic)
    quited: bool = False

    def safe_init(self) -> None:
        try:
            self.module.init()
        except Exception:
            logger.exception("module [%s] init failed", self.module.module_name())

    def safe_update(self, now: float) -> None:
        if self.tick_interval > 0 and now - self.last_tick < self.tick_interval:
            return
        self.last_tick = now
        name = self.module.module_name()
        try:
            with TIME_STATISTIC_MANAGER.watch_start(f"/module/{name}/update", ElementType.MODULE):
                self.module.update()
        except Exception:
            logger.exception("module [%s] update failed", name)

    def safe_shutdown(self) -> None:
        try:
            self.module.shutdown()
        except Exception:
            logger.exception("module [%s] shutdown failed", self.module.module_name())


@dataclass(eq=False)
class _PreloadEntity:
    module: PreloadModule
    priority: int


def _insert_by_priority(entries: list, entity) -> None:
    index = next(
        (i for i, existing in enumerate(entries) if entity.priority < existing.priority),
        len(entries),
    )
    entries.insert(index, entity)


class ModuleManager(Sinker):
    """Drives the life cycle of registered modules from the core object's ticks."""

    def __init__(self) -> None:
        self._modules: list[_ModuleEntity] = []
        self._by_name: dict[str, _ModuleEntity] = {}
        self._preloads: list[_PreloadEntity] = []
        self._shutdown_acks: queue.Queue[str] = queue.Queue(maxsize=MODULE_MAX_COUNT)
        self._wait_count = 0
        self._wait_shut = False
        self.state = ModuleState.INVALID
        self.obj: Object | None = None
        self.startup_delay = 1.0
        self.shutdown_poll = 1.0
        self.current_time = 0.0
        self.current_time_sec = 0
        self.current_time_nano = 0

    def register_module(self, module: Module, tick_interval: float = 0, priority: int = 0) -> None:
        """Add a module; tick_interval is in seconds, 0 means every tick."""
        logger.info(
            "module [%16s] registe;interval=%s,priority=%s",
            module.module_name(), tick_interval, priority,
        )
        entity = _ModuleEntity(module, tick_interval, priority)
        self._by_name[module.module_name()] = entity
        _insert_by_priority(self._modules, entity)

    def unregister_module(self, module: Module) -> None:
        """Remove a module from the manager."""
        index = next((i for i, e in enumerate(self._modules) if e.module is module), None)
        if index is None:
            return
        self._by_name.pop(module.module_name(), None)
        del self._modules[index]

    def notify_shutdown(self, module: Module) -> None:
        """Confirm that module has finished shutting down."""
        self._shutdown_acks.put(module.module_name())

    def register_preload_module(self, module: PreloadModule, priority: int = 0) -> None:
        _insert_by_priority(self._preloads, _PreloadEntity(module, priority))

    def unregister_preload_module(self, module: PreloadModule) -> None:
        index = next((i for i, e in enumerate(self._preloads) if e.module is module), None)
        if index is not None:
            del self._preloads[index]

    def start(self) -> WaitGroup | None:
        """Start preload modules, then launch the core object under the root."""
        logger.info("Startup PreloadModules")
        for entity in list(self._preloads):
            entity.module.start()
        logger.info("Startup PreloadModules [ok]")

        config = CONFIG
        if not is_package_loaded(config.name()):
            config = ModuleConfig()
            config.init()
        obj = Object(ObjId.CORE, "core", replace(config.options), self)
        obj.user_data = self
        self.obj = obj
        ctx.launch_child(obj)
        ctx.APP_CTX.core_obj = obj
        self.state = ModuleState.INIT
        # Leave the core object time to get scheduled before returning.
        if self.startup_delay > 0:
            time.sleep(self.startup_delay)
        return obj.waitgroup

    def close(self) -> None:
        """Request shutdown of all modules."""
        self.state = ModuleState.SHUTDOWN

    def _init(self) -> None:
        logger.info("Start Initialize Modules")
        for entity in list(self._modules):
            if entity.quited:
                continue
            logger.info("module [%16s] init...", entity.module.module_name())
            entity.safe_init()
            logger.info("module [%16s] init[ok]", entity.module.module_name())
        self.state = ModuleState.RUN
        logger.info("Start Initialize Modules [ok]")

    def _refresh_clock(self) -> None:
        self.current_time_nano = time.time_ns()
        self.current_time = self.current_time_nano / 1e9
        self.current_time_sec = self.current_time_nano // 1_000_000_000

    def _update(self) -> None:
        self._refresh_clock()
        now = time.monotonic()
        for entity in list(self._modules):
            if not entity.quited:
                entity.safe_update(now)

    def _shutdown(self) -> None:
        if self._wait_shut:
            return
        logger.info("ModuleMgr shutdown()")
        self._wait_shut = True
        self.state = ModuleState.WAIT_SHUTDOWN
        for entity in list(self._modules):
            logger.info("module [%16s] shutdown...", entity.module.module_name())
            entity.safe_shutdown()
            logger.info("module [%16s] shutdown[ok]", entity.module.module_name())
            self._wait_count += 1

    def _check_shutdown(self) -> bool:
        try:
            name = self._shutdown_acks.get(timeout=self.shutdown_poll)
        except queue.Empty:
            for entity in self._modules:
                if not entity.quited:
                    logger.info("Module [%s] wait shutdown...", entity.module.module_name())
        else:
            logger.info("module [%16s] shutdowned", name)
            entity = self._by_name.get(name)
            if entity is not None and not entity.quited:
                entity.quited = True
                self._wait_count -= 1
        if self._wait_count == 0:
            self.state = ModuleState.FINI
            return True
        self._update()
        return False

    def _fini(self) -> None:
        if self.obj is not None:
            ctx.terminate(self.obj)
        self.state = ModuleState.INVALID
        logger.info("=============ModuleMgr fini=============")

    def tick(self) -> None:
        """Advance the life cycle by one step according to the current state."""
        match self.state:
            case ModuleState.INIT:
                self._init()
            case ModuleState.RUN:
                self._update()
            case ModuleState.SHUTDOWN:
                self._shutdown()
            case ModuleState.WAIT_SHUTDOWN:
                self._check_shutdown()
            case ModuleState.FINI:
                self._fini()

    def get_module(self, name: str) -> Module | None:
        entity = self._by_name.get(name)
        return entity.module if entity is not None else None

    def on_start(self) -> None:
        """Record the wall-clock time at which the core object was launched."""
        self._refresh_clock()

    def on_tick(self) -> None:
        self.tick()

    def on_stop(self) -> None:
        """Record the wall-clock time at which the core object began stopping."""
        self._refresh_clock()


APP_MODULE = ModuleManager()


def register_module(module: Module, tick_interval: float = 0, priority: int = 0) -> None:
    APP_MODULE.register_module(module, tick_interval, priority)


def register_preload_module(module: PreloadModule, priority: int = 0) -> None:
    APP_MODULE.register_preload_module(module, priority)


def unregister_module(module: Module) -> None:
    """Confirm to the application manager that module has shut down."""
    APP_MODULE.notify_shutdown(module)


def start() -> WaitGroup | None:
    """Run the before-start hooks and start the application manager."""
    try:
        execute_hook(Hook.BEFORE_START)
    except Exception as exc:
        logger.error("ExecuteHook(HOOK_BEFORE_START) error %s", exc)
    return APP_MODULE.start()


def stop() -> None:
    """Request shutdown and run the after-stop hooks."""
    APP_MODULE.close()
    try:
        execute_hook(Hook.AFTER_STOP)
    except Exception as exc:
        logger.error("ExecuteHook(HOOK_AFTER_STOP) error %s", exc)