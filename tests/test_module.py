import time

import pytest

from objcore import ctx
from objcore.ctx import Hook, register_hook
from objcore.module import (
    APP_MODULE,
    Module,
    ModuleConfig,
    ModuleManager,
    ModuleState,
    PreloadModule,
    stop,
)
from objcore.obj import Options


class Recorder(Module):
    def __init__(self, name, log, fail_init=False):
        self.name = name
        self.log = log
        self.fail_init = fail_init
        self.updates = 0

    def module_name(self):
        return self.name

    def init(self):
        if self.fail_init:
            raise RuntimeError("init failed")
        self.log.append(("init", self.name))

    def update(self):
        self.updates += 1

    def shutdown(self):
        self.log.append(("shutdown", self.name))


class Preload(PreloadModule):
    def __init__(self, name, log):
        self.name = name
        self.log = log

    def start(self):
        self.log.append(self.name)


def make_manager():
    manager = ModuleManager()
    manager.startup_delay = 0
    manager.shutdown_poll = 0.01
    return manager


def test_config_defaults():
    config = ModuleConfig()
    config.init()
    assert config.options.queue_backlog == 1024
    assert config.options.max_done == 1024
    assert config.options.interval == pytest.approx(0.01)


def test_config_interval_is_milliseconds():
    config = ModuleConfig(options=Options(interval=50, max_done=7, queue_backlog=3))
    config.init()
    assert config.options.interval == pytest.approx(0.05)
    assert config.options.max_done == 7
    assert config.options.queue_backlog == 3


def test_init_runs_in_priority_order():
    log = []
    manager = make_manager()
    manager.register_module(Recorder("c", log), 0, 5)
    manager.register_module(Recorder("a", log), 0, 1)
    manager.register_module(Recorder("b", log), 0, 3)
    manager.state = ModuleState.INIT
    manager.tick()
    assert [name for _, name in log] == ["a", "b", "c"]
    assert manager.state == ModuleState.RUN


def test_equal_priority_keeps_registration_order():
    log = []
    manager = make_manager()
    for name in ["x", "y", "z"]:
        manager.register_module(Recorder(name, log), 0, 2)
    manager.state = ModuleState.INIT
    manager.tick()
    assert [name for _, name in log] == ["x", "y", "z"]


def test_failing_init_does_not_stop_others():
    log = []
    manager = make_manager()
    manager.register_module(Recorder("bad", log, fail_init=True), 0, 0)
    manager.register_module(Recorder("good", log), 0, 1)
    manager.state = ModuleState.INIT
    manager.tick()
    assert log == [("init", "good")]
    assert manager.state == ModuleState.RUN


def test_get_and_unregister_module():
    log = []
    manager = make_manager()
    module = Recorder("m", log)
    manager.register_module(module, 0, 0)
    assert manager.get_module("m") is module
    manager.unregister_module(module)
    assert manager.get_module("m") is None
    manager.state = ModuleState.INIT
    manager.tick()
    assert log == []


def test_update_respects_tick_interval():
    log = []
    manager = make_manager()
    every = Recorder("every", log)
    rare = Recorder("rare", log)
    manager.register_module(every, 0, 0)
    manager.register_module(rare, 100, 0)
    manager.state = ModuleState.RUN
    for _ in range(3):
        manager.tick()
    assert every.updates == 3
    assert rare.updates == 0
    assert manager.current_time_sec > 0


def test_shutdown_waits_for_confirmation():
    log = []
    manager = make_manager()
    module = Recorder("m", log)
    manager.register_module(module, 0, 0)
    manager.close()
    assert manager.state == ModuleState.SHUTDOWN
    manager.tick()
    assert ("shutdown", "m") in log
    assert manager.state == ModuleState.WAIT_SHUTDOWN
    manager.tick()
    assert manager.state == ModuleState.WAIT_SHUTDOWN
    manager.notify_shutdown(module)
    manager.tick()
    assert manager.state == ModuleState.FINI
    manager.tick()
    assert manager.state == ModuleState.INVALID


def test_shutdown_runs_only_once():
    log = []
    manager = make_manager()
    manager.register_module(Recorder("m", log), 0, 0)
    manager.close()
    manager.tick()
    manager.state = ModuleState.SHUTDOWN
    manager.tick()
    assert log.count(("shutdown", "m")) == 1


def test_start_runs_preloads_and_launches_core():
    saved = ctx.APP_CTX.core_obj
    log = []
    manager = make_manager()
    manager.register_preload_module(Preload("late", log), 9)
    manager.register_preload_module(Preload("early", log), 1)
    dropped = Preload("dropped", log)
    manager.register_preload_module(dropped, 5)
    manager.unregister_preload_module(dropped)
    module_log = []
    manager.register_module(Recorder("m", module_log), 0, 0)
    try:
        waitgroup = manager.start()
        assert log == ["early", "late"]
        assert waitgroup is ctx.APP_CTX.waitgroup
        assert ctx.core_object() is manager.obj
        deadline = time.monotonic() + 3
        while manager.state != ModuleState.RUN and time.monotonic() < deadline:
            time.sleep(0.01)
        assert manager.state == ModuleState.RUN
        assert module_log == [("init", "m")]
    finally:
        if manager.obj is not None:
            manager.obj.terminate()
        ctx.APP_CTX.core_obj = saved


def test_stop_requests_shutdown_and_runs_hooks():
    calls = []
    register_hook(Hook.AFTER_STOP, lambda: calls.append("after"))
    saved = APP_MODULE.state
    try:
        stop()
        assert APP_MODULE.state == ModuleState.SHUTDOWN
        assert calls == ["after"]
    finally:
        APP_MODULE.state = saved