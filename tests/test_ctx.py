import os
import sys
import time

import pytest

from objcore import ctx
from objcore.ctx import (
    Context,
    Hook,
    ObjId,
    core_object,
    execute_hook,
    launch_child,
    register_hook,
    terminate,
    write_pid,
)
from objcore.obj import Object


def _until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def fresh_hooks(monkeypatch):
    monkeypatch.setattr(ctx, "_hooks", {hook: [] for hook in Hook})


@pytest.fixture
def fresh_context(monkeypatch):
    context = Context()
    monkeypatch.setattr(ctx, "APP_CTX", context)
    return context


def test_object_ids_follow_source_order():
    assert [ObjId(i) for i in range(5)] == list(ObjId)
    assert ObjId(1) is ObjId.CORE
    obj = Object(ObjId(4), "profile")
    assert obj.id == 4
    with pytest.raises(ValueError):
        ObjId(5)


def test_context_root_is_named_root():
    context = Context()
    assert context.root.tree_name() == "/root"
    assert context.root.id == ObjId.ROOT
    assert context.root.user_data is context
    context.root.terminate()
    assert _until(context.root.is_terminated)


def test_hooks_run_in_order(fresh_hooks):
    calls = []
    register_hook(Hook.BEFORE_START, lambda: calls.append("a"))
    register_hook(Hook.BEFORE_START, lambda: calls.append("b"))
    register_hook(Hook.AFTER_STOP, lambda: calls.append("stop"))
    execute_hook(Hook.BEFORE_START)
    assert calls == ["a", "b"]
    execute_hook(Hook.AFTER_STOP)
    assert calls == ["a", "b", "stop"]


def test_failing_hook_stops_the_rest(fresh_hooks):
    calls = []

    def boom():
        raise RuntimeError("hook failed")

    register_hook(Hook.AFTER_STOP, boom)
    register_hook(Hook.AFTER_STOP, lambda: calls.append("late"))
    with pytest.raises(RuntimeError, match="hook failed"):
        execute_hook(Hook.AFTER_STOP)
    assert calls == []


def test_invalid_hook_positions_are_ignored(fresh_hooks):
    calls = []
    register_hook(-1, lambda: calls.append("x"))
    register_hook(len(Hook), lambda: calls.append("y"))
    execute_hook(-1)
    execute_hook(len(Hook))
    assert calls == []
    assert all(not funcs for funcs in ctx._hooks.values())


def test_core_object_returns_context_core(fresh_context):
    assert core_object() is None
    core = Object(ObjId.CORE, "core")
    fresh_context.core_obj = core
    assert core_object() is core
    core.activate()
    core.terminate()
    assert _until(core.is_terminated)


def test_launch_child_and_terminate(fresh_context):
    child = Object(ObjId.TIMER, "child")
    launch_child(child)
    assert _until(lambda: fresh_context.root.get_child(ObjId.TIMER) is child)
    assert child.tree_name() == "/root/child"
    terminate(child)
    assert _until(child.is_terminated)
    assert _until(fresh_context.root.is_terminated)
    assert fresh_context.waitgroup.wait(timeout=5)


def test_write_pid(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(sys, "argv", [os.path.join("some", "dir", "myapp")])
    path = write_pid()
    assert path.name == "myapp.pid"
    assert (tmp_path / "myapp.pid").read_text() == str(os.getpid())


def test_write_pid_failure_raises(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(sys, "argv", ["myapp"])
    (tmp_path / "myapp.pid").mkdir()
    with pytest.raises(RuntimeError, match="had running"):
        write_pid()