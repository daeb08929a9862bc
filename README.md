# objcore

`objcore` is a small application core for long-running services, built on
the standard library only. It provides:

- a tree of objects, each with its own worker thread and command queue;
- a module manager that initialises, updates and shuts down modules in
  priority order on the core object's heartbeat;
- a registry of configurable packages loaded from a JSON or TOML file;
- timing statistics for named sections of code;
- a line-oriented console with `help` and `exit` commands;
- thread-safe containers, queues, an object pool and skip lists.

## Modules

| Module | Purpose |
| --- | --- |
| `objcore.obj` | `Object`: a named node of an ownership tree with a worker thread that runs queued commands. Also `Options`, `Sinker`, `ObjectMonitor`, `WaitGroup`, `CmdStats` and object-local storage (`ols_alloc`, `ols_free`, `ols_install_clean_handler`, `Object.ols_get`, `Object.ols_set`, `Object.ols_clear`). |
| `objcore.cond` | `Cond`: a wait/signal primitive that keeps a bounded number of pending signals, with `wait`, `wait_for_timeout`, `signal`, `drain` and `broadcast`. |
| `objcore.ctx` | `APP_CTX`, the context holding the root object; `launch_child`, `terminate`, `core_object`; hooks (`Hook`, `register_hook`, `execute_hook`); `ObjId`; `write_pid`. |
| `objcore.module` | `Module`, `PreloadModule`, `ModuleManager`, `ModuleConfig`, `ModuleState`, and the helpers `register_module`, `register_preload_module`, `unregister_module`, `start` and `stop` acting on `APP_MODULE`. |
| `objcore.loader` | `Package`, `CoreConfig`, `register_package`, `is_package_registered`, `is_package_loaded`, `load_packages`, `load_packages_from_settings`, `close_packages`. |
| `objcore.profile` | `TimeStatisticManager`, `TimeWatcher`, `TimeElement`, `ElementType`, `ProfileConfig`, `format_duration` and `get_stats`. |
| `objcore.cmdline` | `CmdArg`, `CmdArgParser`, `CommandExecutor`, `ExitExecutor`, `HelpExecutor`, `CommandLineReader`, `register_command`, `post_command`, `CmdlineConfig`. |
| `objcore.containers` | `SynchronizedList` and `SynchronizedMap`. |
| `objcore.queues` | `SyncQueue` (unbounded, never blocks) and `ChannelQueue` (bounded, blocking with optional timeouts), both implementing `Queue`. |
| `objcore.balancequeue` | `BalanceQueue`: spreads elements over a fixed number of groups, keeping group sizes even, and runs one group per `update`. `Element` and `element_wrapper`. |
| `objcore.recycler` | `Recycler` (a pool that reuses given-back objects and drops ones idle longer than a minute), `RecyclerManager`, and `alloc_bytebuf` / `free_bytebuf` for `io.BytesIO` buffers. |
| `objcore.skiplist` | `SkipList` and `SkipSet`: ordered maps and sets with rank lookups, seeking and bidirectional and range iterators. |
| `objcore.logger` | The package logger and `configure(log_dir, debug)`, which moves an existing `app.log` aside (keeping at most three `app_*.log` backups), writes JSON lines to a size-rotated, gzip-compressed log file and, with `debug`, coloured text to standard output. |

## Objects and commands

A command is any callable that takes the object it runs on. The worker
thread waits until `activate()` is called.

```python
from objcore.obj import Object, Options

worker = Object(1, "worker", Options())
worker.activate()
worker.send_command(lambda obj: print("running on", obj.tree_name()))
```

Exceptions raised by a command are logged and do not stop the worker. A
command sent with `inc_seq=True` must call `obj.process_seqnum()` when it
is done, so that termination waits for it.

`parent.launch_child(child)` activates the child, calls its sinker's
`on_start` and makes `parent` its owner. `terminate()` on an object asks its
owner to terminate it; the root of a tree terminates itself. An object
terminates everything it owns first and finishes once every owned object
has acknowledged.

## Writing a module

```python
from objcore.module import Module, register_module, start, stop, unregister_module


class Heartbeat(Module):
    def module_name(self):
        return "heartbeat"

    def init(self):
        self.beats = 0

    def update(self):
        self.beats += 1

    def shutdown(self):
        unregister_module(self)   # confirm that shutdown is complete


register_module(Heartbeat(), 1.0, 0)   # tick interval in seconds, priority
waitgroup = start()
# ... later
stop()
```

`start()` runs the `Hook.BEFORE_START` hooks, starts the preload modules,
launches the core object under the root object and returns its `WaitGroup`
after a one-second pause. On each heartbeat of the core object the manager
initialises the modules once, then calls `update` on each module whose
interval has elapsed (an interval of 0 means every heartbeat). Modules are
handled in ascending priority order.

`stop()` requests shutdown and runs the `Hook.AFTER_STOP` hooks. Every
module's `shutdown` is called; once each has confirmed through
`unregister_module`, the root object, and with it the whole tree, is
terminated.

The heartbeat interval comes from the `module` package settings, given in
milliseconds; without loaded settings it is 10 ms.

## Configuration

Each configurable part registers a `Package` under a name: `core`
(`CoreConfig`), `module` (`ModuleConfig`), `profile` (`ProfileConfig`) and
`cmdline` (`CmdlineConfig`). `load_packages("config.json")` or
`load_packages("config.toml")` reads a file whose top-level keys are
package names, fills each package's attributes and calls its `init`:

```json
{
  "module": {"options": {"interval": 20, "max_done": 512}},
  "profile": {"slow_ms": 500},
  "cmdline": {"support_cmd_line": true}
}
```

Keys are matched without regard to case, underscores or dashes. The file
name must contain exactly one dot. The call returns a `LoadReport` listing
the loaded and failed packages, registered packages without settings and
settings without a package; failures are logged, not raised.
`load_packages_from_settings` does the same for a mapping.

## Profiling

```python
from objcore.profile import TIME_STATISTIC_MANAGER, ElementType, get_stats

with TIME_STATISTIC_MANAGER.watch_start("/job/import", ElementType.JOB):
    ...

stats = get_stats()   # name -> TimeElement, ticks in milliseconds
```

Commands run by objects and module updates are timed automatically. A new
maximum at or above `slow_ms` (1000 ms by default once initialised) is
logged as a warning. `dump(stream)` writes a table of all timings.

## Console commands

When the `cmdline` package has `support_cmd_line` enabled,
`CommandLineReader().start()` reads lines from standard input (or a given
stream) in a background thread. The first word names a command registered
with `register_command`; the remaining words are passed to it, and it runs
on the core object's worker thread. `help` lists the commands, `help NAME`
shows a command's usage and `exit` calls `objcore.module.stop()`.
`CmdArgParser` reads `key=value` words for commands that take arguments.

## Containers

```python
from objcore.containers import SynchronizedMap
from objcore.queues import SyncQueue
from objcore.skiplist import SkipList

shared = SynchronizedMap()
shared.set("answer", 42)
assert "answer" in shared

q = SyncQueue()
q.enqueue("job")
item, ok = q.dequeue()

ranks = SkipList()
for score in (30, 10, 20):
    ranks.set(score, f"player-{score}")
assert ranks.get_rank(20) == 2
assert ranks.get_element_by_rank(1) == "player-10"
```

`SkipList.delete` raises `KeyError` for a missing key and
`get_element_by_rank` raises `IndexError` for a rank out of range.

## What it does not do

`objcore` is a library: it installs no command of its own, and nothing
runs until your program calls `start()`. Logging to files is set up only
when you call `objcore.logger.configure`. Settings are read once from JSON
or TOML files; other formats and reloading on change are not supported.
The `core` package's `max_procs` setting is stored and defaulted but does
not limit threads.

## Running the tests

Install the `test` extra and run `pytest` from the project directory.