"""Application core: object trees with command queues, module scheduling, package loading, profiling, console commands and thread-safe containers."""

__version__ = "0.1.0"