import functools
import inspect
import os
import re
import threading
import time
from collections import deque

from config import TRACE_LOG_LIMIT


def _sanitize_repr(value, limit: int = 200) -> str:
    """
    Builds a short, stable representation of a value for the trace log.
    Memory addresses are stripped and long values (file contents) are clipped.
    """
    rep = repr(value)
    rep = re.sub(r"\s+at\s+0x[0-9a-fA-F]+", "", rep)
    if len(rep) > limit:
        rep = f"{rep[:limit]}... ({len(rep)} chars)"
    return rep


class Tracer:
    """
    Records the execution flow of decorated functions as a nested structure that
    mirrors the call stack. Only the most recent top-level entries are kept.

    Each OS thread (and each eventlet tpool worker) gets its own call stack, so
    a generation running in the background does not interleave its frames with
    socket handlers.
    """

    def __init__(self, limit: int = TRACE_LOG_LIMIT):
        self.limit = limit
        self._local = threading.local()
        self.reset()

    def reset(self):
        """Clears the current trace log."""
        self.trace_log = deque(maxlen=self.limit)

    @property
    def call_stack(self) -> list:
        if not hasattr(self._local, "stack"):
            self._local.stack = []
        return self._local.stack

    def _attach(self, entry: dict) -> None:
        if self.call_stack:
            self.call_stack[-1].setdefault("nested_calls", []).append(entry)
        else:
            self.trace_log.append(entry)

    def start_trace(self, module: str, func_name: str) -> None:
        entry = {"function": f"{module}.{func_name}", "_started": time.perf_counter()}
        self._attach(entry)
        self.call_stack.append(entry)

    def end_trace(self, return_value, is_exception: bool = False) -> None:
        if not self.call_stack:
            return
        entry = self.call_stack.pop()
        entry["duration_ms"] = round((time.perf_counter() - entry.pop("_started")) * 1000, 3)
        if is_exception:
            entry["exception"] = _sanitize_repr(return_value)
        elif return_value is not None:
            is_empty_container = isinstance(return_value, (list, dict, tuple, str)) and not return_value
            if not is_empty_container:
                entry["return_value"] = _sanitize_repr(return_value)

    def get_trace(self) -> list:
        """Returns a copy of the completed top-level entries."""
        return [entry for entry in list(self.trace_log) if "_started" not in entry]


# Global instance of the tracer
global_tracer = Tracer()


def log_event(event_name: str, details: dict | None = None) -> None:
    """Manually logs a custom event under the currently traced call."""
    caller_frame = inspect.stack()[1]
    module_name = os.path.basename(caller_frame.filename).replace(".py", "")
    entry = {"type": "EVENT", "event_name": f"{module_name}.{event_name}"}
    if details:
        entry["details"] = {key: _sanitize_repr(value) for key, value in details.items()}
    global_tracer._attach(entry)


def trace(func):
    """
    A decorator that logs the entry and exit of a function call
    to the global_tracer in a nested format.
    """
    module_name = os.path.basename(inspect.getfile(func)).replace(".py", "")

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        global_tracer.start_trace(module_name, func.__qualname__)
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            global_tracer.end_trace(e, is_exception=True)
            raise
        global_tracer.end_trace(result)
        return result

    return wrapper
