from __future__ import annotations

import os
import signal
import sys
import threading
from collections.abc import MutableMapping
from dataclasses import dataclass
from typing import Optional

_SANDBOXED_PLATFORMS = frozenset({"emscripten", "wasi"})


@dataclass(frozen=True, slots=True)
class RuntimeEnvironment:
    """Capabilities of the hosting interpreter.

    ``has_process_control`` means process-level exit hooks can be installed.
    ``has_signal_handling`` additionally requires being on the main thread,
    the only place ``signal.signal`` may be called.
    """

    has_process_control: bool
    has_signal_handling: bool
    has_process_env: bool
    is_main_thread: bool


def detect_runtime() -> RuntimeEnvironment:
    sandboxed = sys.platform in _SANDBOXED_PLATFORMS
    is_main_thread = threading.current_thread() is threading.main_thread()
    has_process_control = not sandboxed and hasattr(os, "getpid")
    has_signal_handling = (
        has_process_control and is_main_thread and hasattr(signal, "SIGTERM")
    )
    return RuntimeEnvironment(
        has_process_control=has_process_control,
        has_signal_handling=has_signal_handling,
        has_process_env=not sandboxed and isinstance(os.environ, MutableMapping),
        is_main_thread=is_main_thread,
    )


def get_environment_value(key: str, fallback: Optional[str] = None) -> Optional[str]:
    if not detect_runtime().has_process_env:
        return fallback
    return os.environ.get(key) or fallback
