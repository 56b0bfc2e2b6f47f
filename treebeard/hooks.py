from __future__ import annotations

import atexit
import logging
import signal
import sys
import threading
from typing import TYPE_CHECKING, Any, Callable, Optional

from .runtime import RuntimeEnvironment

if TYPE_CHECKING:
    from .core import TreebeardCore

logger = logging.getLogger(__name__)


class LifecycleHooks:
    """Process-level hooks installed by ``TreebeardCore.init``.

    Which hooks are installed depends on the runtime capabilities; every
    installed hook is restored by ``uninstall``.
    """

    def __init__(self, core: "TreebeardCore", runtime: RuntimeEnvironment) -> None:
        self._core = core
        self._runtime = runtime
        self._atexit_installed = False
        self._previous_sigterm: Any = None
        self._sigterm_installed = False
        self._previous_excepthook: Optional[Callable[..., Any]] = None
        self._previous_threading_excepthook: Optional[Callable[..., Any]] = None

    def install(self, *, capture_unhandled: bool) -> None:
        if self._runtime.has_process_control:
            atexit.register(self._core.shutdown)
            self._atexit_installed = True

        if self._runtime.has_signal_handling:
            try:
                self._previous_sigterm = signal.signal(signal.SIGTERM, self._handle_sigterm)
                self._sigterm_installed = True
            except (ValueError, OSError) as exc:
                logger.debug("SIGTERM handler not installed: %s", exc)

        if capture_unhandled:
            self._previous_excepthook = sys.excepthook
            sys.excepthook = self._excepthook
            self._previous_threading_excepthook = threading.excepthook
            threading.excepthook = self._threading_excepthook

    def uninstall(self) -> None:
        if self._atexit_installed:
            atexit.unregister(self._core.shutdown)
            self._atexit_installed = False

        self._restore_sigterm()

        if self._previous_excepthook is not None:
            if sys.excepthook == self._excepthook:
                sys.excepthook = self._previous_excepthook
            self._previous_excepthook = None
        if self._previous_threading_excepthook is not None:
            if threading.excepthook == self._threading_excepthook:
                threading.excepthook = self._previous_threading_excepthook
            self._previous_threading_excepthook = None

    def _restore_sigterm(self) -> None:
        if not self._sigterm_installed:
            return
        try:
            if signal.getsignal(signal.SIGTERM) == self._handle_sigterm:
                signal.signal(signal.SIGTERM, self._previous_sigterm or signal.SIG_DFL)
        except (ValueError, OSError) as exc:
            # only the main thread may touch signal handlers
            logger.debug("SIGTERM handler not restored: %s", exc)
            return
        self._sigterm_installed = False

    def _handle_sigterm(self, signum: int, frame: Any) -> None:
        previous = self._previous_sigterm
        logger.info("received signal %d; flushing before exit", signum)
        # The handler may have interrupted this thread while it held a buffer or
        # trace lock, so the flush runs elsewhere and is waited on with a bound.
        worker = threading.Thread(target=self._core.shutdown, name="treebeard-shutdown", daemon=True)
        worker.start()
        worker.join(timeout=self._core.config.shutdown_timeout)
        if worker.is_alive():
            logger.warning(
                "shutdown did not finish within %.1fs of signal %d; exiting anyway",
                self._core.config.shutdown_timeout,
                signum,
            )
        self._restore_sigterm()
        if callable(previous):
            previous(signum, frame)
        elif previous != signal.SIG_IGN:
            sys.exit(128 + signum)

    def _excepthook(self, exc_type, exc_value, exc_tb) -> None:
        previous = self._previous_excepthook or sys.__excepthook__
        if not issubclass(exc_type, KeyboardInterrupt):
            self._core.log_error("Uncaught exception", exc_value)
        previous(exc_type, exc_value, exc_tb)

    def _threading_excepthook(self, args: "threading.ExceptHookArgs") -> None:
        previous = self._previous_threading_excepthook or threading.__excepthook__
        if args.exc_value is not None:
            thread_name = args.thread.name if args.thread is not None else None
            self._core.log_error("Uncaught exception in thread", args.exc_value, {"thread": thread_name})
        previous(args)
