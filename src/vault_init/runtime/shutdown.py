from __future__ import annotations

import signal
import threading
from types import FrameType
from typing import Callable, Dict, Iterable, Optional

from vault_init.cli.formatter import OutputFormatter

DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ShutdownCoordinator:
    """
    Single-fire shutdown flag fed by SIGINT/SIGTERM or by request().

    The poll loop waits on the flag between probes and the dormant wait point
    blocks on it. Repeated signals collapse into one shutdown sequence.
    SIGKILL cannot be intercepted and never reaches this class.
    """

    def __init__(
        self,
        signals: Iterable[signal.Signals] = DEFAULT_SIGNALS,
        wait_slice_seconds: float = 0.5,
        log: Optional[Callable[..., None]] = None,
    ) -> None:
        self.signals = tuple(signals)
        self.wait_slice_seconds = wait_slice_seconds
        self.log = log or OutputFormatter.log

        self._event = threading.Event()
        self._lock = threading.RLock()
        self._requested = False
        self._reason: Optional[str] = None
        self._previous_handlers: Dict[signal.Signals, object] = {}

    @property
    def is_requested(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def install(self) -> "ShutdownCoordinator":
        """Route the configured signals to request(). Must run on the main thread."""
        if threading.current_thread() is not threading.main_thread():
            raise RuntimeError("Signal handlers can only be installed from the main thread.")

        for signum in self.signals:
            if signum in self._previous_handlers:
                continue
            self._previous_handlers[signum] = signal.signal(signum, self._handle_signal)
        return self

    def restore(self) -> None:
        """Put back whatever handlers were active before install()."""
        for signum, previous in self._previous_handlers.items():
            signal.signal(signum, previous)
        self._previous_handlers.clear()

    def request(self, reason: str = "requested") -> bool:
        """Request shutdown; returns False when one was already requested."""
        # A second signal handler can run inside this one on the main thread.
        with self._lock:
            if self._requested:
                return False
            self._requested = True
            self._reason = reason

        self._event.set()
        self.log(f"Shutting down... ({reason})")
        return True

    def wait(self, timeout: float) -> bool:
        """Block up to timeout seconds; True when shutdown has been requested."""
        return self._event.wait(max(timeout, 0.0))

    def wait_for_shutdown(self) -> str:
        """Block until shutdown is requested and return its reason."""
        while not self._event.wait(self.wait_slice_seconds):
            pass
        return self._reason or "requested"

    def _handle_signal(self, signum: int, frame: Optional[FrameType]) -> None:
        self.request(reason=signal.Signals(signum).name)

    def __enter__(self) -> "ShutdownCoordinator":
        return self.install()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.restore()
