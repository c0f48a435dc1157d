"""
Control channel between the operator, the supervisor and the workers.

Operator actions (SIGUSR1 / SIGUSR2) land in ``Notification`` flags that the
supervisor's tick loop drains. The supervisor then fans the matching
``ControlSignal`` out to every worker's ``ScanInterrupt``.

Everything here is touched only from the event loop thread: OS signal
callbacks are routed through ``loop.add_signal_handler``.
"""
import asyncio
import logging
import signal
from typing import Callable, Iterable, Optional, Protocol

from scandaemon.models import ControlSignal


class Notification:
    """
    Coalescing, lossless notification flag.

    ``set()`` bumps a generation counter and can be called any number of times.
    ``take()`` reports whether a generation has arrived since the last take and
    marks exactly that generation as observed, so a ``set()`` racing with a
    ``take()`` is seen on the following take instead of being lost.
    """

    def __init__(self, name: str):
        self.name = name
        self._generation = 0
        self._observed = 0

    def set(self) -> None:
        self._generation += 1

    @property
    def pending(self) -> bool:
        return self._generation != self._observed

    def take(self) -> bool:
        generation = self._generation
        if generation == self._observed:
            return False
        self._observed = generation
        return True


class ScanInterrupt:
    """
    Per-worker cancellation token with two independently observable conditions.

    The scanner polls ``is_set`` before each directory entry; the worker waits
    on the restart condition while it sleeps.
    """

    def __init__(self) -> None:
        self._stop = asyncio.Event()
        self._restart = asyncio.Event()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    @property
    def restart_requested(self) -> bool:
        return self._restart.is_set()

    @property
    def is_set(self) -> bool:
        return self._stop.is_set() or self._restart.is_set()

    @property
    def reason(self) -> Optional[ControlSignal]:
        # Restart wins: it decides whether the worker sleeps afterwards
        if self._restart.is_set():
            return ControlSignal.RESTART
        if self._stop.is_set():
            return ControlSignal.STOP
        return None

    def request(self, control: ControlSignal) -> None:
        if control is ControlSignal.RESTART:
            self._restart.set()
        elif control is ControlSignal.STOP:
            self._stop.set()
        else:
            raise ValueError(f"Unknown control signal: {control!r}")

    def clear(self) -> None:
        self._stop.clear()
        self._restart.clear()

    async def wait_for_restart(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds. Returns True if a restart cut it short."""
        try:
            await asyncio.wait_for(self._restart.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True


class SignalRecipient(Protocol):
    pattern: str

    def deliver(self, control: ControlSignal) -> None: ...


class ControlChannel:
    """Notifications owned by the supervisor plus the fan-out to workers."""

    RESTART_SIGNAL = signal.SIGUSR1
    STOP_SIGNAL = signal.SIGUSR2
    SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)

    def __init__(self) -> None:
        self.restart = Notification("restart")
        self.stop = Notification("stop")
        self.worker_exited = Notification("worker_exited")

    def notify(self, control: ControlSignal) -> None:
        """Record an operator request; drained on the supervisor's next tick."""
        if control is ControlSignal.RESTART:
            self.restart.set()
        else:
            self.stop.set()
        logging.debug(f"Operator {control.value} notification received")

    @staticmethod
    def broadcast(control: ControlSignal, recipients: Iterable[SignalRecipient]) -> int:
        """Deliver ``control`` to every recipient. Returns how many were reached."""
        delivered = 0
        for recipient in recipients:
            recipient.deliver(control)
            delivered += 1
        return delivered

    def install_signal_handlers(
        self,
        loop: asyncio.AbstractEventLoop,
        on_shutdown: Optional[Callable[[str], None]] = None,
    ) -> None:
        loop.add_signal_handler(self.RESTART_SIGNAL, self.notify, ControlSignal.RESTART)
        loop.add_signal_handler(self.STOP_SIGNAL, self.notify, ControlSignal.STOP)

        if on_shutdown is not None:
            for sig in self.SHUTDOWN_SIGNALS:
                loop.add_signal_handler(sig, on_shutdown, sig.name)

        logging.info(
            f"Control signals installed: {self.RESTART_SIGNAL.name}=restart, "
            f"{self.STOP_SIGNAL.name}=stop"
        )
