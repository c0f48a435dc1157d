from enum import Enum


class WorkerState(str, Enum):
    """
    Lifecycle of a pattern worker.

    Normal cycle: Scanning -> Sleeping -> Scanning
    Stop while scanning: Scanning -> Sleeping (rest of the pass is skipped)
    Restart at any time: -> Scanning (remaining sleep is discarded)
    """

    SCANNING = "Scanning"
    SLEEPING = "Sleeping"
    TERMINATED = "Terminated"  # run() has returned, raised or been cancelled


class ControlSignal(str, Enum):
    """Control notifications broadcast from the supervisor to every worker."""

    RESTART = "Restart"
    STOP = "Stop"


# Exit codes reported for reaped workers
EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CANCELLED = -1
