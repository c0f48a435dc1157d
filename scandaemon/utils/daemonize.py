"""
Detach the current process from its controlling terminal.

Classic double fork: the first child calls setsid() to lead a new session,
the second child can never reacquire a terminal. The parents exit with
status 0 so the invoking shell returns immediately.
"""
import logging
import os
import sys


def _fork_and_exit_parent() -> None:
    pid = os.fork()
    if pid > 0:
        os._exit(0)


def daemonize(working_directory: str = "/") -> int:
    """Detach and return the daemon's pid. Must run before any event loop exists."""
    sys.stdout.flush()
    sys.stderr.flush()

    _fork_and_exit_parent()
    os.setsid()
    _fork_and_exit_parent()

    os.chdir(working_directory)
    os.umask(0o022)

    with open(os.devnull, "rb", 0) as devnull_in:
        os.dup2(devnull_in.fileno(), sys.stdin.fileno())
    with open(os.devnull, "ab", 0) as devnull_out:
        os.dup2(devnull_out.fileno(), sys.stdout.fileno())
        os.dup2(devnull_out.fileno(), sys.stderr.fileno())

    pid = os.getpid()
    logging.debug(f"Detached, daemon pid {pid}")
    return pid
