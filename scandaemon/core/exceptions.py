# scandaemon/core/exceptions.py


class ConfigurationError(Exception):
    """Raised when the startup configuration cannot be used."""


class WorkerCreationError(Exception):
    """Raised when a worker for a pattern could not be started."""
    def __init__(self, pattern: str, reason: str):
        self.pattern = pattern
        self.reason = reason
        super().__init__(f"Could not create worker for pattern '{pattern}': {reason}")
