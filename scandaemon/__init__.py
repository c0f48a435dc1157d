"""Pattern scanning daemon: one worker per name fragment, supervised."""

__version__ = "0.1.0"
