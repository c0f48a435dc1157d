"""
Utilities package for the scanning daemon.

Process-level helpers that sit outside the scanning core.
"""
