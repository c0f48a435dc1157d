"""
File Discovery Domain
Scanning a tree for one pattern and the worker that repeats it.
"""
from .pattern_scanner import ScanRequest, scan
from .pattern_worker import PatternWorker

__all__ = [
    "PatternWorker",
    "ScanRequest",
    "scan",
]
